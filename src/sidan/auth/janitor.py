"""Background cleanup of expired auth records."""

import asyncio

from loguru import logger

from sidan.auth.state_store import StateStore


class Janitor:
    """Periodically deletes expired auth states, sessions and device codes.

    Runs as an asyncio task started from the application lifespan. `stop()`
    wakes the sleeping loop immediately.
    """

    def __init__(self, store: StateStore, interval: float = 300.0):
        self.store = store
        self.interval = interval
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> dict[str, int]:
        """Run every cleanup once; a failing cleanup does not skip the others.

        Returns:
            Deleted record counts keyed by table (-1 when the cleanup failed)
        """
        cleanups = {
            "auth_states": self.store.cleanup_expired_auth_states,
            "sessions": self.store.cleanup_expired_sessions,
            "device_codes": self.store.cleanup_expired_device_codes,
        }
        results = {}
        for name, cleanup in cleanups.items():
            try:
                results[name] = await cleanup()
            except Exception as e:
                logger.error(f"Janitor cleanup of {name} failed: {e}")
                results[name] = -1

        removed = sum(n for n in results.values() if n > 0)
        if removed:
            logger.info(f"Janitor removed expired records: {results}")
        return results

    async def _run(self) -> None:
        logger.info(f"Janitor started (interval {self.interval}s)")
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass
            await self.run_once()
        logger.info("Janitor stopped")

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
