"""Factory for auth state stores.

Creates the StateStore implementation selected by configuration.
"""

from loguru import logger

from sidan.auth.state_store import StateStore
from sidan.auth.state_store_memory import MemoryStateStore
from sidan.settings import settings


# Singleton instance
_state_store_instance: StateStore | None = None


def get_state_store() -> StateStore:
    """Get state store instance (singleton).

    Returns:
        StateStore implementation based on SIDAN_AUTH__STATE_STORE setting

    Raises:
        ValueError: If state store type is invalid
    """
    global _state_store_instance

    if _state_store_instance is not None:
        return _state_store_instance

    store_type = settings.auth.state_store.lower()

    if store_type == "memory":
        logger.info("Initializing MemoryStateStore")
        _state_store_instance = MemoryStateStore()
    else:
        raise ValueError(
            f"Invalid state store type: {store_type}. Valid options: memory"
        )

    return _state_store_instance


def set_state_store(store: StateStore | None) -> None:
    """Replace the singleton (application wiring and tests)."""
    global _state_store_instance
    _state_store_instance = store
