"""In-process state store implementation.

Keeps every record in dicts guarded by one asyncio.Lock, which makes
status compare-and-set and auth-state consumption linearizable within a
single event loop. Suitable for development, testing, and single-worker
deployments; records do not survive a restart.
"""

import asyncio
from datetime import datetime
from typing import Any

from loguru import logger

from sidan.auth.errors import Conflict, Expired, NotFound
from sidan.auth.models import (
    AuthState,
    DeviceCode,
    DeviceStatus,
    Member,
    ProviderToken,
    Session,
    utcnow,
)
from sidan.auth.state_store import StateStore


class MemoryStateStore(StateStore):
    """Dict-backed state store.

    Records are copied on the way in and out so callers never mutate
    stored state by accident.
    """

    def __init__(self, members: list[Member] | None = None):
        self._lock = asyncio.Lock()
        self._auth_states: dict[str, AuthState] = {}
        self._device_codes: dict[str, DeviceCode] = {}
        self._user_codes: dict[str, str] = {}
        self._sessions: dict[str, Session] = {}
        self._provider_tokens: dict[tuple[int, str], ProviderToken] = {}
        self._members: dict[int, Member] = {}
        for member in members or []:
            self.add_member(member)
        logger.info("MemoryStateStore initialized")

    def add_member(self, member: Member) -> None:
        """Seed a member (members are owned by an external system)."""
        self._members[member.id] = member.model_copy()

    # Authorization states

    async def create_auth_state(self, state: AuthState) -> None:
        async with self._lock:
            if state.id in self._auth_states:
                raise Conflict("auth state already exists")
            self._auth_states[state.id] = state.model_copy(deep=True)

    def _live_auth_state(self, state_id: str) -> AuthState:
        state = self._auth_states.get(state_id)
        if state is None:
            raise NotFound("auth state not found")
        if state.is_expired():
            del self._auth_states[state_id]
            raise Expired("auth state expired")
        return state

    async def get_auth_state(self, state_id: str) -> AuthState:
        async with self._lock:
            return self._live_auth_state(state_id).model_copy(deep=True)

    async def consume_auth_state(self, state_id: str) -> AuthState:
        async with self._lock:
            state = self._live_auth_state(state_id)
            del self._auth_states[state_id]
            return state

    async def delete_auth_state(self, state_id: str) -> bool:
        async with self._lock:
            return self._auth_states.pop(state_id, None) is not None

    async def cleanup_expired_auth_states(self) -> int:
        async with self._lock:
            now = utcnow()
            expired = [k for k, v in self._auth_states.items() if v.is_expired(now)]
            for key in expired:
                del self._auth_states[key]
            return len(expired)

    # Device codes

    async def create_device_code(self, device: DeviceCode) -> None:
        async with self._lock:
            if device.device_code in self._device_codes:
                raise Conflict("device code already exists")
            if device.user_code in self._user_codes:
                raise Conflict("user code already exists")
            self._device_codes[device.device_code] = device.model_copy(deep=True)
            self._user_codes[device.user_code] = device.device_code

    def _drop_device_code(self, device_code: str) -> None:
        device = self._device_codes.pop(device_code, None)
        if device is not None:
            self._user_codes.pop(device.user_code, None)

    def _live_device_code(self, device_code: str) -> DeviceCode:
        device = self._device_codes.get(device_code)
        if device is None:
            raise NotFound("device code not found")
        if device.is_expired():
            self._drop_device_code(device_code)
            raise Expired("device code expired")
        return device

    async def get_device_code_by_user_code(self, user_code: str) -> DeviceCode:
        async with self._lock:
            device_code = self._user_codes.get(user_code)
            if device_code is None:
                raise NotFound("user code not found")
            return self._live_device_code(device_code).model_copy(deep=True)

    async def get_device_code_by_device_code(self, device_code: str) -> DeviceCode:
        async with self._lock:
            return self._live_device_code(device_code).model_copy(deep=True)

    async def update_device_code(self, device: DeviceCode) -> None:
        async with self._lock:
            if device.device_code not in self._device_codes:
                raise NotFound("device code not found")
            self._device_codes[device.device_code] = device.model_copy(deep=True)

    async def update_device_code_status(
        self,
        device_code: str,
        expected: DeviceStatus,
        new: DeviceStatus,
        **binding: Any,
    ) -> DeviceCode | None:
        async with self._lock:
            device = self._live_device_code(device_code)
            if device.status != expected:
                return None
            updated = device.model_copy(update={"status": new, **binding}, deep=True)
            self._device_codes[device_code] = updated
            return updated.model_copy(deep=True)

    async def mark_device_code_polled(self, device_code: str, polled_at: datetime) -> None:
        async with self._lock:
            device = self._device_codes.get(device_code)
            if device is not None:
                device.last_polled_at = polled_at

    async def delete_device_code(self, device_code: str) -> bool:
        async with self._lock:
            existed = device_code in self._device_codes
            self._drop_device_code(device_code)
            return existed

    async def cleanup_expired_device_codes(self) -> int:
        async with self._lock:
            now = utcnow()
            expired = [k for k, v in self._device_codes.items() if v.is_expired(now)]
            for key in expired:
                self._drop_device_code(key)
            return len(expired)

    # Sessions

    async def create_session(self, session: Session) -> None:
        async with self._lock:
            if session.id in self._sessions:
                raise Conflict("session already exists")
            self._sessions[session.id] = session.model_copy(deep=True)

    async def get_session(self, session_id: str) -> Session:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFound("session not found")
            return session.model_copy(deep=True)

    async def touch_session(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_activity_at = utcnow()

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def cleanup_expired_sessions(self) -> int:
        async with self._lock:
            now = utcnow()
            expired = [k for k, v in self._sessions.items() if v.is_expired(now)]
            for key in expired:
                del self._sessions[key]
            return len(expired)

    # Provider tokens

    async def get_provider_token(self, member_id: int, provider: str) -> ProviderToken:
        async with self._lock:
            token = self._provider_tokens.get((member_id, provider))
            if token is None:
                raise NotFound("provider token not found")
            return token.model_copy()

    async def upsert_provider_token(self, token: ProviderToken) -> None:
        async with self._lock:
            self._provider_tokens[(token.member_id, token.provider)] = token.model_copy(
                update={"updated_at": utcnow()}
            )

    async def delete_provider_token(self, member_id: int, provider: str) -> bool:
        async with self._lock:
            return self._provider_tokens.pop((member_id, provider), None) is not None

    # Members

    async def get_member_by_id(self, member_id: int) -> Member:
        member = self._members.get(member_id)
        if member is None:
            raise NotFound("member not found")
        return member.model_copy()

    async def get_member_by_number(self, number: int) -> Member:
        for member in self._members.values():
            if member.number == number:
                return member.model_copy()
        raise NotFound("member not found")

    async def get_member_by_verified_emails(self, emails: list[str]) -> Member:
        wanted = {e.strip().lower() for e in emails if e and e.strip()}
        matches = [
            m for m in self._members.values()
            if m.valid and m.email.lower() in wanted
        ]
        if not matches:
            raise NotFound("member not found")
        return max(matches, key=lambda m: m.number).model_copy()
