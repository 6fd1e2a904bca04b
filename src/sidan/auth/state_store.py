"""Abstract auth state storage interface.

Defines the contract for persisting auth records with multiple backend
implementations:
- MemoryStateStore: in-process dicts (dev/testing)
- SQL backends: implemented outside this package against the same contract

Every operation may raise StorageError. NotFound (and its subclass Expired)
is distinct so callers can map a missing record without masking I/O failures.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from sidan.auth.models import (
    AuthState,
    DeviceCode,
    DeviceStatus,
    Member,
    ProviderToken,
    Session,
)


class StateStore(ABC):
    """Abstract interface for auth state storage.

    Readers of time-limited records (auth states and device codes) delete
    the record and raise Expired once it is past its expiry.
    """

    # Authorization states

    @abstractmethod
    async def create_auth_state(self, state: AuthState) -> None:
        pass

    @abstractmethod
    async def get_auth_state(self, state_id: str) -> AuthState:
        """Load an auth state.

        Raises:
            NotFound: Unknown id
            Expired: Past expiry (the record is deleted)
        """
        pass

    @abstractmethod
    async def consume_auth_state(self, state_id: str) -> AuthState:
        """Atomically read and delete an auth state.

        At most one caller receives the record; concurrent callers get NotFound.

        Raises:
            NotFound: Unknown or already consumed
            Expired: Past expiry (the record is deleted)
        """
        pass

    @abstractmethod
    async def delete_auth_state(self, state_id: str) -> bool:
        pass

    @abstractmethod
    async def cleanup_expired_auth_states(self) -> int:
        """Delete expired auth states, returning the number removed."""
        pass

    # Device codes

    @abstractmethod
    async def create_device_code(self, device: DeviceCode) -> None:
        """Persist a new device code.

        Raises:
            Conflict: device_code or user_code already exists
        """
        pass

    @abstractmethod
    async def get_device_code_by_user_code(self, user_code: str) -> DeviceCode:
        pass

    @abstractmethod
    async def get_device_code_by_device_code(self, device_code: str) -> DeviceCode:
        pass

    @abstractmethod
    async def update_device_code(self, device: DeviceCode) -> None:
        pass

    @abstractmethod
    async def update_device_code_status(
        self,
        device_code: str,
        expected: DeviceStatus,
        new: DeviceStatus,
        **binding: Any,
    ) -> DeviceCode | None:
        """Compare-and-set the status of a device code.

        Args:
            device_code: Device code to transition
            expected: Status the record must currently have
            new: Status to set
            **binding: Extra fields set in the same write (member_number, email, scopes)

        Returns:
            Updated record, or None when the current status is not `expected`

        Raises:
            NotFound: Unknown device code
            Expired: Past expiry (the record is deleted)
        """
        pass

    @abstractmethod
    async def mark_device_code_polled(self, device_code: str, polled_at: datetime) -> None:
        """Record the last poll time; best effort, never changes status."""
        pass

    @abstractmethod
    async def delete_device_code(self, device_code: str) -> bool:
        pass

    @abstractmethod
    async def cleanup_expired_device_codes(self) -> int:
        pass

    # Sessions

    @abstractmethod
    async def create_session(self, session: Session) -> None:
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Session:
        """Load a session (expiry is checked by the caller).

        Raises:
            NotFound: Unknown id
        """
        pass

    @abstractmethod
    async def touch_session(self, session_id: str) -> None:
        """Update last_activity_at; idempotent and best effort."""
        pass

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        pass

    @abstractmethod
    async def cleanup_expired_sessions(self) -> int:
        pass

    # Provider tokens

    @abstractmethod
    async def get_provider_token(self, member_id: int, provider: str) -> ProviderToken:
        pass

    @abstractmethod
    async def upsert_provider_token(self, token: ProviderToken) -> None:
        """Insert or replace the token for (member_id, provider); last writer wins."""
        pass

    @abstractmethod
    async def delete_provider_token(self, member_id: int, provider: str) -> bool:
        pass

    # Members (read-only)

    @abstractmethod
    async def get_member_by_id(self, member_id: int) -> Member:
        pass

    @abstractmethod
    async def get_member_by_number(self, number: int) -> Member:
        pass

    @abstractmethod
    async def get_member_by_verified_emails(self, emails: list[str]) -> Member:
        """Find the valid member owning one of the emails (case-insensitive).

        When several match, the member with the highest number wins.

        Raises:
            NotFound: No valid member matches
        """
        pass
