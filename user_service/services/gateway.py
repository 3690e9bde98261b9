"""
Persistence contract used by the user service.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from user_service.schemas.user import UserInDB


class UserGateway(ABC):
    """
    Record storage with unique-key lookups.

    Implementations assign ids, never reuse them, and should enforce email and
    username uniqueness themselves, raising ``ConstraintViolation`` when a
    write breaks it.
    """

    @abstractmethod
    def insert(self, values: Dict[str, Any]) -> UserInDB:
        """Store a new record and return it with its assigned id."""

    @abstractmethod
    def find_by_id(self, user_id: int) -> Optional[UserInDB]:
        """Return the record with ``user_id`` or None."""

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[UserInDB]:
        """Return the record with exactly this email or None."""

    @abstractmethod
    def find_by_username(self, username: str) -> Optional[UserInDB]:
        """Return the record with exactly this username or None."""

    @abstractmethod
    def update(self, user_id: int, changes: Dict[str, Any]) -> Optional[UserInDB]:
        """Apply ``changes`` and return the updated record, None if absent."""

    @abstractmethod
    def delete(self, user_id: int) -> bool:
        """Remove the record permanently. False if it did not exist."""

    @abstractmethod
    def list(self, active: Optional[bool] = None, newest_first: bool = True) -> List[UserInDB]:
        """Return records, optionally filtered on the active flag, by creation time."""

    def ping(self) -> bool:
        """Report whether the storage is reachable."""
        return True
