"""
User lifecycle service.

Holds every business rule around user records: uniqueness of email and
username, password hashing, partial updates and soft/hard deletion. Both
transports call into this class; it is the only code that talks to the
gateway or the hasher.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from user_service.core.cache import UserCache
from user_service.core.exceptions import ConflictError, ConstraintViolation, NotFoundError
from user_service.core.security import PasswordHasher
from user_service.models.base import utcnow
from user_service.schemas.user import UserCreate, UserInDB, UserResponse, UserUpdate
from user_service.services.gateway import UserGateway

# Configure logging
logger = logging.getLogger(__name__)

EMAIL_EXISTS = "Email already exists"
USERNAME_EXISTS = "Username already exists"
UNIQUE_VIOLATION = "Unique constraint violation"


def _not_found(user_id: int) -> NotFoundError:
    return NotFoundError(f"User with ID {user_id} not found")


def _conflict(violation: ConstraintViolation) -> ConflictError:
    if violation.field == "email":
        return ConflictError(EMAIL_EXISTS)
    if violation.field == "username":
        return ConflictError(USERNAME_EXISTS)
    return ConflictError(UNIQUE_VIOLATION)


class UserService:
    """
    Business operations on user records.

    Args:
        gateway: Persistence gateway
        hasher: Password hasher
        cache: Optional cache of stripped records by id
        clock: Source of the audit timestamps
    """

    def __init__(
        self,
        gateway: UserGateway,
        hasher: PasswordHasher,
        cache: Optional[UserCache] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.gateway = gateway
        self.hasher = hasher
        self.cache = cache
        self.clock = clock

    # PUBLIC_INTERFACE
    def create(self, data: UserCreate) -> UserResponse:
        """
        Create a new user.

        Args:
            data: Validated user data

        Returns:
            UserResponse: Created user without password

        Raises:
            ConflictError: If the email or username is already taken
        """
        if self.gateway.find_by_email(data.email) is not None:
            logger.warning(f"Create rejected, email already registered: {data.email}")
            raise ConflictError(EMAIL_EXISTS)

        if self.gateway.find_by_username(data.username) is not None:
            logger.warning(f"Create rejected, username already taken: {data.username}")
            raise ConflictError(USERNAME_EXISTS)

        values = data.model_dump(exclude={"password"})
        values["hashed_password"] = self.hasher.hash(data.password)
        now = self.clock()
        values.update(is_active=True, created_at=now, updated_at=now)

        try:
            user = self.gateway.insert(values)
        except ConstraintViolation as e:
            # Lost a race with a concurrent write after the checks above
            logger.warning(f"Create rejected by storage constraint: {e}")
            raise _conflict(e)

        logger.info(f"Created user {user.id}")
        return user.strip()

    # PUBLIC_INTERFACE
    def list_active(self) -> List[UserResponse]:
        """Get all active users, most recently created first."""
        return [user.strip() for user in self.gateway.list(active=True, newest_first=True)]

    # PUBLIC_INTERFACE
    def get_by_id(self, user_id: int) -> UserResponse:
        """
        Get a user by id, active or not.

        Raises:
            NotFoundError: If no user has this id
        """
        if self.cache is not None:
            cached = self.cache.get(user_id)
            if cached is not None:
                try:
                    return UserResponse.model_validate(cached)
                except ValueError as e:
                    logger.warning(f"Invalid cache data for user {user_id}: {e}")
                    self.cache.delete(user_id)

        user = self.gateway.find_by_id(user_id)
        if user is None:
            raise _not_found(user_id)

        response = user.strip()
        if self.cache is not None:
            self.cache.set(user_id, response.model_dump(mode="json", by_alias=True))
        return response

    # PUBLIC_INTERFACE
    def get_by_email(self, email: str) -> Optional[UserInDB]:
        """Get the full stored record, password hash included, or None."""
        return self.gateway.find_by_email(email)

    # PUBLIC_INTERFACE
    def get_by_username(self, username: str) -> Optional[UserInDB]:
        """Get the full stored record, password hash included, or None."""
        return self.gateway.find_by_username(username)

    # PUBLIC_INTERFACE
    def update(self, user_id: int, data: UserUpdate) -> UserResponse:
        """
        Apply a partial update.

        Only the fields present in ``data`` are changed; ``updated_at`` is
        always refreshed.

        Raises:
            NotFoundError: If no user has this id
            ConflictError: If the new email or username is taken
        """
        existing = self.gateway.find_by_id(user_id)
        if existing is None:
            raise _not_found(user_id)

        changes = data.model_dump(exclude_unset=True)

        email = changes.get("email")
        if email is not None and email != existing.email:
            if self.gateway.find_by_email(email) is not None:
                logger.warning(f"Update of user {user_id} rejected, email already registered")
                raise ConflictError(EMAIL_EXISTS)

        username = changes.get("username")
        if username is not None and username != existing.username:
            if self.gateway.find_by_username(username) is not None:
                logger.warning(f"Update of user {user_id} rejected, username already taken")
                raise ConflictError(USERNAME_EXISTS)

        if "password" in changes:
            changes["hashed_password"] = self.hasher.hash(changes.pop("password"))
        changes["updated_at"] = self.clock()

        try:
            user = self.gateway.update(user_id, changes)
        except ConstraintViolation as e:
            logger.warning(f"Update of user {user_id} rejected by storage constraint: {e}")
            raise _conflict(e)
        finally:
            self._invalidate(user_id)

        if user is None:
            raise _not_found(user_id)

        logger.info(f"Updated user {user_id}: {sorted(changes)}")
        return user.strip()

    # PUBLIC_INTERFACE
    def soft_delete(self, user_id: int) -> None:
        """
        Mark a user inactive. The record stays retrievable by id.

        Raises:
            NotFoundError: If no user has this id
        """
        if self.gateway.find_by_id(user_id) is None:
            raise _not_found(user_id)

        try:
            user = self.gateway.update(user_id, {"is_active": False, "updated_at": self.clock()})
        finally:
            self._invalidate(user_id)

        if user is None:
            raise _not_found(user_id)
        logger.info(f"Deactivated user {user_id}")

    # PUBLIC_INTERFACE
    def hard_delete(self, user_id: int) -> None:
        """
        Permanently remove a user, freeing its email and username.

        Raises:
            NotFoundError: If no user has this id
        """
        if self.gateway.find_by_id(user_id) is None:
            raise _not_found(user_id)

        try:
            deleted = self.gateway.delete(user_id)
        finally:
            self._invalidate(user_id)

        if not deleted:
            raise _not_found(user_id)
        logger.info(f"Deleted user {user_id}")

    def check_storage(self) -> bool:
        """Report whether the persistence gateway is reachable."""
        return self.gateway.ping()

    def _invalidate(self, user_id: int) -> None:
        if self.cache is not None and not self.cache.delete(user_id):
            logger.warning(f"Cached entry for user {user_id} may be stale")
