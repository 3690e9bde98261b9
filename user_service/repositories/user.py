"""
SQLAlchemy implementation of the user gateway.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from user_service.core.database import check_database_health, transaction_context
from user_service.core.exceptions import ConstraintViolation
from user_service.models.user import User
from user_service.schemas.user import UserInDB
from user_service.services.gateway import UserGateway

logger = logging.getLogger(__name__)

UNIQUE_COLUMNS = ("username", "email")

# Markers preceding the constraint name in MySQL, SQLite and PostgreSQL messages
_CONSTRAINT_MARKERS = ("for key", "constraint failed:", "unique constraint")


def violated_column(error: IntegrityError) -> Optional[str]:
    """
    Name the unique column an IntegrityError is about.

    Returns:
        Optional[str]: "email" or "username", None if the error is not a
        recognised uniqueness violation
    """
    message = str(error.orig if error.orig is not None else error).lower()
    if "unique" not in message and "duplicate" not in message:
        return None
    for marker in _CONSTRAINT_MARKERS:
        if marker in message:
            message = message.split(marker, 1)[1]
            break
    for column in UNIQUE_COLUMNS:
        if column in message:
            return column
    return ""


class SqlAlchemyUserGateway(UserGateway):
    """
    User storage over a SQLAlchemy session.

    Each mutation runs in its own transaction and is committed before the
    method returns.
    """

    def __init__(self, db: Session):
        self.db = db

    def insert(self, values: Dict[str, Any]) -> UserInDB:
        user = User(**values)
        try:
            with transaction_context(self.db):
                self.db.add(user)
                self.db.flush()
        except IntegrityError as e:
            self._raise_violation(e)
        return self._stored(user)

    def find_by_id(self, user_id: int) -> Optional[UserInDB]:
        return self._one(self.db.get(User, user_id))

    def find_by_email(self, email: str) -> Optional[UserInDB]:
        return self._one(self.db.query(User).filter(User.email == email).first())

    def find_by_username(self, username: str) -> Optional[UserInDB]:
        return self._one(self.db.query(User).filter(User.username == username).first())

    def update(self, user_id: int, changes: Dict[str, Any]) -> Optional[UserInDB]:
        try:
            with transaction_context(self.db):
                user = self.db.get(User, user_id)
                if user is None:
                    return None
                for field, value in changes.items():
                    setattr(user, field, value)
                self.db.flush()
        except IntegrityError as e:
            self._raise_violation(e)
        return self._stored(user)

    def delete(self, user_id: int) -> bool:
        with transaction_context(self.db):
            user = self.db.get(User, user_id)
            if user is None:
                return False
            self.db.delete(user)
        return True

    def list(self, active: Optional[bool] = None, newest_first: bool = True) -> List[UserInDB]:
        query = self.db.query(User)
        if active is not None:
            query = query.filter(User.is_active == active)
        if newest_first:
            query = query.order_by(User.created_at.desc(), User.id.desc())
        else:
            query = query.order_by(User.created_at.asc(), User.id.asc())
        return [UserInDB.model_validate(user) for user in query.all()]

    def ping(self) -> bool:
        return check_database_health(self.db)

    def _stored(self, user: User) -> UserInDB:
        # Reload so timestamps carry the precision the database kept
        self.db.refresh(user)
        return UserInDB.model_validate(user)

    @staticmethod
    def _one(user: Optional[User]) -> Optional[UserInDB]:
        return UserInDB.model_validate(user) if user is not None else None

    @staticmethod
    def _raise_violation(error: IntegrityError):
        column = violated_column(error)
        if column is None:
            raise error
        logger.info(f"Unique constraint violated on {column or 'unknown column'}")
        raise ConstraintViolation(column or None) from error
