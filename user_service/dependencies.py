"""
Explicit construction of the user service for each unit of work.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from user_service.core.cache import UserCache
from user_service.core.database import get_db
from user_service.core.security import PasslibPasswordHasher, PasswordHasher
from user_service.repositories.user import SqlAlchemyUserGateway
from user_service.services.user import UserService


@lru_cache()
def get_password_hasher() -> PasswordHasher:
    """Process-wide password hasher."""
    return PasslibPasswordHasher()


def build_user_service(db: Session, cache: Optional[UserCache] = None) -> UserService:
    """
    Wire a service over one database session.

    Args:
        db: Session owning this unit of work
        cache: Optional user cache

    Returns:
        UserService: Service ready for a single request or message
    """
    return UserService(SqlAlchemyUserGateway(db), get_password_hasher(), cache=cache)


def get_user_service(request: Request, db: Session = Depends(get_db)) -> UserService:
    """
    Get the user service for the current request.

    Note:
        This function should be used as a FastAPI dependency.
    """
    return build_user_service(db, getattr(request.app.state, "user_cache", None))
