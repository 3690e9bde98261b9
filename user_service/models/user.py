"""
User model definition.
"""

from sqlalchemy import Column, String, Boolean
from sqlalchemy.sql.sqltypes import Integer

from user_service.models.base import BaseModel


class User(BaseModel):
    """User model for storing user information."""

    # AUTOINCREMENT keeps SQLite from reusing the ids of hard-deleted rows
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(255))
    last_name = Column(String(255))
    is_active = Column(Boolean, default=True, nullable=False)
