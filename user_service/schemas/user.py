"""
User schema definitions for request/response handling.
"""

from typing import Annotated, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, Field, StrictBool, StrictStr, field_validator

from user_service.schemas.base import (
    BaseDBSchema, BaseCreateSchema, BaseUpdateSchema
)

USERNAME_MIN_LENGTH = 3
PASSWORD_MIN_LENGTH = 6


def check_email(value: str) -> str:
    """Reject malformed addresses; the address is stored exactly as sent."""
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValueError(f"value is not a valid email address: {e}")
    return value


Email = Annotated[StrictStr, AfterValidator(check_email)]


class UserCreate(BaseCreateSchema):
    """Schema for creating a new user."""

    email: Email
    username: StrictStr = Field(..., min_length=USERNAME_MIN_LENGTH)
    password: StrictStr = Field(..., min_length=PASSWORD_MIN_LENGTH)
    first_name: Optional[StrictStr] = None
    last_name: Optional[StrictStr] = None


class UserUpdate(BaseUpdateSchema):
    """
    Schema for updating an existing user.

    Every field is optional; only the fields the caller sent are applied
    (``model_dump(exclude_unset=True)``).
    """

    email: Optional[Email] = None
    username: Optional[StrictStr] = Field(None, min_length=USERNAME_MIN_LENGTH)
    password: Optional[StrictStr] = Field(None, min_length=PASSWORD_MIN_LENGTH)
    first_name: Optional[StrictStr] = None
    last_name: Optional[StrictStr] = None
    is_active: Optional[StrictBool] = None

    @field_validator("email", "username", "password", "is_active", mode="before")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("must not be null")
        return value


class UserResponse(BaseDBSchema):
    """Schema for user data in responses. Never carries the password."""

    email: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool


class UserInDB(UserResponse):
    """Schema for user data as stored in database."""

    hashed_password: str

    def strip(self) -> UserResponse:
        """Return this record without the password hash."""
        return UserResponse.model_validate(self.model_dump(exclude={"hashed_password"}))
