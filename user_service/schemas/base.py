"""
Base Pydantic schemas and common schema utilities.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """Base schema for records read from storage, camelCase on the wire."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True
    )


class BaseDBSchema(BaseSchema):
    """Base schema for database models with common fields."""

    id: int
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        """Timestamps are stored in UTC; drivers may return them without a zone."""
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class BasePayloadSchema(BaseModel):
    """Base schema for caller input; only camelCase keys are accepted."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        extra="forbid"
    )


class BaseCreateSchema(BasePayloadSchema):
    """Base schema for creating new records."""
    pass


class BaseUpdateSchema(BasePayloadSchema):
    """Base schema for updating existing records."""
    pass
