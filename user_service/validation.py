"""
Input validation run by the transports before a call reaches the service.

Each function returns ``(value, errors)``: the parsed value when the input is
valid, otherwise ``None`` and the list of every field that failed.
"""

from typing import Any, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from user_service.core.exceptions import FieldError, ValidationError
from user_service.schemas.user import UserCreate, UserUpdate

M = TypeVar("M", bound=BaseModel)

BODY_FIELD = "body"


def _field_errors(exc: PydanticValidationError) -> List[FieldError]:
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error["loc"]]
        field = ".".join(loc) if loc else BODY_FIELD
        message = error["msg"]
        if error["type"] == "extra_forbidden":
            message = "property should not exist"
        errors.append(FieldError(field, message))
    return errors


def _validate(schema: Type[M], payload: Any) -> Tuple[Optional[M], List[FieldError]]:
    if not isinstance(payload, dict):
        return None, [FieldError(BODY_FIELD, "must be a JSON object")]
    try:
        return schema.model_validate(payload), []
    except PydanticValidationError as e:
        return None, _field_errors(e)


# PUBLIC_INTERFACE
def validate_create(payload: Any) -> Tuple[Optional[UserCreate], List[FieldError]]:
    """
    Validate a create payload.

    Args:
        payload: Decoded JSON sent by the caller

    Returns:
        Tuple of the parsed ``UserCreate`` (or None) and the field errors
    """
    return _validate(UserCreate, payload)


# PUBLIC_INTERFACE
def validate_update(payload: Any) -> Tuple[Optional[UserUpdate], List[FieldError]]:
    """
    Validate a partial update payload.

    Args:
        payload: Decoded JSON sent by the caller

    Returns:
        Tuple of the parsed ``UserUpdate`` (or None) and the field errors
    """
    return _validate(UserUpdate, payload)


# PUBLIC_INTERFACE
def validate_user_id(value: Any, field: str = "id") -> Tuple[Optional[int], List[FieldError]]:
    """Accept integers only; booleans and numeric strings are rejected."""
    if isinstance(value, bool) or not isinstance(value, int):
        return None, [FieldError(field, "must be an integer")]
    return value, []


def validate_lookup(value: Any, field: str) -> Tuple[Optional[str], List[FieldError]]:
    """Accept a non-empty string key for email/username lookups."""
    if not isinstance(value, str) or not value:
        return None, [FieldError(field, "must be a non-empty string")]
    return value, []


def require_valid(result: Tuple[Optional[Any], List[FieldError]]) -> Any:
    """
    Unwrap a validation result.

    Raises:
        ValidationError: If the result carries errors
    """
    value, errors = result
    if errors:
        raise ValidationError(errors)
    return value
