"""
Message-pattern handlers.

Maps each ``cmd`` of the message transport to a ``UserService`` call. The
handlers validate the payload exactly like the HTTP routes do and return
JSON-ready values; errors propagate as ``UserServiceError`` subclasses.
"""

import logging
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from user_service.core.exceptions import FieldError, UserServiceError, ValidationError
from user_service.schemas.user import UserInDB
from user_service.services.user import UserService
from user_service.validation import (
    require_valid, validate_create, validate_lookup, validate_update, validate_user_id
)

logger = logging.getLogger(__name__)

NO_HANDLER_MESSAGE = "There is no matching message handler defined in the remote service."

Handler = Callable[[UserService, Any], Any]

HANDLERS: Dict[str, Handler] = {}


class UnknownPatternError(UserServiceError):
    """No handler is registered for the requested pattern."""

    status_code = 404
    error = "Not Found"

    def __init__(self, cmd: Optional[str]):
        super().__init__(NO_HANDLER_MESSAGE)
        self.cmd = cmd


def message_pattern(cmd: str) -> Callable[[Handler], Handler]:
    """Register the decorated function as the handler for ``cmd``."""
    def decorator(func: Handler) -> Handler:
        HANDLERS[cmd] = func
        return func
    return decorator


def to_wire(value: Any) -> Any:
    """Convert a service result to a JSON-ready value."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [to_wire(item) for item in value]
    return value


def _stripped(user: Optional[UserInDB]):
    return user.strip() if user is not None else None


@message_pattern("create_user")
def create_user(service: UserService, data: Any):
    return service.create(require_valid(validate_create(data)))


@message_pattern("get_users")
def get_users(service: UserService, data: Any):
    return service.list_active()


@message_pattern("get_user")
def get_user(service: UserService, data: Any):
    return service.get_by_id(require_valid(validate_user_id(data)))


@message_pattern("get_user_by_email")
def get_user_by_email(service: UserService, data: Any):
    return _stripped(service.get_by_email(require_valid(validate_lookup(data, "email"))))


@message_pattern("get_user_by_username")
def get_user_by_username(service: UserService, data: Any):
    return _stripped(service.get_by_username(require_valid(validate_lookup(data, "username"))))


@message_pattern("update_user")
def update_user(service: UserService, data: Any):
    if not isinstance(data, dict):
        raise ValidationError([FieldError("body", "must be a JSON object")])
    user_id, errors = validate_user_id(data.get("id"))
    # Clients of the previous service generation send the partial as "updateUserDto"
    partial = data.get("partial", data.get("updateUserDto"))
    if partial is None:
        errors.append(FieldError("partial", "Field required"))
    else:
        update, update_errors = validate_update(partial)
        errors.extend(update_errors)
    if errors:
        raise ValidationError(errors)
    return service.update(user_id, update)


@message_pattern("delete_user")
def delete_user(service: UserService, data: Any):
    service.soft_delete(require_valid(validate_user_id(data)))


@message_pattern("hard_delete_user")
def hard_delete_user(service: UserService, data: Any):
    service.hard_delete(require_valid(validate_user_id(data)))


# PUBLIC_INTERFACE
def dispatch(service: UserService, cmd: Optional[str], data: Any) -> Any:
    """
    Run the handler registered for ``cmd``.

    Args:
        service: Service for this message's unit of work
        cmd: Pattern command, e.g. "create_user"
        data: Message payload

    Returns:
        JSON-ready result of the operation

    Raises:
        UnknownPatternError: If no handler is registered for ``cmd``
        UserServiceError: If the operation fails for a caller-visible reason
    """
    handler = HANDLERS.get(cmd) if cmd is not None else None
    if handler is None:
        logger.warning(f"No handler for message pattern {cmd!r}")
        raise UnknownPatternError(cmd)
    return to_wire(handler(service, data))
