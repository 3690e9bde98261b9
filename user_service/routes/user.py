"""
User API endpoints.

Each endpoint validates its input, then hands the call to ``UserService``.
"""

from typing import Any, List
from fastapi import APIRouter, Body, Depends, Response, status

from user_service.dependencies import get_user_service
from user_service.schemas.user import UserResponse
from user_service.services.user import UserService
from user_service.validation import require_valid, validate_create, validate_update


router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: Any = Body(None),
    service: UserService = Depends(get_user_service)
) -> UserResponse:
    """Create new user."""
    return service.create(require_valid(validate_create(payload)))


@router.get("", response_model=List[UserResponse])
def get_users(service: UserService = Depends(get_user_service)) -> List[UserResponse]:
    """Get all active users, newest first."""
    return service.list_active()


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    service: UserService = Depends(get_user_service)
) -> UserResponse:
    """Get user by ID, including inactive users."""
    return service.get_by_id(user_id)


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    payload: Any = Body(None),
    service: UserService = Depends(get_user_service)
) -> UserResponse:
    """Update the fields present in the body."""
    return service.update(user_id, require_valid(validate_update(payload)))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_user(
    user_id: int,
    service: UserService = Depends(get_user_service)
) -> Response:
    """Soft delete: mark the user inactive."""
    service.soft_delete(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{user_id}/hard", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def hard_delete_user(
    user_id: int,
    service: UserService = Depends(get_user_service)
) -> Response:
    """Permanently remove the user."""
    service.hard_delete(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
