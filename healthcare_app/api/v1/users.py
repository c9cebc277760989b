from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Annotated

from ...api.deps import get_admin_user, get_current_user
from ...core.database import get_db
from ...models.user import User
from ...schemas.common import PaginationMeta
from ...schemas.user import (
    AccountResponse, ProfileUpdate, UserDeleteResponse, UserListResponse,
    UserQuery, UserStatusResponse, UserStatusUpdate, account_from_user
)
from ...services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/profile", response_model=AccountResponse)
def get_profile(current_user: User = Depends(get_current_user)):
    return account_from_user(current_user)


@router.put("/profile", response_model=AccountResponse)
def update_profile(
    changes: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update the caller's personal and contact details."""
    user = UserService(db).update_profile(current_user, changes)
    return account_from_user(user)


# Admin routes
@router.get("", response_model=UserListResponse)
def list_users(
    params: Annotated[UserQuery, Query()],
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """List all users (admin only)."""
    users, total = UserService(db).list_users(params)
    return UserListResponse(
        users=[account_from_user(user) for user in users],
        pagination=PaginationMeta.build(params.page, params.limit, total)
    )


@router.get("/{user_id}", response_model=AccountResponse)
def get_user(
    user_id: int,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    return account_from_user(UserService(db).get_user(user_id))


@router.put("/{user_id}/status", response_model=UserStatusResponse)
def update_user_status(
    user_id: int,
    status_data: UserStatusUpdate,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Update user active status (admin only)."""
    user = UserService(db).set_status(admin, user_id, status_data.is_active)
    return UserStatusResponse(
        message=f"User {'activated' if user.is_active else 'deactivated'} successfully",
        user_id=user.id,
        is_active=user.is_active
    )


@router.delete("/{user_id}", response_model=UserDeleteResponse)
def delete_user(
    user_id: int,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    UserService(db).delete_user(admin, user_id)
    return UserDeleteResponse(message="User deleted successfully", user_id=user_id)
