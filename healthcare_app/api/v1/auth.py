from fastapi import APIRouter, Depends, status
from typing import Optional

from ...api.deps import (
    get_auth_service, get_current_user, get_access_token, rate_limit_check
)
from ...services.auth_service import AuthService
from ...schemas.auth import (
    UserLogin, UserRegister, TokenResponse, RefreshTokenRequest,
    LogoutRequest, ChangePassword, TokenVerification
)
from ...schemas.common import MessageResponse
from ...schemas.user import AccountResponse, account_from_user
from ...models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserRegister,
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(rate_limit_check)
):
    """Register a new user."""
    return auth_service.register(user_data)


@router.post("/login", response_model=TokenResponse)
def login(
    login_data: UserLogin,
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(rate_limit_check)
):
    """Authenticate user and return access tokens."""
    return auth_service.login(login_data.email, login_data.password)


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(
    refresh_data: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Refresh access token using refresh token."""
    return auth_service.refresh(refresh_data.refresh_token)


@router.post("/logout", response_model=MessageResponse)
def logout(
    logout_data: Optional[LogoutRequest] = None,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Revoke the given refresh token, or all of them."""
    auth_service.logout(current_user, logout_data.refresh_token if logout_data else None)
    return {"message": "Successfully logged out"}


@router.get("/me", response_model=AccountResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return account_from_user(current_user)


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    password_data: ChangePassword,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Change user password."""
    auth_service.change_password(
        current_user, password_data.current_password, password_data.new_password
    )
    return {"message": "Password changed successfully"}


@router.post("/verify-token", response_model=TokenVerification)
def verify_token_endpoint(
    token: Optional[str] = Depends(get_access_token),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Verify if token is valid."""
    return auth_service.verify_access_token(token)
