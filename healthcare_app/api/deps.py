from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional
import logging

import redis

from ..core.config import Settings
from ..core.database import Database, get_db
from ..core.exceptions import ForbiddenError, RateLimitError
from ..core.security import security, UserRole
from ..models.user import User
from ..services.auth_service import AuthService

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_redis(request: Request) -> redis.Redis:
    return request.app.state.redis


def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[str]:
    """Bearer token from the Authorization header, if any."""
    return credentials.credentials if credentials else None


def get_auth_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> AuthService:
    return AuthService(db, settings)


def get_current_user(
    token: Optional[str] = Depends(get_access_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> User:
    """Get current authenticated user from database."""
    return auth_service.authenticate(token)


# Role-based access control dependencies
def require_role(*allowed_roles: UserRole):
    """Create a dependency that requires specific user roles."""
    def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role not in allowed_roles:
            raise ForbiddenError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}",
                code="INSUFFICIENT_PERMISSIONS"
            )
        return current_user

    return role_checker


get_admin_user = require_role(UserRole.ADMIN)
get_doctor_user = require_role(UserRole.DOCTOR)
get_patient_user = require_role(UserRole.PATIENT)


# Rate limiting dependency
def rate_limit_check(
    request: Request,
    redis_client: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings)
) -> None:
    """Fixed-window request counter per client IP for authentication endpoints."""
    client_ip = request.client.host if request.client else "unknown"
    key = f"rate_limit:{client_ip}"

    try:
        current_requests = redis_client.incr(key)
        if current_requests == 1:
            redis_client.expire(key, settings.RATE_LIMIT_WINDOW_SECONDS)
    except redis.RedisError as exc:
        # Rate limiting is unavailable; let the request through
        logger.warning(f"Rate limit check skipped: {exc}")
        return

    if current_requests > settings.RATE_LIMIT_MAX_REQUESTS:
        raise RateLimitError(retry_after=settings.RATE_LIMIT_WINDOW_SECONDS)
