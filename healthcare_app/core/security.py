from datetime import datetime, timedelta
from functools import lru_cache
from typing import Optional, Tuple
from enum import Enum
import hashlib
import secrets
import uuid

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from fastapi.security import HTTPBearer
from pydantic import BaseModel
from pydantic import ValidationError as PayloadValidationError

from .config import Settings

# JWT Security
security = HTTPBearer(auto_error=False)


class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class Token(BaseModel):
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime
    token_type: str = "bearer"
    expires_in: int


class TokenPayload(BaseModel):
    sub: int
    exp: int
    iat: Optional[int] = None
    jti: Optional[str] = None
    token_type: TokenType


class TokenError(Exception):
    """Raised when a JWT cannot be accepted; ``reason`` says why."""

    MISSING = "missing"
    MALFORMED = "malformed"
    EXPIRED = "expired"
    WRONG_TYPE = "wrong_type"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


# Password utilities
@lru_cache(maxsize=None)
def get_password_context(rounds: int) -> CryptContext:
    """Bcrypt context for the configured cost factor."""
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def verify_password(plain_password: str, hashed_password: str, rounds: int) -> bool:
    """Verify a plain password against its hash."""
    return get_password_context(rounds).verify(plain_password, hashed_password)


def get_password_hash(password: str, rounds: int) -> str:
    """Generate password hash."""
    return get_password_context(rounds).hash(password)


def dummy_verify_password(rounds: int) -> None:
    """Spend the same time as a real verification when there is no account."""
    get_password_context(rounds).dummy_verify()


def hash_token(token: str) -> str:
    """One-way digest used to store refresh tokens."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_meeting_room_id() -> str:
    return secrets.token_urlsafe(9)


# JWT utilities
def _secret_for(token_type: TokenType, settings: Settings) -> str:
    if token_type == TokenType.REFRESH:
        return settings.REFRESH_SECRET_KEY
    return settings.SECRET_KEY


def create_access_token(
    user_id: int,
    settings: Settings,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create JWT access token."""
    now = datetime.utcnow()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + expires_delta,
        "token_type": TokenType.ACCESS.value,
    }

    return jwt.encode(
        to_encode,
        _secret_for(TokenType.ACCESS, settings),
        algorithm=settings.ALGORITHM
    )


def create_refresh_token(
    user_id: int,
    settings: Settings,
    expires_delta: Optional[timedelta] = None
) -> Tuple[str, datetime]:
    """Create JWT refresh token and return it with its expiry."""
    now = datetime.utcnow()
    if expires_delta is None:
        expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    expire = now + expires_delta

    # jti keeps two tokens issued within the same second distinct
    to_encode = {
        "sub": str(user_id),
        "iat": now,
        "exp": expire,
        "jti": uuid.uuid4().hex,
        "token_type": TokenType.REFRESH.value,
    }

    encoded_jwt = jwt.encode(
        to_encode,
        _secret_for(TokenType.REFRESH, settings),
        algorithm=settings.ALGORITHM
    )
    return encoded_jwt, expire


def decode_token(token: Optional[str], token_type: TokenType, settings: Settings) -> TokenPayload:
    """Verify and decode a JWT of the expected type.

    Raises ``TokenError`` with the reason the token was refused.
    """
    if not token:
        raise TokenError(TokenError.MISSING)

    try:
        payload = jwt.decode(
            token,
            _secret_for(token_type, settings),
            algorithms=[settings.ALGORITHM]
        )
    except ExpiredSignatureError:
        raise TokenError(TokenError.EXPIRED)
    except JWTError:
        raise TokenError(TokenError.MALFORMED)

    try:
        token_payload = TokenPayload(**payload)
    except PayloadValidationError:
        raise TokenError(TokenError.MALFORMED)

    if token_payload.token_type != token_type:
        raise TokenError(TokenError.WRONG_TYPE)

    return token_payload


def create_token_pair(user_id: int, settings: Settings) -> Token:
    """Create both access and refresh tokens."""
    access_token = create_access_token(user_id, settings)
    refresh_token, refresh_expires_at = create_refresh_token(user_id, settings)

    return Token(
        access_token=access_token,
        refresh_token=refresh_token,
        refresh_expires_at=refresh_expires_at,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    )
