from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from typing import Optional
import logging

from ..models.user import User, RefreshToken
from ..models.audit_log import AuditAction
from ..models.doctor import Doctor
from ..core.config import Settings
from ..core.database import transaction
from ..core.exceptions import ConflictError, UnauthorizedError, ValidationError
from ..core.security import (
    verify_password, get_password_hash, dummy_verify_password, create_token_pair,
    decode_token, hash_token, TokenError, TokenPayload, TokenType, UserRole
)
from ..schemas.auth import UserRegister, TokenResponse, TokenVerification
from ..schemas.user import account_from_user
from .audit_service import record_audit

logger = logging.getLogger(__name__)

# Token failure reason -> (error code, message)
_TOKEN_ERRORS = {
    TokenError.MISSING: ("TOKEN_MISSING", "Access token required"),
    TokenError.MALFORMED: ("INVALID_TOKEN", "Invalid token"),
    TokenError.EXPIRED: ("TOKEN_EXPIRED", "Token expired"),
    TokenError.WRONG_TYPE: ("INVALID_TOKEN", "Invalid token type"),
}


def revoke_refresh_tokens(db: Session, user_id: int) -> int:
    """Revoke every live refresh token of a user; the caller owns the transaction."""
    return db.query(RefreshToken).filter(
        RefreshToken.user_id == user_id,
        RefreshToken.is_revoked == False
    ).update({"is_revoked": True}, synchronize_session=False)


class AuthService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    @property
    def rounds(self) -> int:
        return self.settings.BCRYPT_ROUNDS

    def register(self, user_data: UserRegister) -> TokenResponse:
        """Create an account (and doctor profile) and log it in."""
        try:
            with transaction(self.db):
                existing_user = self.db.query(User).filter(
                    User.email == user_data.email
                ).first()
                if existing_user:
                    raise ConflictError("Email already registered", code="EMAIL_EXISTS")

                is_doctor = user_data.role == UserRole.DOCTOR
                if is_doctor and self.db.query(Doctor).filter(
                    Doctor.license_number == user_data.license_number
                ).first():
                    raise ConflictError("License number already registered", code="LICENSE_EXISTS")

                new_user = User(
                    email=user_data.email,
                    password_hash=get_password_hash(user_data.password, self.rounds),
                    role=user_data.role,
                    first_name=user_data.first_name,
                    last_name=user_data.last_name,
                    phone=user_data.phone,
                    date_of_birth=user_data.date_of_birth,
                    gender=user_data.gender,
                    is_active=True,
                    is_verified=False
                )
                if is_doctor:
                    new_user.doctor = Doctor(
                        specialization=user_data.specialization,
                        license_number=user_data.license_number,
                        years_of_experience=user_data.years_of_experience or 0,
                        consultation_fee=user_data.consultation_fee or 0,
                    )

                self.db.add(new_user)
                self.db.flush()
                response = self._issue_tokens(new_user)
        except IntegrityError:
            # Lost a race with a concurrent registration
            raise ConflictError("Email or license number already registered", code="ACCOUNT_EXISTS")

        logger.info(f"Registered {user_data.role.value} account {new_user.id}")
        return response

    def login(self, email: str, password: str) -> TokenResponse:
        """Authenticate user and return tokens."""
        email = email.strip().lower()
        user = self.db.query(User).filter(User.email == email).first()

        if not user:
            dummy_verify_password(self.rounds)
            raise UnauthorizedError("Invalid email or password", code="INVALID_CREDENTIALS")

        if not verify_password(password, user.password_hash, self.rounds):
            raise UnauthorizedError("Invalid email or password", code="INVALID_CREDENTIALS")

        if not user.is_active:
            raise UnauthorizedError("Account is deactivated", code="ACCOUNT_INACTIVE")

        with transaction(self.db):
            user.last_login = datetime.utcnow()
            response = self._issue_tokens(user)

        logger.info(f"User {user.id} logged in")
        return response

    def refresh(self, refresh_token: str) -> TokenResponse:
        """Rotate a refresh token; each token can be used exactly once."""
        token_payload = self._decode(refresh_token, TokenType.REFRESH)

        with transaction(self.db):
            # Conditional revoke: only one concurrent caller can flip the flag
            revoked = self.db.query(RefreshToken).filter(
                RefreshToken.user_id == token_payload.sub,
                RefreshToken.token_hash == hash_token(refresh_token),
                RefreshToken.is_revoked == False,
                RefreshToken.expires_at > datetime.utcnow()
            ).update({"is_revoked": True}, synchronize_session=False)

            if revoked != 1:
                raise UnauthorizedError("Invalid or expired refresh token", code="INVALID_TOKEN")

            user = self.db.query(User).filter(User.id == token_payload.sub).first()
            if not user or not user.is_active:
                raise UnauthorizedError("User not found or inactive", code="ACCOUNT_INACTIVE")

            response = self._issue_tokens(user)

        logger.info(f"Rotated refresh token for user {user.id}")
        return response

    def logout(self, user: User, refresh_token: Optional[str] = None) -> int:
        """Revoke one refresh token, or every live one when none is given."""
        query = self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user.id,
            RefreshToken.is_revoked == False
        )
        if refresh_token:
            query = query.filter(RefreshToken.token_hash == hash_token(refresh_token))

        with transaction(self.db):
            revoked = query.update({"is_revoked": True}, synchronize_session=False)

        logger.info(f"User {user.id} logged out, {revoked} refresh token(s) revoked")
        return revoked

    def authenticate(self, access_token: Optional[str]) -> User:
        """Resolve the account behind an access token."""
        token_payload = self._decode(access_token, TokenType.ACCESS)

        user = self.db.query(User).filter(User.id == token_payload.sub).first()
        if not user:
            raise UnauthorizedError("User not found", code="INVALID_TOKEN")

        if not user.is_active:
            raise UnauthorizedError("Account is deactivated", code="ACCOUNT_INACTIVE")

        return user

    def verify_access_token(self, access_token: Optional[str]) -> TokenVerification:
        token_payload = self._decode(access_token, TokenType.ACCESS)
        user = self.authenticate(access_token)
        return TokenVerification(
            valid=True,
            user_id=user.id,
            role=user.role,
            expires=token_payload.exp
        )

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        """Change the password and sign the account out everywhere."""
        if not verify_password(current_password, user.password_hash, self.rounds):
            raise ValidationError("Current password is incorrect", code="INVALID_PASSWORD")

        with transaction(self.db):
            user.password_hash = get_password_hash(new_password, self.rounds)
            revoke_refresh_tokens(self.db, user.id)
            record_audit(self.db, AuditAction.PASSWORD_CHANGED, user.id, "users", user.id)

        logger.info(f"Password changed for user {user.id}")

    def bootstrap_admin(self, email: str, password: str) -> User:
        """Create the first admin account unless it already exists."""
        email = email.strip().lower()
        admin = self.db.query(User).filter(User.email == email).first()
        if admin:
            return admin

        with transaction(self.db):
            admin = User(
                email=email,
                password_hash=get_password_hash(password, self.rounds),
                role=UserRole.ADMIN,
                first_name="System",
                last_name="Administrator",
                is_active=True,
                is_verified=True
            )
            self.db.add(admin)

        logger.info(f"Created admin account {email}")
        return admin

    def _decode(self, token: Optional[str], token_type: TokenType) -> TokenPayload:
        try:
            return decode_token(token, token_type, self.settings)
        except TokenError as exc:
            code, message = _TOKEN_ERRORS[exc.reason]
            raise UnauthorizedError(message, code=code)

    def _issue_tokens(self, user: User) -> TokenResponse:
        """Create a token pair and persist the refresh token's digest."""
        tokens = create_token_pair(user.id, self.settings)

        self.db.add(RefreshToken(
            user_id=user.id,
            token_hash=hash_token(tokens.refresh_token),
            expires_at=tokens.refresh_expires_at
        ))

        return TokenResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
            user=account_from_user(user)
        )
