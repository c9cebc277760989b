from datetime import date
from typing import Literal, Optional
import re

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from ..core.security import UserRole
from .user import AccountResponse, validate_phone


def normalize_email(value):
    if isinstance(value, str):
        return value.strip().lower()
    return value


def validate_password_strength(value: str) -> str:
    if not re.search(r"[a-z]", value) or not re.search(r"[A-Z]", value) or not re.search(r"\d", value):
        raise ValueError(
            "Password must contain at least one lowercase letter, one uppercase letter, and one number"
        )
    return value


class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    role: Literal[UserRole.PATIENT, UserRole.DOCTOR] = UserRole.PATIENT
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)

    # Doctor-only fields
    specialization: Optional[str] = Field(None, max_length=100)
    license_number: Optional[str] = Field(None, max_length=50)
    years_of_experience: Optional[int] = Field(None, ge=0)
    consultation_fee: Optional[float] = Field(None, ge=0)

    _normalize_email = field_validator("email", mode="before")(normalize_email)
    _check_phone = field_validator("phone")(validate_phone)
    _check_password = field_validator("password")(validate_password_strength)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_names(cls, value):
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def require_doctor_fields(self):
        if self.role == UserRole.DOCTOR and not (self.specialization and self.license_number):
            raise ValueError("Specialization and license number are required for doctors")
        return self


class UserLogin(BaseModel):
    email: str
    password: str = Field(..., min_length=1)

    _normalize_email = field_validator("email", mode="before")(normalize_email)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class ChangePassword(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=72)

    _check_password = field_validator("new_password")(validate_password_strength)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: AccountResponse


class TokenVerification(BaseModel):
    valid: bool
    user_id: int
    role: UserRole
    expires: int
