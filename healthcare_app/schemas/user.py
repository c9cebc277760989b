from datetime import date, datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.security import UserRole
from .common import PageQuery, PaginationMeta

PHONE_PATTERN = re.compile(r"^\+?[\d\s\-\(\)]+$")


def validate_phone(value: Optional[str]) -> Optional[str]:
    if value is not None and not PHONE_PATTERN.match(value):
        raise ValueError("Invalid phone number format")
    return value


class DoctorSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    specialization: str
    license_number: str
    years_of_experience: Optional[int] = None
    consultation_fee: float
    rating: float
    total_reviews: int
    is_available: bool


class AccountBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    is_active: bool
    is_verified: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class PatientAccount(AccountBase):
    role: Literal[UserRole.PATIENT]


class DoctorAccount(AccountBase):
    role: Literal[UserRole.DOCTOR]
    doctor: Optional[DoctorSummary] = None


class AdminAccount(AccountBase):
    role: Literal[UserRole.ADMIN]


AccountResponse = Annotated[
    Union[PatientAccount, DoctorAccount, AdminAccount],
    Field(discriminator="role"),
]

_ACCOUNT_VARIANTS = {
    UserRole.PATIENT: PatientAccount,
    UserRole.DOCTOR: DoctorAccount,
    UserRole.ADMIN: AdminAccount,
}


def account_from_user(user) -> Union[PatientAccount, DoctorAccount, AdminAccount]:
    """Project an account onto the variant matching its role."""
    return _ACCOUNT_VARIANTS[UserRole(user.role)].model_validate(user)


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    emergency_contact_name: Optional[str] = Field(None, max_length=100)
    emergency_contact_phone: Optional[str] = None

    _check_phone = field_validator("phone", "emergency_contact_phone")(validate_phone)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_names(cls, value):
        return value.strip() if isinstance(value, str) else value


class UserStatusUpdate(BaseModel):
    is_active: bool


class UserSortField(str, Enum):
    CREATED_AT = "created_at"
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    EMAIL = "email"
    ROLE = "role"


class UserQuery(PageQuery):
    role: Optional[UserRole] = None
    search: Optional[str] = None
    is_active: Optional[bool] = None
    sort_by: UserSortField = UserSortField.CREATED_AT


class UserListResponse(BaseModel):
    users: List[AccountResponse]
    pagination: PaginationMeta


class UserStatusResponse(BaseModel):
    message: str
    user_id: int
    is_active: bool


class UserDeleteResponse(BaseModel):
    message: str
    user_id: int
