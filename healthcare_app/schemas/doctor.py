from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.doctor import DayOfWeek
from .common import PageQuery, PaginationMeta, SortOrder, truncate_to_minute


class AvailabilityWindowIn(BaseModel):
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    is_active: bool = True

    _whole_minutes = field_validator("start_time", "end_time")(truncate_to_minute)

    @field_validator("day_of_week", mode="before")
    @classmethod
    def normalize_day(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class AvailabilityWindowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: DayOfWeek
    start_time: time
    end_time: time


class AvailabilityUpdate(BaseModel):
    availability: List[AvailabilityWindowIn]


class DoctorProfileUpdate(BaseModel):
    bio: Optional[str] = None
    education: Optional[str] = None
    certifications: Optional[str] = None
    consultation_fee: Optional[float] = Field(None, ge=0)
    is_available: Optional[bool] = None


class DoctorResponse(BaseModel):
    id: int
    name: str
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    specialization: str
    license_number: str
    years_of_experience: Optional[int] = None
    education: Optional[str] = None
    certifications: Optional[str] = None
    bio: Optional[str] = None
    consultation_fee: float
    rating: float
    total_reviews: int
    is_available: bool
    created_at: Optional[datetime] = None
    availability: List[AvailabilityWindowOut] = []

    @classmethod
    def from_doctor(cls, doctor) -> "DoctorResponse":
        user = doctor.user
        return cls(
            id=doctor.id,
            name=user.full_name,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            phone=user.phone,
            specialization=doctor.specialization,
            license_number=doctor.license_number,
            years_of_experience=doctor.years_of_experience,
            education=doctor.education,
            certifications=doctor.certifications,
            bio=doctor.bio,
            consultation_fee=doctor.consultation_fee or 0,
            rating=doctor.rating or 0,
            total_reviews=doctor.total_reviews or 0,
            is_available=doctor.is_available,
            created_at=doctor.created_at,
            availability=sorted(
                (window for window in doctor.availability if window.is_active),
                key=lambda window: (DayOfWeek(window.day_of_week).ordinal, window.start_time),
            ),
        )


class DoctorSortField(str, Enum):
    RATING = "rating"
    CONSULTATION_FEE = "consultation_fee"
    YEARS_OF_EXPERIENCE = "years_of_experience"
    TOTAL_REVIEWS = "total_reviews"


class DoctorQuery(PageQuery):
    specialization: Optional[str] = None
    search: Optional[str] = None
    min_rating: Optional[float] = Field(None, ge=0, le=5)
    max_fee: Optional[float] = Field(None, ge=0)
    available: bool = True
    sort_by: DoctorSortField = DoctorSortField.RATING
    sort_order: SortOrder = SortOrder.DESC


class DoctorListResponse(BaseModel):
    doctors: List[DoctorResponse]
    pagination: PaginationMeta


class TimeSlot(BaseModel):
    time: str
    available: bool = True


class DoctorSlotsResponse(BaseModel):
    date: date
    day_of_week: DayOfWeek
    available_slots: List[TimeSlot]
    total_slots: int
