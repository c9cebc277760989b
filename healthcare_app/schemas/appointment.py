from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..models.appointment import AppointmentStatus, AppointmentType, PaymentStatus
from .common import PageQuery, PaginationMeta, SortOrder, truncate_to_minute


def strip_text(value):
    return value.strip() if isinstance(value, str) else value


class AppointmentCreate(BaseModel):
    doctor_id: int = Field(..., ge=1)
    appointment_date: date
    appointment_time: time
    type: AppointmentType = AppointmentType.IN_PERSON
    reason_for_visit: str = Field(..., min_length=10, max_length=500)
    duration_minutes: int = Field(30, ge=15, le=120)

    _strip_reason = field_validator("reason_for_visit", mode="before")(strip_text)
    _whole_minutes = field_validator("appointment_time")(truncate_to_minute)


class AppointmentUpdate(BaseModel):
    """Partial update; only the fields the caller sends are applied."""

    appointment_date: Optional[date] = None
    appointment_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(None, ge=15, le=120)
    type: Optional[AppointmentType] = None
    status: Optional[AppointmentStatus] = None
    reason_for_visit: Optional[str] = Field(None, min_length=10, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)

    _strip_reason = field_validator("reason_for_visit", mode="before")(strip_text)
    _whole_minutes = field_validator("appointment_time")(truncate_to_minute)


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    type: AppointmentType
    status: AppointmentStatus
    reason_for_visit: Optional[str] = None
    notes: Optional[str] = None
    virtual_meeting_url: Optional[str] = None
    consultation_fee: float
    payment_status: PaymentStatus
    patient_name: str
    patient_email: str
    patient_phone: Optional[str] = None
    doctor_name: str
    doctor_email: str
    specialization: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_appointment(cls, appointment) -> "AppointmentResponse":
        patient = appointment.patient
        doctor = appointment.doctor
        return cls(
            id=appointment.id,
            patient_id=appointment.patient_id,
            doctor_id=appointment.doctor_id,
            appointment_date=appointment.appointment_date,
            appointment_time=appointment.appointment_time,
            duration_minutes=appointment.duration_minutes,
            type=appointment.type,
            status=appointment.status,
            reason_for_visit=appointment.reason_for_visit,
            notes=appointment.notes,
            virtual_meeting_url=appointment.virtual_meeting_url,
            consultation_fee=appointment.consultation_fee or 0,
            payment_status=appointment.payment_status,
            patient_name=patient.full_name,
            patient_email=patient.email,
            patient_phone=patient.phone,
            doctor_name=doctor.user.full_name,
            doctor_email=doctor.user.email,
            specialization=doctor.specialization,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )


class AppointmentSortField(str, Enum):
    APPOINTMENT_DATE = "appointment_date"
    APPOINTMENT_TIME = "appointment_time"
    STATUS = "status"
    CREATED_AT = "created_at"


class AppointmentQuery(PageQuery):
    status: Optional[AppointmentStatus] = None
    type: Optional[AppointmentType] = None
    doctor_id: Optional[int] = None
    patient_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    sort_by: AppointmentSortField = AppointmentSortField.APPOINTMENT_DATE
    sort_order: SortOrder = SortOrder.ASC


class AppointmentListResponse(BaseModel):
    appointments: List[AppointmentResponse]
    pagination: PaginationMeta


class AppointmentMessageResponse(BaseModel):
    message: str
    appointment: AppointmentResponse


class AppointmentCancelResponse(BaseModel):
    message: str
    appointment_id: int
