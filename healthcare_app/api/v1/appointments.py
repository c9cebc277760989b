from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Annotated

from ...api.deps import get_current_user, get_patient_user, get_settings
from ...core.config import Settings
from ...core.database import get_db
from ...models.user import User
from ...schemas.appointment import (
    AppointmentCancelResponse, AppointmentCreate, AppointmentListResponse,
    AppointmentMessageResponse, AppointmentQuery, AppointmentResponse, AppointmentUpdate
)
from ...schemas.common import PaginationMeta
from ...services.appointment_service import AppointmentService

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointment_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> AppointmentService:
    return AppointmentService(db, settings)


@router.get("", response_model=AppointmentListResponse)
def list_appointments(
    params: Annotated[AppointmentQuery, Query()],
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Appointments visible to the caller, filtered and paginated."""
    appointments, total = service.list_appointments(current_user, params)
    return AppointmentListResponse(
        appointments=[AppointmentResponse.from_appointment(a) for a in appointments],
        pagination=PaginationMeta.build(params.page, params.limit, total)
    )


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    return AppointmentResponse.from_appointment(service.get_appointment(appointment_id, current_user))


@router.post("", response_model=AppointmentMessageResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    appointment_data: AppointmentCreate,
    current_user: User = Depends(get_patient_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Book an appointment (patients only)."""
    appointment = service.create_appointment(current_user, appointment_data)
    return AppointmentMessageResponse(
        message="Appointment booked successfully",
        appointment=AppointmentResponse.from_appointment(appointment)
    )


@router.put("/{appointment_id}", response_model=AppointmentMessageResponse)
def update_appointment(
    appointment_id: int,
    changes: AppointmentUpdate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    appointment = service.update_appointment(appointment_id, current_user, changes)
    return AppointmentMessageResponse(
        message="Appointment updated successfully",
        appointment=AppointmentResponse.from_appointment(appointment)
    )


@router.delete("/{appointment_id}", response_model=AppointmentCancelResponse)
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Cancel an appointment."""
    appointment = service.cancel_appointment(appointment_id, current_user)
    return AppointmentCancelResponse(
        message="Appointment cancelled successfully",
        appointment_id=appointment.id
    )
