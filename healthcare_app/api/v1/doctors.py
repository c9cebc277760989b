from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Annotated, List

from ...api.deps import get_doctor_user
from ...core.database import get_db
from ...models.doctor import DayOfWeek
from ...models.user import User
from ...schemas.common import PaginationMeta
from ...schemas.doctor import (
    AvailabilityUpdate, AvailabilityWindowOut, DoctorListResponse, DoctorProfileUpdate,
    DoctorQuery, DoctorResponse, DoctorSlotsResponse, TimeSlot
)
from ...services.availability_service import AvailabilityService
from ...services.doctor_service import DoctorService
from ...services.scheduling_service import SchedulingService

router = APIRouter(prefix="/doctors", tags=["Doctors"])


@router.get("", response_model=DoctorListResponse)
def list_doctors(
    params: Annotated[DoctorQuery, Query()],
    db: Session = Depends(get_db)
):
    """Public directory of active doctors with their weekly hours."""
    doctors, total = DoctorService(db).list_doctors(params)
    return DoctorListResponse(
        doctors=[DoctorResponse.from_doctor(doctor) for doctor in doctors],
        pagination=PaginationMeta.build(params.page, params.limit, total)
    )


# Doctor-only routes
@router.put("/profile", response_model=DoctorResponse)
def update_doctor_profile(
    changes: DoctorProfileUpdate,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    doctor = DoctorService(db).update_profile(current_user, changes)
    return DoctorResponse.from_doctor(doctor)


@router.put("/availability", response_model=List[AvailabilityWindowOut])
def update_doctor_availability(
    availability_data: AvailabilityUpdate,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    """Replace the caller's whole weekly schedule."""
    doctor = DoctorService(db).get_profile(current_user)
    service = AvailabilityService(db)
    service.set_windows(doctor.id, availability_data.availability)
    return service.list_windows(doctor.id)


@router.get("/{doctor_id}", response_model=DoctorResponse)
def get_doctor(
    doctor_id: int,
    db: Session = Depends(get_db)
):
    return DoctorResponse.from_doctor(DoctorService(db).get_doctor(doctor_id))


@router.get("/{doctor_id}/availability/{on_date}", response_model=DoctorSlotsResponse)
def get_doctor_slots(
    doctor_id: int,
    on_date: date,
    db: Session = Depends(get_db)
):
    """Free 30-minute slots for a doctor on a given day."""
    slots = SchedulingService(db).available_slots(doctor_id, on_date)
    return DoctorSlotsResponse(
        date=on_date,
        day_of_week=DayOfWeek.from_date(on_date),
        available_slots=[TimeSlot(time=slot.strftime("%H:%M")) for slot in slots],
        total_slots=len(slots)
    )
