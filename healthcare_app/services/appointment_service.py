from datetime import datetime
from typing import Tuple, List
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.database import transaction
from ..core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..core.security import UserRole, generate_meeting_room_id
from ..models.appointment import Appointment, AppointmentStatus, AppointmentType, PaymentStatus
from ..models.audit_log import AuditAction
from ..models.doctor import Doctor
from ..models.user import User
from ..schemas.appointment import (
    AppointmentCreate, AppointmentUpdate, AppointmentQuery, AppointmentSortField
)
from ..schemas.common import SortOrder
from .audit_service import record_audit
from .scheduling_service import SchedulingService, can_transition

logger = logging.getLogger(__name__)

PATIENT_EDITABLE_FIELDS = frozenset({"appointment_date", "appointment_time", "reason_for_visit"})

_SORT_COLUMNS = {
    AppointmentSortField.APPOINTMENT_DATE: Appointment.appointment_date,
    AppointmentSortField.APPOINTMENT_TIME: Appointment.appointment_time,
    AppointmentSortField.STATUS: Appointment.status,
    AppointmentSortField.CREATED_AT: Appointment.created_at,
}

SLOT_TAKEN = "Time slot is already booked"


class AppointmentService:
    """The only writer of appointments: booking, rescheduling, status and cancellation."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.scheduling = SchedulingService(db)

    def create_appointment(self, patient: User, data: AppointmentCreate) -> Appointment:
        if data.appointment_date < datetime.utcnow().date():
            raise ValidationError("Appointment date cannot be in the past")

        try:
            with transaction(self.db):
                doctor = self._lock_doctor(data.doctor_id)
                if not doctor or not doctor.is_available or not doctor.user.is_active:
                    raise NotFoundError("Doctor", "Doctor not found or not available")

                if self.scheduling.check_conflict(
                    doctor.id, data.appointment_date, data.appointment_time
                ):
                    raise ConflictError(SLOT_TAKEN, code="SLOT_TAKEN")

                appointment = Appointment(
                    patient_id=patient.id,
                    doctor_id=doctor.id,
                    appointment_date=data.appointment_date,
                    appointment_time=data.appointment_time,
                    duration_minutes=data.duration_minutes,
                    type=data.type,
                    status=AppointmentStatus.SCHEDULED,
                    reason_for_visit=data.reason_for_visit,
                    consultation_fee=doctor.consultation_fee,
                    payment_status=PaymentStatus.PENDING,
                )
                if data.type == AppointmentType.VIRTUAL:
                    appointment.virtual_meeting_url = self._meeting_url()

                self.db.add(appointment)
                self.db.flush()
                record_audit(
                    self.db, AuditAction.APPOINTMENT_CREATED, patient.id, "appointments", appointment.id,
                    new_values=data.model_dump(),
                )
        except IntegrityError:
            # The live-slot unique index caught a concurrent booking
            raise ConflictError(SLOT_TAKEN, code="SLOT_TAKEN")

        logger.info(
            f"Appointment {appointment.id} booked with doctor {appointment.doctor_id} "
            f"on {appointment.appointment_date} at {appointment.appointment_time}"
        )
        return appointment

    def update_appointment(self, appointment_id: int, actor: User, changes: AppointmentUpdate) -> Appointment:
        updates = changes.model_dump(exclude_unset=True)

        try:
            with transaction(self.db):
                appointment = self._get_for_write(appointment_id)
                self._ensure_participant(appointment, actor, "update")

                if actor.role == UserRole.PATIENT:
                    if appointment.status != AppointmentStatus.SCHEDULED:
                        raise ForbiddenError("Cannot update appointment that is not scheduled")
                    if set(updates) - PATIENT_EDITABLE_FIELDS:
                        raise ForbiddenError("Patients can only update date, time, and reason for visit")

                # Explicit nulls carry no change
                updates = {field: value for field, value in updates.items() if value is not None}
                if not updates:
                    raise ValidationError("No valid fields to update")

                new_status = updates.get("status")
                if new_status is not None and new_status != appointment.status:
                    if not can_transition(appointment.status, new_status):
                        raise ConflictError(
                            f"Cannot change status from {appointment.status.value} to {new_status.value}",
                            code="INVALID_STATUS_TRANSITION"
                        )

                if "appointment_date" in updates or "appointment_time" in updates:
                    new_date = updates.get("appointment_date", appointment.appointment_date)
                    new_time = updates.get("appointment_time", appointment.appointment_time)
                    if "appointment_date" in updates and new_date < datetime.utcnow().date():
                        raise ValidationError("Appointment date cannot be in the past")
                    if self.scheduling.check_conflict(
                        appointment.doctor_id, new_date, new_time, exclude_appointment_id=appointment.id
                    ):
                        raise ConflictError(SLOT_TAKEN, code="SLOT_TAKEN")

                previous = {field: getattr(appointment, field) for field in updates}
                for field, value in updates.items():
                    setattr(appointment, field, value)

                if updates.get("type") == AppointmentType.VIRTUAL and not appointment.virtual_meeting_url:
                    appointment.virtual_meeting_url = self._meeting_url()

                record_audit(
                    self.db, AuditAction.APPOINTMENT_UPDATED, actor.id, "appointments", appointment.id,
                    old_values=previous, new_values=updates,
                )
        except IntegrityError:
            raise ConflictError(SLOT_TAKEN, code="SLOT_TAKEN")

        logger.info(f"Appointment {appointment_id} updated by user {actor.id}: {sorted(updates)}")
        return appointment

    def cancel_appointment(self, appointment_id: int, actor: User) -> Appointment:
        """Cancel an appointment; cancelling twice is a no-op."""
        with transaction(self.db):
            appointment = self._get_for_write(appointment_id)
            self._ensure_participant(appointment, actor, "cancel")

            if appointment.status == AppointmentStatus.CANCELLED:
                return appointment

            if not can_transition(appointment.status, AppointmentStatus.CANCELLED):
                raise ConflictError(
                    f"Cannot cancel an appointment that is {appointment.status.value}",
                    code="INVALID_STATUS_TRANSITION"
                )

            previous_status = appointment.status
            appointment.status = AppointmentStatus.CANCELLED
            record_audit(
                self.db, AuditAction.APPOINTMENT_CANCELLED, actor.id, "appointments", appointment.id,
                old_values={"status": previous_status}, new_values={"status": appointment.status},
            )

        logger.info(f"Appointment {appointment_id} cancelled by user {actor.id}")
        return appointment

    def get_appointment(self, appointment_id: int, actor: User) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment")
        self._ensure_participant(appointment, actor, "view")
        return appointment

    def list_appointments(self, actor: User, params: AppointmentQuery) -> Tuple[List[Appointment], int]:
        query = self.db.query(Appointment)

        if actor.role == UserRole.PATIENT:
            query = query.filter(Appointment.patient_id == actor.id)
        elif actor.role == UserRole.DOCTOR:
            doctor_id = actor.doctor.id if actor.doctor else None
            query = query.filter(Appointment.doctor_id == doctor_id)
        elif params.doctor_id is not None:
            query = query.filter(Appointment.doctor_id == params.doctor_id)

        if params.patient_id is not None and actor.role in (UserRole.ADMIN, UserRole.DOCTOR):
            query = query.filter(Appointment.patient_id == params.patient_id)
        if params.status is not None:
            query = query.filter(Appointment.status == params.status)
        if params.type is not None:
            query = query.filter(Appointment.type == params.type)
        if params.start_date is not None:
            query = query.filter(Appointment.appointment_date >= params.start_date)
        if params.end_date is not None:
            query = query.filter(Appointment.appointment_date <= params.end_date)

        total = query.count()

        column = _SORT_COLUMNS[params.sort_by]
        ordering = column.asc() if params.sort_order == SortOrder.ASC else column.desc()
        appointments = query.order_by(ordering, Appointment.id).offset(params.offset).limit(params.limit).all()
        return appointments, total

    def _lock_doctor(self, doctor_id: int) -> Doctor:
        # Serializes bookings per doctor where the database supports row locks
        return self.db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update().first()

    def _get_for_write(self, appointment_id: int) -> Appointment:
        appointment = self.db.query(Appointment).filter(
            Appointment.id == appointment_id
        ).with_for_update().first()
        if not appointment:
            raise NotFoundError("Appointment")
        return appointment

    def _ensure_participant(self, appointment: Appointment, actor: User, action: str) -> None:
        if actor.role == UserRole.ADMIN:
            return
        if actor.role == UserRole.PATIENT and appointment.patient_id == actor.id:
            return
        if actor.role == UserRole.DOCTOR and appointment.doctor.user_id == actor.id:
            return
        raise ForbiddenError(f"Access denied to {action} this appointment")

    def _meeting_url(self) -> str:
        return f"{self.settings.VIRTUAL_MEETING_BASE_URL.rstrip('/')}/{generate_meeting_room_id()}"
