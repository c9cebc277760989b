from datetime import date, datetime, time
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundError, ValidationError
from ..models.appointment import Appointment, AppointmentStatus
from ..models.doctor import DayOfWeek, Doctor
from .availability_service import AvailabilityService

SLOT_STRIDE_MINUTES = 30

# Statuses that occupy a doctor's time when computing free slots
OCCUPYING_STATUSES = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
)

# Statuses that block a booking at the exact same date and time
BLOCKING_STATUSES = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


def can_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    return AppointmentStatus(new) in ALLOWED_TRANSITIONS[AppointmentStatus(current)]


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def _to_time(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def generate_slot_starts(start: time, end: time, stride: int = SLOT_STRIDE_MINUTES) -> List[time]:
    """Candidate start times from ``start`` while strictly before ``end``."""
    return [_to_time(m) for m in range(_minutes(start), _minutes(end), stride)]


def spans_overlap(first: Tuple[int, int], second: Tuple[int, int]) -> bool:
    """Half-open ``[start, end)`` minute spans intersect."""
    return first[0] < second[1] and second[0] < first[1]


def free_slots(
    windows: Iterable[Tuple[time, time]],
    booked: Iterable[Tuple[time, int]],
    stride: int = SLOT_STRIDE_MINUTES,
) -> List[time]:
    """Slot starts inside ``windows`` that do not touch any booked span.

    ``booked`` holds ``(start, duration_minutes)`` pairs. The result is
    sorted and free of duplicates even when windows overlap.
    """
    booked_spans = [(_minutes(start), _minutes(start) + duration) for start, duration in booked]
    slots = set()
    for window_start, window_end in windows:
        for candidate in generate_slot_starts(window_start, window_end, stride):
            span = (_minutes(candidate), _minutes(candidate) + stride)
            if not any(spans_overlap(span, taken) for taken in booked_spans):
                slots.add(candidate)
    return sorted(slots)


class SchedulingService:
    """Free slot computation and double-booking checks."""

    def __init__(self, db: Session):
        self.db = db
        self.availability = AvailabilityService(db)

    def available_slots(self, doctor_id: int, on_date: date) -> List[time]:
        if on_date < datetime.utcnow().date():
            raise ValidationError("Cannot check availability for past dates")

        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise NotFoundError("Doctor")

        if not doctor.is_available or not doctor.user.is_active:
            return []

        windows = self.availability.get_windows(doctor_id, DayOfWeek.from_date(on_date))
        if not windows:
            return []

        booked = self.db.query(
            Appointment.appointment_time, Appointment.duration_minutes
        ).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == on_date,
            Appointment.status.in_(OCCUPYING_STATUSES)
        ).all()

        return free_slots(
            [(window.start_time, window.end_time) for window in windows],
            [(row.appointment_time, row.duration_minutes) for row in booked],
        )

    def check_conflict(
        self,
        doctor_id: int,
        on_date: date,
        at_time: time,
        exclude_appointment_id: Optional[int] = None
    ) -> bool:
        """True when a live booking already holds exactly this date and time."""
        query = self.db.query(Appointment.id).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == on_date,
            Appointment.appointment_time == at_time,
            Appointment.status.in_(BLOCKING_STATUSES)
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.first() is not None
