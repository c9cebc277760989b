from datetime import date, time, timedelta

import pytest

from healthcare_app.core.exceptions import NotFoundError, ValidationError
from healthcare_app.models.appointment import Appointment, AppointmentStatus
from healthcare_app.models.doctor import DayOfWeek
from healthcare_app.schemas.doctor import AvailabilityWindowIn
from healthcare_app.services.availability_service import AvailabilityService
from healthcare_app.services.scheduling_service import (
    SchedulingService, can_transition, free_slots, generate_slot_starts, spans_overlap
)

from tests.conftest import create_account, next_monday, test_doctor_data


def test_generate_slot_starts_stops_before_window_end() -> None:
    slots = generate_slot_starts(time(9, 0), time(10, 45))

    assert slots == [time(9, 0), time(9, 30), time(10, 0), time(10, 30)]


def test_generate_slot_starts_full_day_yields_sixteen_slots() -> None:
    slots = generate_slot_starts(time(9, 0), time(17, 0))

    assert len(slots) == 16
    assert slots[0] == time(9, 0)
    assert slots[-1] == time(16, 30)


def test_generate_slot_starts_empty_when_window_is_degenerate() -> None:
    assert generate_slot_starts(time(9, 0), time(9, 0)) == []


@pytest.mark.parametrize(
    ('first', 'second', 'expected'),
    [
        ((600, 630), (600, 630), True),
        ((600, 630), (615, 645), True),
        ((600, 630), (630, 660), False),
        ((630, 660), (600, 630), False),
        ((540, 600), (550, 560), True),
    ],
)
def test_spans_overlap_is_half_open(first, second, expected) -> None:
    assert spans_overlap(first, second) is expected


def test_free_slots_removes_only_the_booked_slot() -> None:
    slots = free_slots([(time(9, 0), time(17, 0))], [(time(10, 0), 30)])

    assert len(slots) == 15
    assert time(10, 0) not in slots
    assert time(9, 30) in slots
    assert time(10, 30) in slots


def test_free_slots_long_booking_blocks_every_overlapped_slot() -> None:
    slots = free_slots([(time(9, 0), time(12, 0))], [(time(9, 15), 60)])

    assert slots == [time(10, 30), time(11, 0), time(11, 30)]


def test_free_slots_deduplicates_overlapping_windows() -> None:
    slots = free_slots(
        [(time(9, 0), time(11, 0)), (time(10, 0), time(12, 0))],
        [],
    )

    assert slots == [time(9, 0), time(9, 30), time(10, 0), time(10, 30), time(11, 0), time(11, 30)]


def test_free_slots_sorted_across_windows() -> None:
    slots = free_slots([(time(14, 0), time(15, 0)), (time(8, 0), time(9, 0))], [])

    assert slots == [time(8, 0), time(8, 30), time(14, 0), time(14, 30)]


@pytest.mark.parametrize(
    ('current', 'new', 'allowed'),
    [
        (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED, True),
        (AppointmentStatus.SCHEDULED, AppointmentStatus.IN_PROGRESS, True),
        (AppointmentStatus.SCHEDULED, AppointmentStatus.CANCELLED, True),
        (AppointmentStatus.SCHEDULED, AppointmentStatus.NO_SHOW, True),
        (AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED, False),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.IN_PROGRESS, True),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.SCHEDULED, False),
        (AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED, True),
        (AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED, False),
        (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, False),
        (AppointmentStatus.CANCELLED, AppointmentStatus.SCHEDULED, False),
        (AppointmentStatus.NO_SHOW, AppointmentStatus.COMPLETED, False),
    ],
)
def test_can_transition(current, new, allowed) -> None:
    assert can_transition(current, new) is allowed


def test_day_of_week_from_date() -> None:
    assert DayOfWeek.from_date(date(2026, 1, 5)) == DayOfWeek.MONDAY
    assert DayOfWeek.from_date(date(2026, 1, 11)) == DayOfWeek.SUNDAY


class TestSchedulingService:

    @pytest.fixture
    def doctor(self, db_session, settings):
        user = create_account(db_session, settings, **test_doctor_data)
        AvailabilityService(db_session).set_windows(user.doctor.id, [
            AvailabilityWindowIn(day_of_week="monday", start_time=time(9, 0), end_time=time(17, 0)),
        ])
        return user.doctor

    @pytest.fixture
    def patient(self, db_session, settings):
        return create_account(db_session, settings)

    def _appointment(self, db_session, doctor, patient, at, status=AppointmentStatus.SCHEDULED, duration=30):
        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            appointment_date=next_monday(),
            appointment_time=at,
            duration_minutes=duration,
            status=status,
            consultation_fee=0,
        )
        db_session.add(appointment)
        db_session.commit()
        return appointment

    def test_sixteen_slots_on_empty_day(self, db_session, doctor):
        slots = SchedulingService(db_session).available_slots(doctor.id, next_monday())
        assert len(slots) == 16

    def test_no_slots_on_day_without_windows(self, db_session, doctor):
        tuesday = next_monday() + timedelta(days=1)
        assert SchedulingService(db_session).available_slots(doctor.id, tuesday) == []

    def test_booking_removes_overlapping_slot(self, db_session, doctor, patient):
        self._appointment(db_session, doctor, patient, time(10, 0))

        slots = SchedulingService(db_session).available_slots(doctor.id, next_monday())
        assert len(slots) == 15
        assert time(10, 0) not in slots

    @pytest.mark.parametrize(
        'status', [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW]
    )
    def test_finished_appointments_free_their_slot(self, db_session, doctor, patient, status):
        self._appointment(db_session, doctor, patient, time(10, 0), status=status)

        slots = SchedulingService(db_session).available_slots(doctor.id, next_monday())
        assert time(10, 0) in slots

    def test_in_progress_appointment_occupies_slot(self, db_session, doctor, patient):
        self._appointment(db_session, doctor, patient, time(10, 0), status=AppointmentStatus.IN_PROGRESS)

        slots = SchedulingService(db_session).available_slots(doctor.id, next_monday())
        assert time(10, 0) not in slots

    def test_unavailable_doctor_has_no_slots(self, db_session, doctor):
        doctor.is_available = False
        db_session.commit()

        assert SchedulingService(db_session).available_slots(doctor.id, next_monday()) == []

    def test_inactive_doctor_account_has_no_slots(self, db_session, doctor):
        doctor.user.is_active = False
        db_session.commit()

        assert SchedulingService(db_session).available_slots(doctor.id, next_monday()) == []

    def test_unknown_doctor(self, db_session):
        with pytest.raises(NotFoundError):
            SchedulingService(db_session).available_slots(9999, next_monday())

    def test_past_date_rejected(self, db_session, doctor):
        with pytest.raises(ValidationError):
            SchedulingService(db_session).available_slots(doctor.id, date.today() - timedelta(days=2))

    def test_check_conflict_exact_match(self, db_session, doctor, patient):
        appointment = self._appointment(db_session, doctor, patient, time(10, 0))
        service = SchedulingService(db_session)

        assert service.check_conflict(doctor.id, next_monday(), time(10, 0)) is True
        assert service.check_conflict(doctor.id, next_monday(), time(10, 15)) is False
        assert service.check_conflict(
            doctor.id, next_monday(), time(10, 0), exclude_appointment_id=appointment.id
        ) is False

    def test_check_conflict_ignores_in_progress_and_cancelled(self, db_session, doctor, patient):
        self._appointment(db_session, doctor, patient, time(10, 0), status=AppointmentStatus.IN_PROGRESS)
        self._appointment(db_session, doctor, patient, time(11, 0), status=AppointmentStatus.CANCELLED)
        service = SchedulingService(db_session)

        assert service.check_conflict(doctor.id, next_monday(), time(10, 0)) is False
        assert service.check_conflict(doctor.id, next_monday(), time(11, 0)) is False
