from typing import List, Sequence
import logging

from sqlalchemy import case
from sqlalchemy.orm import Session

from ..core.database import transaction
from ..core.exceptions import ValidationError
from ..models.doctor import DayOfWeek, DoctorAvailability
from ..schemas.doctor import AvailabilityWindowIn

logger = logging.getLogger(__name__)

# Monday first, matching DayOfWeek.ordinal
_WEEKDAY_ORDER = case(
    {day: day.ordinal for day in DayOfWeek},
    value=DoctorAvailability.day_of_week,
)


class AvailabilityService:
    """Weekly availability windows of a doctor."""

    def __init__(self, db: Session):
        self.db = db

    def get_windows(self, doctor_id: int, day_of_week: DayOfWeek) -> List[DoctorAvailability]:
        """Active windows for one weekday, earliest first."""
        return self.db.query(DoctorAvailability).filter(
            DoctorAvailability.doctor_id == doctor_id,
            DoctorAvailability.day_of_week == day_of_week,
            DoctorAvailability.is_active == True
        ).order_by(DoctorAvailability.start_time).all()

    def list_windows(self, doctor_id: int) -> List[DoctorAvailability]:
        return self.db.query(DoctorAvailability).filter(
            DoctorAvailability.doctor_id == doctor_id,
            DoctorAvailability.is_active == True
        ).order_by(_WEEKDAY_ORDER, DoctorAvailability.start_time).all()

    def set_windows(
        self, doctor_id: int, windows: Sequence[AvailabilityWindowIn]
    ) -> List[DoctorAvailability]:
        """Replace every window of the doctor in a single transaction."""
        for window in windows:
            if window.start_time >= window.end_time:
                raise ValidationError(
                    f"Start time must be before end time ({window.day_of_week.value} "
                    f"{window.start_time:%H:%M}-{window.end_time:%H:%M})"
                )

        with transaction(self.db):
            self.db.query(DoctorAvailability).filter(
                DoctorAvailability.doctor_id == doctor_id
            ).delete(synchronize_session=False)

            created = [
                DoctorAvailability(
                    doctor_id=doctor_id,
                    day_of_week=window.day_of_week,
                    start_time=window.start_time,
                    end_time=window.end_time,
                    is_active=window.is_active,
                )
                for window in windows
            ]
            self.db.add_all(created)

        logger.info(f"Replaced availability for doctor {doctor_id} with {len(created)} windows")
        return created
