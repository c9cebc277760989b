from typing import List, Tuple
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..core.database import transaction
from ..core.exceptions import NotFoundError, ValidationError
from ..models.doctor import Doctor
from ..models.user import User
from ..schemas.common import SortOrder
from ..schemas.doctor import DoctorProfileUpdate, DoctorQuery, DoctorSortField

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    DoctorSortField.RATING: Doctor.rating,
    DoctorSortField.CONSULTATION_FEE: Doctor.consultation_fee,
    DoctorSortField.YEARS_OF_EXPERIENCE: Doctor.years_of_experience,
    DoctorSortField.TOTAL_REVIEWS: Doctor.total_reviews,
}


class DoctorService:
    def __init__(self, db: Session):
        self.db = db

    def list_doctors(self, params: DoctorQuery) -> Tuple[List[Doctor], int]:
        """Public directory of doctors whose accounts are active."""
        query = self.db.query(Doctor).join(User, Doctor.user_id == User.id).filter(
            User.is_active == True
        )

        if params.available:
            query = query.filter(Doctor.is_available == True)
        if params.specialization:
            query = query.filter(Doctor.specialization.ilike(f"%{params.specialization.strip()}%"))
        if params.search:
            pattern = f"%{params.search.strip()}%"
            query = query.filter(or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                Doctor.specialization.ilike(pattern)
            ))
        if params.min_rating is not None:
            query = query.filter(Doctor.rating >= params.min_rating)
        if params.max_fee is not None:
            query = query.filter(Doctor.consultation_fee <= params.max_fee)

        total = query.count()

        column = _SORT_COLUMNS[params.sort_by]
        ordering = column.asc() if params.sort_order == SortOrder.ASC else column.desc()
        doctors = query.options(
            joinedload(Doctor.user), joinedload(Doctor.availability)
        ).order_by(ordering, Doctor.id).offset(params.offset).limit(params.limit).all()
        return doctors, total

    def get_doctor(self, doctor_id: int) -> Doctor:
        doctor = self.db.query(Doctor).join(User, Doctor.user_id == User.id).filter(
            Doctor.id == doctor_id,
            User.is_active == True
        ).first()
        if not doctor:
            raise NotFoundError("Doctor")
        return doctor

    def get_profile(self, user: User) -> Doctor:
        if not user.doctor:
            raise NotFoundError("Doctor profile")
        return user.doctor

    def update_profile(self, user: User, changes: DoctorProfileUpdate) -> Doctor:
        doctor = self.get_profile(user)
        updates = {field: value for field, value in changes.model_dump(exclude_unset=True).items()
                   if value is not None}
        if not updates:
            raise ValidationError("No valid fields to update")

        with transaction(self.db):
            for field, value in updates.items():
                setattr(doctor, field, value)

        logger.info(f"Doctor {doctor.id} updated profile fields {sorted(updates)}")
        return doctor
