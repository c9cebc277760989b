from datetime import datetime, time, timedelta
from typing import List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from ..core.database import transaction
from ..core.exceptions import ForbiddenError, NotFoundError, ValidationError
from ..core.security import UserRole
from ..models.appointment import Appointment
from ..models.audit_log import AuditAction
from ..models.doctor import Doctor
from ..models.medical_record import MedicalRecord, Prescription, VitalSign
from ..models.user import User
from ..schemas.common import SortOrder
from ..schemas.medical_record import (
    MedicalRecordCreate, MedicalRecordQuery, MedicalRecordUpdate, RecordSortField,
    VitalSignCreate, VitalSignQuery
)
from .audit_service import record_audit

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    RecordSortField.CREATED_AT: MedicalRecord.created_at,
    RecordSortField.RECORD_TYPE: MedicalRecord.record_type,
    RecordSortField.TITLE: MedicalRecord.title,
}


def day_start(value) -> datetime:
    return datetime.combine(value, time.min)


def calculate_bmi(weight_kg: Optional[float], height_cm: Optional[float]) -> Optional[float]:
    """Body mass index rounded to one decimal, when both inputs are present."""
    if not weight_kg or not height_cm:
        return None
    height_m = height_cm / 100
    return round(weight_kg / (height_m * height_m), 1)


class MedicalRecordService:
    def __init__(self, db: Session):
        self.db = db

    def list_records(self, actor: User, params: MedicalRecordQuery) -> Tuple[List[MedicalRecord], int]:
        query = self.db.query(MedicalRecord)

        if actor.role == UserRole.PATIENT:
            query = query.filter(MedicalRecord.patient_id == actor.id)
        else:
            if actor.role == UserRole.DOCTOR:
                query = query.filter(MedicalRecord.doctor_id == self._doctor_for(actor).id)
            if params.patient_id is not None:
                query = query.filter(MedicalRecord.patient_id == params.patient_id)

        if params.record_type is not None:
            query = query.filter(MedicalRecord.record_type == params.record_type)
        if params.start_date is not None:
            query = query.filter(MedicalRecord.created_at >= day_start(params.start_date))
        if params.end_date is not None:
            query = query.filter(MedicalRecord.created_at < day_start(params.end_date) + timedelta(days=1))

        total = query.count()

        column = _SORT_COLUMNS[params.sort_by]
        ordering = column.asc() if params.sort_order == SortOrder.ASC else column.desc()
        records = query.order_by(ordering, MedicalRecord.id.desc()).offset(params.offset).limit(params.limit).all()
        return records, total

    def get_record(self, record_id: int, actor: User) -> MedicalRecord:
        record = self._get(record_id)
        if actor.role == UserRole.PATIENT and record.patient_id != actor.id:
            raise ForbiddenError("Access denied to this medical record")
        if actor.role == UserRole.DOCTOR and record.doctor_id != self._doctor_for(actor).id:
            raise ForbiddenError("Access denied to this medical record")
        return record

    def create_record(self, actor: User, data: MedicalRecordCreate) -> MedicalRecord:
        """Insert a record and its prescriptions as one unit."""
        doctor = self._doctor_for(actor)

        with transaction(self.db):
            self._active_patient(data.patient_id)
            if data.appointment_id is not None:
                self._appointment_between(data.appointment_id, data.patient_id, doctor.id)

            record = MedicalRecord(
                patient_id=data.patient_id,
                doctor_id=doctor.id,
                appointment_id=data.appointment_id,
                record_type=data.record_type,
                title=data.title,
                description=data.description,
                diagnosis=data.diagnosis,
                treatment_plan=data.treatment_plan,
                file_url=data.file_url,
                file_type=data.file_type,
                is_confidential=data.is_confidential,
            )
            record.prescriptions = [
                Prescription(**prescription.model_dump()) for prescription in data.prescriptions
            ]
            self.db.add(record)
            self.db.flush()
            record_audit(
                self.db, AuditAction.MEDICAL_RECORD_CREATED, actor.id, "medical_records", record.id,
                new_values={"patient_id": record.patient_id, "record_type": record.record_type, "title": record.title},
            )

        logger.info(
            f"Doctor {doctor.id} created medical record {record.id} for patient {record.patient_id} "
            f"with {len(data.prescriptions)} prescription(s)"
        )
        return record

    def update_record(self, record_id: int, actor: User, changes: MedicalRecordUpdate) -> MedicalRecord:
        record = self._get(record_id)
        if record.doctor_id != self._doctor_for(actor).id:
            raise ForbiddenError("Access denied to update this medical record")

        updates = {field: value for field, value in changes.model_dump(exclude_unset=True).items()
                   if value is not None}
        if not updates:
            raise ValidationError("No valid fields to update")

        with transaction(self.db):
            for field, value in updates.items():
                setattr(record, field, value)
            # Field names only; clinical content stays out of the trail
            record_audit(
                self.db, AuditAction.MEDICAL_RECORD_UPDATED, actor.id, "medical_records", record.id,
                new_values={"fields": sorted(updates)},
            )

        logger.info(f"Medical record {record_id} updated fields {sorted(updates)}")
        return record

    def delete_record(self, record_id: int, actor: User) -> None:
        record = self._get(record_id)
        if actor.role != UserRole.ADMIN and (not actor.doctor or record.doctor_id != actor.doctor.id):
            raise ForbiddenError("Access denied to delete this medical record")

        with transaction(self.db):
            record_audit(
                self.db, AuditAction.MEDICAL_RECORD_DELETED, actor.id, "medical_records", record.id,
                old_values={"patient_id": record.patient_id, "title": record.title},
            )
            self.db.delete(record)

        logger.info(f"Medical record {record_id} deleted by user {actor.id}")

    def list_vital_signs(self, patient_id: int, actor: User, params: VitalSignQuery) -> List[VitalSign]:
        if actor.role == UserRole.PATIENT and patient_id != actor.id:
            raise ForbiddenError("Access denied to this patient's vital signs")

        query = self.db.query(VitalSign).filter(VitalSign.patient_id == patient_id)
        if params.start_date is not None:
            query = query.filter(VitalSign.recorded_at >= day_start(params.start_date))
        if params.end_date is not None:
            query = query.filter(VitalSign.recorded_at < day_start(params.end_date) + timedelta(days=1))

        return query.order_by(VitalSign.recorded_at.desc(), VitalSign.id.desc()).limit(params.limit).all()

    def record_vital_signs(self, actor: User, data: VitalSignCreate) -> VitalSign:
        doctor = self._doctor_for(actor)

        with transaction(self.db):
            self._active_patient(data.patient_id)
            if data.appointment_id is not None:
                self._appointment_between(data.appointment_id, data.patient_id, doctor.id)

            vital = VitalSign(
                recorded_by=actor.id,
                bmi=calculate_bmi(data.weight, data.height),
                **data.model_dump()
            )
            self.db.add(vital)

        logger.info(f"Vital signs {vital.id} recorded for patient {vital.patient_id} by user {actor.id}")
        return vital

    def _get(self, record_id: int) -> MedicalRecord:
        record = self.db.query(MedicalRecord).filter(MedicalRecord.id == record_id).first()
        if not record:
            raise NotFoundError("Medical record")
        return record

    def _doctor_for(self, actor: User) -> Doctor:
        if not actor.doctor:
            raise NotFoundError("Doctor profile")
        return actor.doctor

    def _active_patient(self, patient_id: int) -> User:
        patient = self.db.query(User).filter(
            User.id == patient_id,
            User.role == UserRole.PATIENT,
            User.is_active == True
        ).first()
        if not patient:
            raise NotFoundError("Patient")
        return patient

    def _appointment_between(self, appointment_id: int, patient_id: int, doctor_id: int) -> Appointment:
        appointment = self.db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.patient_id == patient_id,
            Appointment.doctor_id == doctor_id
        ).first()
        if not appointment:
            raise NotFoundError("Appointment", "Appointment not found or access denied")
        return appointment
