from sqlalchemy import (
    Column, Integer, String, ForeignKey, Date, DateTime, Boolean, Text, Numeric, Enum as SQLEnum
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base
from .user import enum_values


class RecordType(str, enum.Enum):
    CONSULTATION = "consultation"
    PRESCRIPTION = "prescription"
    LAB_RESULT = "lab_result"
    IMAGING = "imaging"
    VACCINATION = "vaccination"
    SURGERY = "surgery"
    OTHER = "other"


class MedicalRecord(Base):
    __tablename__ = "medical_records"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True)

    record_type = Column(SQLEnum(RecordType, name="record_type", values_callable=enum_values), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    diagnosis = Column(Text, nullable=True)
    treatment_plan = Column(Text, nullable=True)
    file_url = Column(String(500), nullable=True)
    file_type = Column(String(50), nullable=True)
    is_confidential = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("User", back_populates="medical_records", foreign_keys=[patient_id])
    doctor = relationship("Doctor", back_populates="medical_records")
    appointment = relationship("Appointment", back_populates="medical_records")
    prescriptions = relationship(
        "Prescription",
        back_populates="medical_record",
        cascade="all, delete",
        order_by="Prescription.id.desc()",
    )

    def __repr__(self):
        return f"<MedicalRecord(id={self.id}, patient_id={self.patient_id}, type='{self.record_type}')>"


class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, index=True)
    medical_record_id = Column(
        Integer, ForeignKey("medical_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    medication_name = Column(String(200), nullable=False)
    dosage = Column(String(100), nullable=False)
    frequency = Column(String(100), nullable=False)
    duration_days = Column(Integer, nullable=True)
    instructions = Column(Text, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    medical_record = relationship("MedicalRecord", back_populates="prescriptions")

    def __repr__(self):
        return f"<Prescription(id={self.id}, medication='{self.medication_name}')>"


class VitalSign(Base):
    __tablename__ = "vital_signs"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recorded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True)

    blood_pressure_systolic = Column(Integer, nullable=True)
    blood_pressure_diastolic = Column(Integer, nullable=True)
    heart_rate = Column(Integer, nullable=True)
    temperature = Column(Numeric(4, 1), nullable=True)
    weight = Column(Numeric(5, 2), nullable=True)  # kg
    height = Column(Numeric(5, 2), nullable=True)  # cm
    bmi = Column(Numeric(4, 1), nullable=True)
    oxygen_saturation = Column(Integer, nullable=True)
    respiratory_rate = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    recorded_at = Column(DateTime, server_default=func.now(), index=True)

    patient = relationship("User", back_populates="vital_signs", foreign_keys=[patient_id])
    recorder = relationship("User", foreign_keys=[recorded_by])
    appointment = relationship("Appointment")

    def __repr__(self):
        return f"<VitalSign(id={self.id}, patient_id={self.patient_id}, recorded_at='{self.recorded_at}')>"
