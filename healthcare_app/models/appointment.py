from sqlalchemy import (
    Column, Integer, String, ForeignKey, Date, DateTime, Time, Text, Numeric, Index, text, Enum as SQLEnum
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base
from .user import enum_values


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class AppointmentType(str, enum.Enum):
    IN_PERSON = "in-person"
    VIRTUAL = "virtual"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_date_time", "appointment_date", "appointment_time"),
        # Only live appointments hold a slot; cancelled ones can be re-booked
        Index(
            "uq_appointments_doctor_live_slot",
            "doctor_id",
            "appointment_date",
            "appointment_time",
            unique=True,
            postgresql_where=text("status IN ('scheduled', 'confirmed', 'in-progress')"),
            sqlite_where=text("status IN ('scheduled', 'confirmed', 'in-progress')"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)

    # Appointment details
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, default=30, nullable=False)
    type = Column(
        SQLEnum(AppointmentType, name="appointment_type", values_callable=enum_values),
        default=AppointmentType.IN_PERSON,
        nullable=False,
    )
    status = Column(
        SQLEnum(AppointmentStatus, name="appointment_status", values_callable=enum_values),
        default=AppointmentStatus.SCHEDULED,
        nullable=False,
        index=True,
    )
    reason_for_visit = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    virtual_meeting_url = Column(String(500), nullable=True)

    # Billing, fee is copied from the doctor at booking time
    consultation_fee = Column(Numeric(10, 2), default=0, nullable=False)
    payment_status = Column(
        SQLEnum(PaymentStatus, name="payment_status", values_callable=enum_values),
        default=PaymentStatus.PENDING,
        nullable=False,
    )

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("User", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")
    medical_records = relationship("MedicalRecord", back_populates="appointment")

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, patient_id={self.patient_id}, doctor_id={self.doctor_id}, "
            f"date='{self.appointment_date}', time='{self.appointment_time}', status='{self.status}')>"
        )
