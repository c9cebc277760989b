from datetime import date
import enum

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Numeric, Time, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base
from .user import enum_values


class DayOfWeek(str, enum.Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        return list(cls)[value.weekday()]

    @property
    def ordinal(self) -> int:
        return list(DayOfWeek).index(self)


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    # Professional information
    specialization = Column(String(100), nullable=False, index=True)
    license_number = Column(String(50), nullable=False, unique=True)
    years_of_experience = Column(Integer, default=0)
    education = Column(Text, nullable=True)
    certifications = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    consultation_fee = Column(Numeric(10, 2), default=0, nullable=False)
    rating = Column(Numeric(3, 2), default=0, nullable=False)
    total_reviews = Column(Integer, default=0, nullable=False)

    # Availability
    is_available = Column(Boolean, default=True, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="doctor")
    availability = relationship(
        "DoctorAvailability",
        back_populates="doctor",
        cascade="all, delete",
        order_by="DoctorAvailability.start_time",
    )
    appointments = relationship("Appointment", back_populates="doctor", cascade="all, delete")
    medical_records = relationship("MedicalRecord", back_populates="doctor", cascade="all, delete")

    def __repr__(self):
        return f"<Doctor(id={self.id}, user_id={self.user_id}, specialization='{self.specialization}')>"


class DoctorAvailability(Base):
    __tablename__ = "doctor_availability"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(SQLEnum(DayOfWeek, name="day_of_week", values_callable=enum_values), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("Doctor", back_populates="availability")

    def __repr__(self):
        return (
            f"<DoctorAvailability(doctor_id={self.doctor_id}, day='{self.day_of_week}', "
            f"{self.start_time}-{self.end_time})>"
        )
