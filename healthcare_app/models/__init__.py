from .user import User, RefreshToken
from .doctor import Doctor, DoctorAvailability, DayOfWeek
from .appointment import Appointment, AppointmentStatus, AppointmentType, PaymentStatus
from .medical_record import MedicalRecord, Prescription, VitalSign, RecordType
from .audit_log import AuditLog, AuditAction

__all__ = [
    "User",
    "RefreshToken",
    "Doctor",
    "DoctorAvailability",
    "DayOfWeek",
    "Appointment",
    "AppointmentStatus",
    "AppointmentType",
    "PaymentStatus",
    "MedicalRecord",
    "Prescription",
    "VitalSign",
    "RecordType",
    "AuditLog",
    "AuditAction",
]
