from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.medical_record import RecordType
from .common import PageQuery, PaginationMeta, SortOrder


class PrescriptionCreate(BaseModel):
    medication_name: str = Field(..., min_length=1, max_length=200)
    dosage: str = Field(..., min_length=1, max_length=100)
    frequency: str = Field(..., min_length=1, max_length=100)
    duration_days: Optional[int] = Field(None, ge=1)
    instructions: Optional[str] = None
    start_date: date
    end_date: Optional[date] = None


class PrescriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    medication_name: str
    dosage: str
    frequency: str
    duration_days: Optional[int] = None
    instructions: Optional[str] = None
    start_date: date
    end_date: Optional[date] = None
    is_active: bool
    created_at: Optional[datetime] = None


class MedicalRecordCreate(BaseModel):
    patient_id: int = Field(..., ge=1)
    appointment_id: Optional[int] = None
    record_type: RecordType
    title: str = Field(..., min_length=5, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    diagnosis: Optional[str] = Field(None, max_length=1000)
    treatment_plan: Optional[str] = Field(None, max_length=2000)
    file_url: Optional[str] = Field(None, max_length=500)
    file_type: Optional[str] = Field(None, max_length=50)
    is_confidential: bool = False
    prescriptions: List[PrescriptionCreate] = []

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value):
        return value.strip() if isinstance(value, str) else value


class MedicalRecordUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=5, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    diagnosis: Optional[str] = Field(None, max_length=1000)
    treatment_plan: Optional[str] = Field(None, max_length=2000)
    file_url: Optional[str] = Field(None, max_length=500)
    file_type: Optional[str] = Field(None, max_length=50)
    is_confidential: Optional[bool] = None


class MedicalRecordResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    appointment_id: Optional[int] = None
    record_type: RecordType
    title: str
    description: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = None
    file_url: Optional[str] = None
    file_type: Optional[str] = None
    is_confidential: bool
    patient_name: str
    doctor_name: str
    specialization: str
    appointment_date: Optional[date] = None
    appointment_time: Optional[time] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    prescriptions: Optional[List[PrescriptionResponse]] = None

    @classmethod
    def from_record(cls, record, with_prescriptions: bool = False) -> "MedicalRecordResponse":
        appointment = record.appointment
        return cls(
            id=record.id,
            patient_id=record.patient_id,
            doctor_id=record.doctor_id,
            appointment_id=record.appointment_id,
            record_type=record.record_type,
            title=record.title,
            description=record.description,
            diagnosis=record.diagnosis,
            treatment_plan=record.treatment_plan,
            file_url=record.file_url,
            file_type=record.file_type,
            is_confidential=record.is_confidential,
            patient_name=record.patient.full_name,
            doctor_name=record.doctor.user.full_name,
            specialization=record.doctor.specialization,
            appointment_date=appointment.appointment_date if appointment else None,
            appointment_time=appointment.appointment_time if appointment else None,
            created_at=record.created_at,
            updated_at=record.updated_at,
            prescriptions=(
                [PrescriptionResponse.model_validate(p) for p in record.prescriptions]
                if with_prescriptions else None
            ),
        )


class RecordSortField(str, Enum):
    CREATED_AT = "created_at"
    RECORD_TYPE = "record_type"
    TITLE = "title"


class MedicalRecordQuery(PageQuery):
    patient_id: Optional[int] = None
    record_type: Optional[RecordType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    sort_by: RecordSortField = RecordSortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC


class MedicalRecordListResponse(BaseModel):
    records: List[MedicalRecordResponse]
    pagination: PaginationMeta


class MedicalRecordMessageResponse(BaseModel):
    message: str
    record: MedicalRecordResponse


class VitalSignCreate(BaseModel):
    patient_id: int = Field(..., ge=1)
    appointment_id: Optional[int] = None
    blood_pressure_systolic: Optional[int] = Field(None, ge=40, le=300)
    blood_pressure_diastolic: Optional[int] = Field(None, ge=20, le=200)
    heart_rate: Optional[int] = Field(None, ge=20, le=300)
    temperature: Optional[float] = Field(None, ge=25, le=45)
    weight: Optional[float] = Field(None, gt=0, le=700)
    height: Optional[float] = Field(None, gt=0, le=300)
    oxygen_saturation: Optional[int] = Field(None, ge=0, le=100)
    respiratory_rate: Optional[int] = Field(None, ge=0, le=100)
    notes: Optional[str] = Field(None, max_length=1000)


class VitalSignQuery(BaseModel):
    limit: int = Field(10, ge=1, le=100)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class VitalSignResponse(BaseModel):
    id: int
    patient_id: int
    blood_pressure: Optional[str] = None
    heart_rate: Optional[int] = None
    temperature: Optional[float] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    bmi: Optional[float] = None
    oxygen_saturation: Optional[int] = None
    respiratory_rate: Optional[int] = None
    notes: Optional[str] = None
    recorded_at: Optional[datetime] = None
    recorded_by_name: Optional[str] = None
    appointment_date: Optional[date] = None
    appointment_time: Optional[time] = None

    @classmethod
    def from_vital_sign(cls, vital) -> "VitalSignResponse":
        blood_pressure = None
        if vital.blood_pressure_systolic and vital.blood_pressure_diastolic:
            blood_pressure = f"{vital.blood_pressure_systolic}/{vital.blood_pressure_diastolic}"
        appointment = vital.appointment
        return cls(
            id=vital.id,
            patient_id=vital.patient_id,
            blood_pressure=blood_pressure,
            heart_rate=vital.heart_rate,
            temperature=vital.temperature,
            weight=vital.weight,
            height=vital.height,
            bmi=vital.bmi,
            oxygen_saturation=vital.oxygen_saturation,
            respiratory_rate=vital.respiratory_rate,
            notes=vital.notes,
            recorded_at=vital.recorded_at,
            recorded_by_name=vital.recorder.full_name if vital.recorder else None,
            appointment_date=appointment.appointment_date if appointment else None,
            appointment_time=appointment.appointment_time if appointment else None,
        )


class VitalSignListResponse(BaseModel):
    vital_signs: List[VitalSignResponse]
