from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Annotated

from ...api.deps import get_current_user, get_doctor_user
from ...core.database import get_db
from ...models.user import User
from ...schemas.common import MessageResponse, PaginationMeta
from ...schemas.medical_record import (
    MedicalRecordCreate, MedicalRecordListResponse, MedicalRecordMessageResponse,
    MedicalRecordQuery, MedicalRecordResponse, MedicalRecordUpdate,
    VitalSignCreate, VitalSignListResponse, VitalSignQuery, VitalSignResponse
)
from ...services.medical_record_service import MedicalRecordService

router = APIRouter(prefix="/medical-records", tags=["Medical Records"])


@router.get("", response_model=MedicalRecordListResponse)
def list_records(
    params: Annotated[MedicalRecordQuery, Query()],
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    records, total = MedicalRecordService(db).list_records(current_user, params)
    return MedicalRecordListResponse(
        records=[MedicalRecordResponse.from_record(record) for record in records],
        pagination=PaginationMeta.build(params.page, params.limit, total)
    )


@router.get("/vital-signs/{patient_id}", response_model=VitalSignListResponse)
def list_vital_signs(
    patient_id: int,
    params: Annotated[VitalSignQuery, Query()],
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    vitals = MedicalRecordService(db).list_vital_signs(patient_id, current_user, params)
    return VitalSignListResponse(vital_signs=[VitalSignResponse.from_vital_sign(v) for v in vitals])


@router.post("/vital-signs", response_model=VitalSignResponse, status_code=status.HTTP_201_CREATED)
def record_vital_signs(
    vital_data: VitalSignCreate,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    vital = MedicalRecordService(db).record_vital_signs(current_user, vital_data)
    return VitalSignResponse.from_vital_sign(vital)


@router.get("/{record_id}", response_model=MedicalRecordResponse)
def get_record(
    record_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """A single record with its prescriptions."""
    record = MedicalRecordService(db).get_record(record_id, current_user)
    return MedicalRecordResponse.from_record(record, with_prescriptions=True)


@router.post("", response_model=MedicalRecordMessageResponse, status_code=status.HTTP_201_CREATED)
def create_record(
    record_data: MedicalRecordCreate,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    record = MedicalRecordService(db).create_record(current_user, record_data)
    return MedicalRecordMessageResponse(
        message="Medical record created successfully",
        record=MedicalRecordResponse.from_record(record, with_prescriptions=True)
    )


@router.put("/{record_id}", response_model=MedicalRecordMessageResponse)
def update_record(
    record_id: int,
    changes: MedicalRecordUpdate,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    record = MedicalRecordService(db).update_record(record_id, current_user, changes)
    return MedicalRecordMessageResponse(
        message="Medical record updated successfully",
        record=MedicalRecordResponse.from_record(record)
    )


@router.delete("/{record_id}", response_model=MessageResponse)
def delete_record(
    record_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a record and its prescriptions (author or admin)."""
    MedicalRecordService(db).delete_record(record_id, current_user)
    return {"message": "Medical record deleted successfully"}
