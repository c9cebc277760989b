from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.security import UserRole
from ..models.audit_log import AuditAction
from .common import PageQuery, PaginationMeta


class UserStatistics(BaseModel):
    total_users: int
    total_patients: int
    total_doctors: int
    active_users: int
    new_users_today: int
    new_users_week: int


class AppointmentStatistics(BaseModel):
    total_appointments: int
    scheduled_appointments: int
    completed_appointments: int
    cancelled_appointments: int
    appointments_today: int
    appointments_week: int
    virtual_appointments: int
    avg_consultation_fee: float


class RevenueStatistics(BaseModel):
    total_revenue: float
    revenue_today: float
    revenue_week: float
    revenue_month: float


class RecordStatistics(BaseModel):
    total_records: int
    consultation_records: int
    prescription_records: int
    lab_result_records: int
    records_week: int


class DashboardStatistics(BaseModel):
    users: UserStatistics
    appointments: AppointmentStatistics
    revenue: RevenueStatistics
    records: RecordStatistics


class ActivityItem(BaseModel):
    type: str
    description: str
    metadata: Optional[str] = None
    timestamp: Optional[datetime] = None


class TopDoctor(BaseModel):
    name: str
    specialization: str
    appointment_count: int
    rating: float


class DashboardResponse(BaseModel):
    statistics: DashboardStatistics
    recent_activity: List[ActivityItem]
    top_doctors: List[TopDoctor]


class TableCount(BaseModel):
    name: str
    rows: int


class DatabaseHealth(BaseModel):
    status: str
    dialect: str
    tables: List[TableCount]


class SystemHealthResponse(BaseModel):
    database: DatabaseHealth
    system: Dict[str, Any]


class ConfigResponse(BaseModel):
    config: Dict[str, Any]


class AuditLogSortField(str, Enum):
    CREATED_AT = "created_at"
    ACTION = "action"
    TABLE_NAME = "table_name"


class AuditLogQuery(PageQuery):
    limit: int = Field(50, ge=1, le=100)
    action: Optional[AuditAction] = None
    user_id: Optional[int] = None
    table_name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    sort_by: AuditLogSortField = AuditLogSortField.CREATED_AT


class AuditLogResponse(BaseModel):
    id: int
    action: AuditAction
    table_name: Optional[str] = None
    record_id: Optional[int] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    user_role: Optional[UserRole] = None

    @classmethod
    def from_entry(cls, entry) -> "AuditLogResponse":
        user = entry.user
        return cls(
            id=entry.id,
            action=entry.action,
            table_name=entry.table_name,
            record_id=entry.record_id,
            old_values=entry.old_values,
            new_values=entry.new_values,
            created_at=entry.created_at,
            user_id=entry.user_id,
            user_name=user.full_name if user else None,
            user_email=user.email if user else None,
            user_role=user.role if user else None,
        )


class AuditLogListResponse(BaseModel):
    audit_logs: List[AuditLogResponse]
    pagination: PaginationMeta
