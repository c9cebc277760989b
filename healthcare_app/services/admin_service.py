from datetime import datetime, timedelta
import platform
import time

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session, joinedload

from ..core.config import Settings
from ..core.database import Base, Database
from ..core.security import UserRole
from ..models.appointment import Appointment, AppointmentStatus, AppointmentType, PaymentStatus
from ..models.audit_log import AuditLog
from ..models.doctor import Doctor
from ..models.medical_record import MedicalRecord, RecordType
from ..models.user import User
from ..schemas.admin import (
    ActivityItem, AppointmentStatistics, AuditLogListResponse, AuditLogQuery, AuditLogResponse,
    AuditLogSortField, ConfigResponse, DashboardResponse, DashboardStatistics, DatabaseHealth,
    RecordStatistics, RevenueStatistics, SystemHealthResponse, TableCount, TopDoctor, UserStatistics
)
from ..schemas.common import PaginationMeta, SortOrder
from .medical_record_service import day_start

RECENT_ACTIVITY_DAYS = 7
RECENT_ACTIVITY_LIMIT = 20
TOP_DOCTORS_LIMIT = 10

STARTED_AT = time.time()

_AUDIT_SORT_COLUMNS = {
    AuditLogSortField.CREATED_AT: AuditLog.created_at,
    AuditLogSortField.ACTION: AuditLog.action,
    AuditLogSortField.TABLE_NAME: AuditLog.table_name,
}


def _count_if(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _sum_if(condition, column):
    return func.coalesce(func.sum(case((condition, column), else_=0)), 0)


class AdminService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def dashboard(self) -> DashboardResponse:
        now = datetime.utcnow()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        week_ago = today - timedelta(days=RECENT_ACTIVITY_DAYS)

        statistics = DashboardStatistics(
            users=self._user_statistics(today, week_ago),
            appointments=self._appointment_statistics(today, week_ago),
            revenue=self._revenue_statistics(today, week_ago, today - timedelta(days=30)),
            records=self._record_statistics(week_ago),
        )
        return DashboardResponse(
            statistics=statistics,
            recent_activity=self._recent_activity(week_ago),
            top_doctors=self._top_doctors(),
        )

    def system_health(self, database: Database) -> SystemHealthResponse:
        status = "healthy" if database.ping() else "unhealthy"
        tables = [
            TableCount(name=table.name, rows=self.db.execute(
                select(func.count()).select_from(table)
            ).scalar_one())
            for table in Base.metadata.sorted_tables
        ]
        tables.sort(key=lambda table: table.rows, reverse=True)

        return SystemHealthResponse(
            database=DatabaseHealth(status=status, dialect=database.dialect, tables=tables),
            system={
                "uptime": round(time.time() - STARTED_AT, 2),
                "python_version": platform.python_version(),
                "environment": "testing" if self.settings.TESTING else ("development" if self.settings.DEBUG else "production"),
                "timestamp": datetime.utcnow().isoformat(),
            },
        )

    def runtime_config(self) -> ConfigResponse:
        """Runtime configuration without secrets or credentials."""
        settings = self.settings
        return ConfigResponse(config={
            "app_name": settings.APP_NAME,
            "version": settings.VERSION,
            "api_version": "v1",
            "debug": settings.DEBUG,
            "testing": settings.TESTING,
            "features": {
                "rate_limiting": {
                    "enabled": True,
                    "window_seconds": settings.RATE_LIMIT_WINDOW_SECONDS,
                    "max_requests": settings.RATE_LIMIT_MAX_REQUESTS,
                },
                "cors": {
                    "enabled": True,
                    "allowed_origins": settings.ALLOWED_ORIGINS,
                },
                "jwt": {
                    "algorithm": settings.ALGORITHM,
                    "access_token_expire_minutes": settings.ACCESS_TOKEN_EXPIRE_MINUTES,
                    "refresh_token_expire_days": settings.REFRESH_TOKEN_EXPIRE_DAYS,
                },
            },
            "database": {
                "dialect": self.db.get_bind().dialect.name,
                "pool_size": settings.DB_POOL_SIZE,
                "pool_timeout": settings.DB_POOL_TIMEOUT,
                "statement_timeout_ms": settings.DB_STATEMENT_TIMEOUT_MS,
            },
        })

    def list_audit_logs(self, params: AuditLogQuery) -> AuditLogListResponse:
        """Audit trail, newest first unless asked otherwise."""
        query = self.db.query(AuditLog)

        if params.action is not None:
            query = query.filter(AuditLog.action == params.action)
        if params.user_id is not None:
            query = query.filter(AuditLog.user_id == params.user_id)
        if params.table_name:
            query = query.filter(AuditLog.table_name == params.table_name)
        if params.start_date is not None:
            query = query.filter(AuditLog.created_at >= day_start(params.start_date))
        if params.end_date is not None:
            query = query.filter(AuditLog.created_at < day_start(params.end_date) + timedelta(days=1))

        total = query.count()

        column = _AUDIT_SORT_COLUMNS[params.sort_by]
        if params.sort_order == SortOrder.ASC:
            ordering = (column.asc(), AuditLog.id.asc())
        else:
            ordering = (column.desc(), AuditLog.id.desc())
        entries = (
            query.options(joinedload(AuditLog.user))
            .order_by(*ordering)
            .offset(params.offset)
            .limit(params.limit)
            .all()
        )

        return AuditLogListResponse(
            audit_logs=[AuditLogResponse.from_entry(entry) for entry in entries],
            pagination=PaginationMeta.build(params.page, params.limit, total),
        )

    def _user_statistics(self, today: datetime, week_ago: datetime) -> UserStatistics:
        row = self.db.query(
            func.count(User.id).label("total_users"),
            _count_if(User.role == UserRole.PATIENT).label("total_patients"),
            _count_if(User.role == UserRole.DOCTOR).label("total_doctors"),
            _count_if(User.is_active == True).label("active_users"),
            _count_if(User.created_at >= today).label("new_users_today"),
            _count_if(User.created_at >= week_ago).label("new_users_week"),
        ).one()
        return UserStatistics(**row._asdict())

    def _appointment_statistics(self, today: datetime, week_ago: datetime) -> AppointmentStatistics:
        row = self.db.query(
            func.count(Appointment.id).label("total_appointments"),
            _count_if(Appointment.status == AppointmentStatus.SCHEDULED).label("scheduled_appointments"),
            _count_if(Appointment.status == AppointmentStatus.COMPLETED).label("completed_appointments"),
            _count_if(Appointment.status == AppointmentStatus.CANCELLED).label("cancelled_appointments"),
            _count_if(Appointment.appointment_date == today.date()).label("appointments_today"),
            _count_if(Appointment.created_at >= week_ago).label("appointments_week"),
            _count_if(Appointment.type == AppointmentType.VIRTUAL).label("virtual_appointments"),
            func.coalesce(func.avg(Appointment.consultation_fee), 0).label("avg_consultation_fee"),
        ).one()
        return AppointmentStatistics(**row._asdict())

    def _revenue_statistics(self, today: datetime, week_ago: datetime, month_ago: datetime) -> RevenueStatistics:
        paid = Appointment.payment_status == PaymentStatus.PAID
        fee = Appointment.consultation_fee
        row = self.db.query(
            _sum_if(paid, fee).label("total_revenue"),
            _sum_if(paid & (Appointment.created_at >= today), fee).label("revenue_today"),
            _sum_if(paid & (Appointment.created_at >= week_ago), fee).label("revenue_week"),
            _sum_if(paid & (Appointment.created_at >= month_ago), fee).label("revenue_month"),
        ).one()
        return RevenueStatistics(**row._asdict())

    def _record_statistics(self, week_ago: datetime) -> RecordStatistics:
        row = self.db.query(
            func.count(MedicalRecord.id).label("total_records"),
            _count_if(MedicalRecord.record_type == RecordType.CONSULTATION).label("consultation_records"),
            _count_if(MedicalRecord.record_type == RecordType.PRESCRIPTION).label("prescription_records"),
            _count_if(MedicalRecord.record_type == RecordType.LAB_RESULT).label("lab_result_records"),
            _count_if(MedicalRecord.created_at >= week_ago).label("records_week"),
        ).one()
        return RecordStatistics(**row._asdict())

    def _recent_activity(self, since: datetime):
        registrations = self.db.query(User).filter(
            User.created_at >= since
        ).order_by(User.created_at.desc()).limit(RECENT_ACTIVITY_LIMIT).all()
        bookings = self.db.query(Appointment).filter(
            Appointment.created_at >= since
        ).order_by(Appointment.created_at.desc()).limit(RECENT_ACTIVITY_LIMIT).all()

        activity = [
            ActivityItem(
                type="user_registered",
                description=user.full_name,
                metadata=user.role.value,
                timestamp=user.created_at,
            )
            for user in registrations
        ] + [
            ActivityItem(
                type="appointment_created",
                description=f"Appointment with {appointment.doctor.user.full_name}",
                metadata=appointment.type.value,
                timestamp=appointment.created_at,
            )
            for appointment in bookings
        ]
        activity.sort(key=lambda item: item.timestamp or datetime.min, reverse=True)
        return activity[:RECENT_ACTIVITY_LIMIT]

    def _top_doctors(self):
        completed = func.count(Appointment.id)
        rows = self.db.query(
            Doctor.id,
            User.first_name,
            User.last_name,
            Doctor.specialization,
            Doctor.rating,
            completed.label("appointment_count"),
        ).join(
            User, Doctor.user_id == User.id
        ).outerjoin(
            Appointment,
            (Appointment.doctor_id == Doctor.id) & (Appointment.status == AppointmentStatus.COMPLETED)
        ).filter(
            User.is_active == True
        ).group_by(
            Doctor.id, User.first_name, User.last_name, Doctor.specialization, Doctor.rating
        ).order_by(completed.desc(), Doctor.id).limit(TOP_DOCTORS_LIMIT).all()

        return [
            TopDoctor(
                name=f"{row.first_name} {row.last_name}",
                specialization=row.specialization,
                appointment_count=row.appointment_count,
                rating=row.rating or 0,
            )
            for row in rows
        ]
