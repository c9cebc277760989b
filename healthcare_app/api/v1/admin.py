from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...api.deps import get_admin_user, get_database, get_settings
from ...core.config import Settings
from ...core.database import Database, get_db
from ...schemas.admin import (
    AuditLogListResponse, AuditLogQuery, ConfigResponse, DashboardResponse, SystemHealthResponse
)
from ...services.admin_service import AdminService

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(get_admin_user)])


def get_admin_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> AdminService:
    return AdminService(db, settings)


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(service: AdminService = Depends(get_admin_service)):
    """User, appointment, revenue and record statistics."""
    return service.dashboard()


@router.get("/audit-logs", response_model=AuditLogListResponse)
def audit_logs(
    params: Annotated[AuditLogQuery, Query()],
    service: AdminService = Depends(get_admin_service)
):
    """Audit trail filtered by action, user, table and date range."""
    return service.list_audit_logs(params)


@router.get("/health", response_model=SystemHealthResponse)
def system_health(
    database: Database = Depends(get_database),
    service: AdminService = Depends(get_admin_service)
):
    return service.system_health(database)


@router.get("/config", response_model=ConfigResponse)
def runtime_config(service: AdminService = Depends(get_admin_service)):
    return service.runtime_config()
