from typing import Any, Dict, Optional
import logging

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from ..models.audit_log import AuditAction, AuditLog

logger = logging.getLogger(__name__)


def record_audit(
    db: Session,
    action: AuditAction,
    user_id: Optional[int],
    table_name: str,
    record_id: Optional[int],
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Stage an audit entry in the caller's transaction."""
    entry = AuditLog(
        user_id=user_id,
        action=action,
        table_name=table_name,
        record_id=record_id,
        old_values=jsonable_encoder(old_values) if old_values is not None else None,
        new_values=jsonable_encoder(new_values) if new_values is not None else None,
    )
    db.add(entry)
    logger.debug(f"Audit {action.value} on {table_name} {record_id} by user {user_id}")
    return entry
