from typing import List, Tuple
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.database import transaction
from ..core.exceptions import NotFoundError, ValidationError
from ..models.audit_log import AuditAction
from ..models.user import User
from ..schemas.common import SortOrder
from ..schemas.user import ProfileUpdate, UserQuery, UserSortField
from .audit_service import record_audit
from .auth_service import revoke_refresh_tokens

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    UserSortField.CREATED_AT: User.created_at,
    UserSortField.FIRST_NAME: User.first_name,
    UserSortField.LAST_NAME: User.last_name,
    UserSortField.EMAIL: User.email,
    UserSortField.ROLE: User.role,
}


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User")
        return user

    def update_profile(self, user: User, changes: ProfileUpdate) -> User:
        updates = {field: value for field, value in changes.model_dump(exclude_unset=True).items()
                   if value is not None}
        if not updates:
            raise ValidationError("No valid fields to update")

        with transaction(self.db):
            for field, value in updates.items():
                setattr(user, field, value)

        logger.info(f"User {user.id} updated profile fields {sorted(updates)}")
        return user

    def list_users(self, params: UserQuery) -> Tuple[List[User], int]:
        query = self.db.query(User)

        if params.role is not None:
            query = query.filter(User.role == params.role)
        if params.is_active is not None:
            query = query.filter(User.is_active == params.is_active)
        if params.search:
            pattern = f"%{params.search.strip()}%"
            query = query.filter(or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern)
            ))

        total = query.count()

        column = _SORT_COLUMNS[params.sort_by]
        ordering = column.asc() if params.sort_order == SortOrder.ASC else column.desc()
        users = query.order_by(ordering, User.id).offset(params.offset).limit(params.limit).all()
        return users, total

    def set_status(self, actor: User, user_id: int, is_active: bool) -> User:
        """Activate or deactivate an account; deactivation signs it out everywhere."""
        if user_id == actor.id and not is_active:
            raise ValidationError("Cannot deactivate your own account")

        user = self.get_user(user_id)
        with transaction(self.db):
            user.is_active = is_active
            if not is_active:
                revoke_refresh_tokens(self.db, user.id)
            record_audit(
                self.db,
                AuditAction.USER_ACTIVATED if is_active else AuditAction.USER_DEACTIVATED,
                actor.id, "users", user.id,
                new_values={"is_active": is_active},
            )

        logger.info(f"User {user_id} {'activated' if is_active else 'deactivated'} by admin {actor.id}")
        return user

    def delete_user(self, actor: User, user_id: int) -> None:
        if user_id == actor.id:
            raise ValidationError("Cannot delete your own account")

        user = self.get_user(user_id)
        with transaction(self.db):
            record_audit(
                self.db, AuditAction.USER_DELETED, actor.id, "users", user.id,
                old_values={"email": user.email, "role": user.role},
            )
            self.db.delete(user)

        logger.info(f"User {user_id} deleted by admin {actor.id}")
