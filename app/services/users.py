"""Admin user management: status, role and soft delete."""

import logging

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ValidationError
from app.models import User, UserRole, UserStatus
from app.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class UserAdminService:
    """Operations an admin performs on other accounts. Commits once per operation."""

    def __init__(self, db: Session) -> None:
        self._db = db
        self._store = CredentialStore(db)

    def list_users(
        self,
        *,
        status: UserStatus | None,
        role: UserRole | None,
        search: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[User], int]:
        return self._store.list_users(
            status=status, role=role, search=search, limit=limit, offset=offset
        )

    def get_user(self, user_id: int) -> User:
        user = self._store.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def change_status(self, actor: User, user_id: int, status: UserStatus) -> User:
        """Leaving 'active' ends every session of the target user."""
        user = self.get_user(user_id)
        if user.id == actor.id:
            raise ValidationError("You cannot change your own status")
        sessions_ended = self._store.change_status(user, status)
        self._db.commit()
        logger.info(
            "User status changed: user_id=%s status=%s by=%s sessions_ended=%s",
            user.id,
            status.value,
            actor.id,
            sessions_ended,
        )
        return user

    def change_role(self, actor: User, user_id: int, role: UserRole) -> User:
        user = self.get_user(user_id)
        if user.id == actor.id:
            raise ValidationError("You cannot change your own role")
        self._store.change_role(user, role)
        self._db.commit()
        logger.info("User role changed: user_id=%s role=%s by=%s", user.id, role.value, actor.id)
        return user

    def delete_user(self, actor: User, user_id: int) -> None:
        user = self.get_user(user_id)
        if user.id == actor.id:
            raise ValidationError("You cannot delete your own account")
        self._store.soft_delete(user)
        self._db.commit()
