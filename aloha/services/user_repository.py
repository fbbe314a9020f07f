from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from aloha.core.exceptions import AlreadyExists, StoreUnavailable
from aloha.models.user import User, UserRole, normalize_email

logger = structlog.get_logger(__name__)


class UserRepository:
    """Identity-store access used by the session service and user endpoints.

    Connection failures surface as ``StoreUnavailable``; a duplicate email,
    whether caught up front or by the unique index, as ``AlreadyExists``.
    """

    def __init__(self, db: Session):
        self.db = db

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailable:
        self.db.rollback()
        logger.error("identity_store_unavailable", operation=operation, error=str(exc))
        return StoreUnavailable("identity")

    def get_by_email(self, email: str) -> Optional[User]:
        try:
            return self.db.query(User).filter(User.email == normalize_email(email)).first()
        except OperationalError as exc:
            raise self._unavailable("get_by_email", exc) from exc

    def get_by_id(self, user_id) -> Optional[User]:
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            return None
        try:
            return self.db.get(User, user_id)
        except OperationalError as exc:
            raise self._unavailable("get_by_id", exc) from exc

    def list_users(self, limit: int = 20, offset: int = 0) -> tuple[list[User], int]:
        try:
            query = self.db.query(User)
            total = query.count()
            users = query.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()
            return users, total
        except OperationalError as exc:
            raise self._unavailable("list_users", exc) from exc

    def create(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: UserRole = UserRole.USER,
    ) -> User:
        if self.get_by_email(email) is not None:
            raise AlreadyExists()

        user = User(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise AlreadyExists() from exc
        except OperationalError as exc:
            raise self._unavailable("create", exc) from exc
        self.db.refresh(user)
        return user

    def update_profile(self, user: User, first_name: Optional[str] = None, last_name: Optional[str] = None) -> User:
        if first_name:
            user.first_name = first_name
        if last_name:
            user.last_name = last_name
        return self._save(user, "update_profile")

    def set_password(self, user: User, password: str) -> User:
        user.password = password
        return self._save(user, "set_password")

    def set_password_hash(self, user: User, password_hash: str) -> User:
        user.password_hash = password_hash
        return self._save(user, "set_password_hash")

    def delete(self, user: User) -> None:
        self.db.delete(user)
        self._commit("delete")

    def _save(self, user: User, operation: str) -> User:
        self._commit(operation)
        self.db.refresh(user)
        return user

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except OperationalError as exc:
            raise self._unavailable(operation, exc) from exc
