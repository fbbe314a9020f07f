from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.orm import validates
from datetime import datetime
import enum
from aloha.db.base_class import Base
from aloha.core.security import hash_password, verify_password


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    role = Column(
        Enum(UserRole, values_callable=lambda roles: [role.value for role in roles]),
        default=UserRole.USER,
        nullable=False,
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def password(self):
        raise AttributeError("password is write-only; use check_password()")

    @password.setter
    def password(self, plaintext: str) -> None:
        # Only this setter produces a new digest.
        self.password_hash = hash_password(plaintext)

    def check_password(self, plaintext: str) -> bool:
        return verify_password(plaintext, self.password_hash)

    @validates("email")
    def _normalize_email(self, key, value):
        return normalize_email(value)

    @validates("first_name", "last_name")
    def _strip_names(self, key, value):
        return value.strip() if isinstance(value, str) else value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"
