from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from aloha.core.config import settings

# Password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
    bcrypt__min_rounds=settings.BCRYPT_ROUNDS,
)

MAX_PASSWORD_BYTES = 72


class PasswordTooLong(ValueError):
    pass


def hash_password(password: str) -> str:
    """Hash password using bcrypt (safe wrapper)"""
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordTooLong("Password is too long")

    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify plain password against hash"""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (UnknownHashError, ValueError):
        return False


def verify_and_update(plain_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Verify a password and return a fresh digest when the stored one is outdated.

    The second element is ``None`` unless the stored hash was produced with
    settings the context now deprecates (e.g. a lower bcrypt cost).
    """
    if not hashed_password:
        return False, None
    try:
        return pwd_context.verify_and_update(plain_password, hashed_password)
    except (UnknownHashError, ValueError):
        return False, None


def dummy_verify() -> None:
    """Spend the same time as a real verification (for unknown accounts)."""
    pwd_context.dummy_verify()
