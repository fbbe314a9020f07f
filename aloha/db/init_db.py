from sqlalchemy.orm import Session
import structlog
from aloha.core.config import settings
from aloha.db.base import Base
from aloha.models.user import User, UserRole, normalize_email

logger = structlog.get_logger(__name__)


def init_db(db: Session) -> None:
    """Create tables and seed the bootstrap admin account"""
    Base.metadata.create_all(bind=db.get_bind())

    admin_email = normalize_email(settings.DEFAULT_ADMIN_EMAIL)
    admin = db.query(User).filter(User.email == admin_email).first()
    if admin:
        logger.info("admin_user_exists", email=admin_email)
        return

    seed_password = (settings.DEFAULT_ADMIN_PASSWORD or "").strip()
    if not seed_password:
        message = (
            "Missing admin bootstrap credentials: set DEFAULT_ADMIN_PASSWORD "
            "or create an admin user manually before launch."
        )
        if settings.ENVIRONMENT == "production":
            logger.error("admin_bootstrap_failed", reason=message, env=settings.ENVIRONMENT)
            raise RuntimeError(message)
        logger.warning("admin_bootstrap_skipped", reason=message, env=settings.ENVIRONMENT)
        return

    admin = User(
        email=admin_email,
        password=seed_password,
        first_name="Aloha",
        last_name="Admin",
        role=UserRole.ADMIN,
    )
    db.add(admin)
    db.commit()
    logger.info("admin_user_created", email=admin_email)


if __name__ == "__main__":
    from aloha.core.logging_config import configure_logging
    from aloha.db.session import SessionLocal

    configure_logging()
    db = SessionLocal()
    try:
        init_db(db)
    finally:
        db.close()
