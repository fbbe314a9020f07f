import structlog
from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError

from aloha.db.session import SessionLocal
from aloha.services.revocation import DatabaseRevocationStore

logger = structlog.get_logger(__name__)


def purge_expired_blacklisted_tokens(session_factory=SessionLocal) -> int:
    """Delete token_blacklist rows whose token has expired anyway.

    Only the database backend needs this; Redis expires keys on its own.
    """
    return DatabaseRevocationStore(session_factory).purge_expired()


@shared_task(bind=True, max_retries=3)
def cleanup_expired_blacklisted_tokens(self):
    """Keep the token_blacklist table bounded."""
    try:
        deleted = purge_expired_blacklisted_tokens()
    except SQLAlchemyError as exc:
        logger.warning("blacklist_cleanup_failed", error=str(exc))
        raise self.retry(exc=exc, countdown=60)
    logger.info("blacklist_cleanup_completed", deleted=deleted)
    return {"deleted": deleted}
