from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from aloha.db.base_class import Base


class TokenBlacklist(Base):
    """Revoked tokens that must no longer be accepted, keyed by the raw token.

    Rows are ignored once ``expires_at`` passes and purged by the periodic
    cleanup task.
    """

    __tablename__ = "token_blacklist"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(Text, unique=True, nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(String(16), nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
