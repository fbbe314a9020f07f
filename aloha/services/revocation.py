"""Revocation (blacklist) stores for tokens that must be rejected early.

A record is keyed by the raw token string and lives exactly as long as the
token itself could still be replayed: the TTL given to the backend is always
``expires_at - now`` rounded up to whole seconds. Records for tokens that are
already expired are never written.

Backends:

* ``RedisRevocationStore``: ``SET ... EX`` with native key expiry, the default.
* ``DatabaseRevocationStore``: ``token_blacklist`` table; expired rows are
  ignored on read and purged by ``aloha.tasks.security_tasks``.
* ``MemoryRevocationStore``: single process only (development and tests).
* ``DisabledRevocationStore``: nothing is ever blacklisted.

When a backend cannot be reached the store either fails open (reads say "not
revoked", writes are skipped) or fails closed (reads say "revoked", writes
raise ``StoreUnavailable``), depending on ``fail_closed``.
"""
import json
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import redis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from aloha.core.config import Settings
from aloha.core.exceptions import StoreUnavailable
from aloha.models.token_blacklist import TokenBlacklist

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RevocationRecord:
    token: str
    user_id: str
    kind: str
    expires_at: int

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "userId": self.user_id,
            "type": self.kind,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RevocationRecord":
        return cls(
            token=data["token"],
            user_id=str(data["userId"]),
            kind=data["type"],
            expires_at=int(data["expiresAt"]),
        )


def _naive_utc(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)


class RevocationStore:
    backend = "base"
    unavailable_errors: tuple = ()

    def __init__(self, fail_closed: bool = False, clock: Callable[[], float] = time.time):
        self.fail_closed = fail_closed
        self.clock = clock

    # Backend hooks

    def _write(self, record: RevocationRecord, ttl: int, only_if_absent: bool) -> bool:
        raise NotImplementedError

    def _exists(self, token: str) -> bool:
        raise NotImplementedError

    def _read(self, token: str) -> Optional[RevocationRecord]:
        raise NotImplementedError

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass

    # Public API

    def blacklist(self, token: str, user_id: str, kind: str, expires_at: int) -> None:
        """Record ``token`` as revoked until ``expires_at``. Repeating it is a no-op."""
        self._store(RevocationRecord(token, str(user_id), kind, int(expires_at)), only_if_absent=False)

    def blacklist_if_absent(self, token: str, user_id: str, kind: str, expires_at: int) -> bool:
        """Atomically revoke ``token``; ``False`` if it was already revoked."""
        return self._store(RevocationRecord(token, str(user_id), kind, int(expires_at)), only_if_absent=True)

    def is_blacklisted(self, token: str) -> bool:
        try:
            return self._exists(token)
        except self.unavailable_errors as exc:
            logger.warning(
                "revocation_store_unavailable",
                backend=self.backend,
                operation="is_blacklisted",
                fail_closed=self.fail_closed,
                error=str(exc),
            )
            return self.fail_closed

    def get_record(self, token: str) -> Optional[RevocationRecord]:
        try:
            return self._read(token)
        except self.unavailable_errors as exc:
            raise StoreUnavailable("revocation") from exc

    def _store(self, record: RevocationRecord, only_if_absent: bool) -> bool:
        # Rounded up so the record never lapses before the token does.
        ttl = math.ceil(record.expires_at - self.clock())
        if ttl <= 0:
            logger.debug("revocation_skipped_expired_token", backend=self.backend, kind=record.kind)
            return True
        try:
            created = self._write(record, ttl, only_if_absent)
        except self.unavailable_errors as exc:
            logger.warning(
                "revocation_store_unavailable",
                backend=self.backend,
                operation="blacklist",
                fail_closed=self.fail_closed,
                error=str(exc),
            )
            if self.fail_closed:
                raise StoreUnavailable("revocation") from exc
            return True

        if created:
            logger.debug(
                "token_blacklisted",
                backend=self.backend,
                user_id=record.user_id,
                kind=record.kind,
                ttl=ttl,
            )
        return created


class RedisRevocationStore(RevocationStore):
    backend = "redis"
    unavailable_errors = (RedisError,)

    def __init__(self, client: redis.Redis, key_prefix: str = "revoked:", **kwargs):
        super().__init__(**kwargs)
        self.client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisRevocationStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            health_check_interval=30,
        )
        return cls(client, **kwargs)

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{token}"

    def _write(self, record: RevocationRecord, ttl: int, only_if_absent: bool) -> bool:
        result = self.client.set(
            self._key(record.token),
            json.dumps(record.to_dict()),
            ex=ttl,
            nx=only_if_absent,
        )
        return bool(result)

    def _exists(self, token: str) -> bool:
        return self.client.exists(self._key(token)) > 0

    def _read(self, token: str) -> Optional[RevocationRecord]:
        raw = self.client.get(self._key(token))
        if raw is None:
            return None
        return RevocationRecord.from_dict(json.loads(raw))

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def close(self) -> None:
        self.client.close()


class DatabaseRevocationStore(RevocationStore):
    backend = "database"
    unavailable_errors = (SQLAlchemyError,)

    def __init__(self, session_factory, **kwargs):
        super().__init__(**kwargs)
        self.session_factory = session_factory

    def _now(self) -> datetime:
        return _naive_utc(self.clock())

    def _write(self, record: RevocationRecord, ttl: int, only_if_absent: bool) -> bool:
        expires_at = _naive_utc(record.expires_at)
        with self.session_factory() as db:
            existing = db.query(TokenBlacklist).filter(TokenBlacklist.token == record.token).first()
            if existing is not None:
                if only_if_absent and existing.expires_at > self._now():
                    return False
                # Stale (expired, not yet purged) rows are reused.
                existing.user_id = record.user_id
                existing.type = record.kind
                existing.expires_at = expires_at
                db.commit()
                return True

            db.add(
                TokenBlacklist(
                    token=record.token,
                    user_id=record.user_id,
                    type=record.kind,
                    expires_at=expires_at,
                )
            )
            try:
                db.commit()
            except IntegrityError:
                # A concurrent writer inserted the same token first.
                db.rollback()
                return not only_if_absent
            return True

    def _exists(self, token: str) -> bool:
        with self.session_factory() as db:
            return (
                db.query(TokenBlacklist.id)
                .filter(
                    TokenBlacklist.token == token,
                    TokenBlacklist.expires_at > self._now(),
                )
                .first()
                is not None
            )

    def _read(self, token: str) -> Optional[RevocationRecord]:
        with self.session_factory() as db:
            row = (
                db.query(TokenBlacklist)
                .filter(
                    TokenBlacklist.token == token,
                    TokenBlacklist.expires_at > self._now(),
                )
                .first()
            )
            if row is None:
                return None
            return RevocationRecord(
                token=row.token,
                user_id=row.user_id,
                kind=row.type,
                expires_at=int(row.expires_at.replace(tzinfo=timezone.utc).timestamp()),
            )

    def purge_expired(self) -> int:
        with self.session_factory() as db:
            deleted = (
                db.query(TokenBlacklist)
                .filter(TokenBlacklist.expires_at <= self._now())
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted

    def ping(self) -> bool:
        try:
            with self.session_factory() as db:
                db.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False


class MemoryRevocationStore(RevocationStore):
    backend = "memory"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._records: dict[str, RevocationRecord] = {}
        self._lock = threading.Lock()

    def _live(self, token: str) -> Optional[RevocationRecord]:
        record = self._records.get(token)
        if record is None:
            return None
        # Same boundary as token verification: gone once now >= exp.
        if self.clock() >= record.expires_at:
            del self._records[token]
            return None
        return record

    def _prune(self) -> None:
        now = self.clock()
        for token in [token for token, record in self._records.items() if now >= record.expires_at]:
            del self._records[token]

    def _write(self, record: RevocationRecord, ttl: int, only_if_absent: bool) -> bool:
        with self._lock:
            self._prune()
            if only_if_absent and record.token in self._records:
                return False
            self._records[record.token] = record
            return True

    def _exists(self, token: str) -> bool:
        with self._lock:
            return self._live(token) is not None

    def _read(self, token: str) -> Optional[RevocationRecord]:
        with self._lock:
            return self._live(token)

    def __len__(self) -> int:
        with self._lock:
            self._prune()
            return len(self._records)


class DisabledRevocationStore(RevocationStore):
    """Revocation turned off: every token counts as not revoked."""

    backend = "disabled"

    def _write(self, record: RevocationRecord, ttl: int, only_if_absent: bool) -> bool:
        return True

    def _exists(self, token: str) -> bool:
        return False

    def _read(self, token: str) -> Optional[RevocationRecord]:
        return None

    def ping(self) -> bool:
        return False


def build_revocation_store(
    settings: Settings,
    session_factory=None,
    clock: Callable[[], float] = time.time,
) -> RevocationStore:
    backend = settings.effective_revocation_backend
    options = {"fail_closed": settings.REVOCATION_FAIL_CLOSED, "clock": clock}

    if backend == "redis":
        store = RedisRevocationStore.from_url(
            settings.REDIS_URL,
            key_prefix=settings.REVOCATION_KEY_PREFIX,
            **options,
        )
    elif backend == "database":
        if session_factory is None:
            from aloha.db.session import SessionLocal

            session_factory = SessionLocal
        store = DatabaseRevocationStore(session_factory, **options)
    elif backend == "memory":
        store = MemoryRevocationStore(**options)
    else:
        logger.warning("revocation_store_disabled", reason="revocation checks always pass")
        store = DisabledRevocationStore(**options)

    logger.info("revocation_store_configured", backend=store.backend, fail_closed=store.fail_closed)
    return store
