import json
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from aloha.core.config import Settings
from aloha.core.exceptions import StoreUnavailable
from aloha.models.token_blacklist import TokenBlacklist
from aloha.services.revocation import (
    DatabaseRevocationStore,
    DisabledRevocationStore,
    MemoryRevocationStore,
    RedisRevocationStore,
    RevocationRecord,
    build_revocation_store,
)
from aloha.tasks.security_tasks import purge_expired_blacklisted_tokens


def _settings(**overrides) -> Settings:
    values = {"SECRET_KEY": "test-signing-key-0123456789abcdefghijklmnop", "ENVIRONMENT": "development"}
    values.update(overrides)
    return Settings(**values)


# ============= MEMORY =============

def test_memory_store_blacklists_until_expiry(clock):
    store = MemoryRevocationStore(clock=clock)
    expires_at = int(clock()) + 120

    store.blacklist("token-a", "1", "access", expires_at)

    assert store.is_blacklisted("token-a")
    assert not store.is_blacklisted("token-b")

    clock.advance(119)
    assert store.is_blacklisted("token-a")

    clock.advance(1)
    assert not store.is_blacklisted("token-a")
    assert len(store) == 0


def test_memory_store_blacklist_is_idempotent(clock):
    store = MemoryRevocationStore(clock=clock)
    expires_at = int(clock()) + 60

    store.blacklist("token-a", "1", "access", expires_at)
    store.blacklist("token-a", "1", "access", expires_at)

    assert len(store) == 1
    assert store.get_record("token-a") == RevocationRecord("token-a", "1", "access", expires_at)


def test_blacklist_if_absent_only_succeeds_once(clock):
    store = MemoryRevocationStore(clock=clock)
    expires_at = int(clock()) + 60

    assert store.blacklist_if_absent("token-a", "1", "refresh", expires_at) is True
    assert store.blacklist_if_absent("token-a", "1", "refresh", expires_at) is False


def test_already_expired_token_is_not_recorded(clock):
    store = MemoryRevocationStore(clock=clock)

    store.blacklist("token-a", "1", "access", int(clock()) - 5)
    store.blacklist("token-b", "1", "access", int(clock()))

    assert len(store) == 0
    assert not store.is_blacklisted("token-a")


def test_record_dict_shape():
    record = RevocationRecord("token-a", "7", "refresh", 1700000000)

    assert record.to_dict() == {
        "token": "token-a",
        "userId": "7",
        "type": "refresh",
        "expiresAt": 1700000000,
    }
    assert RevocationRecord.from_dict(record.to_dict()) == record


# ============= REDIS =============

def test_redis_store_sets_key_with_remaining_lifetime(clock):
    client = MagicMock()
    client.set.return_value = True
    store = RedisRevocationStore(client, key_prefix="revoked:", clock=clock)

    store.blacklist("token-a", "1", "access", int(clock()) + 900)

    key, value = client.set.call_args.args
    assert key == "revoked:token-a"
    assert json.loads(value)["userId"] == "1"
    assert client.set.call_args.kwargs == {"ex": 900, "nx": False}


def test_redis_store_blacklist_if_absent_uses_nx(clock):
    client = MagicMock()
    client.set.side_effect = [True, None]
    store = RedisRevocationStore(client, clock=clock)
    expires_at = int(clock()) + 60

    assert store.blacklist_if_absent("token-a", "1", "refresh", expires_at) is True
    assert store.blacklist_if_absent("token-a", "1", "refresh", expires_at) is False
    assert client.set.call_args.kwargs["nx"] is True


def test_redis_store_reads(clock):
    record = RevocationRecord("token-a", "1", "access", int(clock()) + 60)
    client = MagicMock()
    client.exists.return_value = 1
    client.get.return_value = json.dumps(record.to_dict())
    store = RedisRevocationStore(client, clock=clock)

    assert store.is_blacklisted("token-a") is True
    assert store.get_record("token-a") == record
    client.exists.assert_called_with("revoked:token-a")


def test_redis_store_fails_open_by_default(clock):
    client = MagicMock()
    client.set.side_effect = RedisConnectionError("down")
    client.exists.side_effect = RedisConnectionError("down")
    client.ping.side_effect = RedisConnectionError("down")
    store = RedisRevocationStore(client, clock=clock)

    store.blacklist("token-a", "1", "access", int(clock()) + 60)
    assert store.blacklist_if_absent("token-a", "1", "refresh", int(clock()) + 60) is True
    assert store.is_blacklisted("token-a") is False
    assert store.ping() is False


def test_redis_store_fails_closed_when_configured(clock):
    client = MagicMock()
    client.set.side_effect = RedisConnectionError("down")
    client.exists.side_effect = RedisConnectionError("down")
    client.get.side_effect = RedisConnectionError("down")
    store = RedisRevocationStore(client, fail_closed=True, clock=clock)

    with pytest.raises(StoreUnavailable):
        store.blacklist("token-a", "1", "access", int(clock()) + 60)
    with pytest.raises(StoreUnavailable):
        store.get_record("token-a")
    assert store.is_blacklisted("token-a") is True


# ============= DATABASE =============

def test_database_store_round_trip(session_factory, clock):
    store = DatabaseRevocationStore(session_factory, clock=clock)
    expires_at = int(clock()) + 300

    store.blacklist("token-a", "5", "access", expires_at)

    assert store.is_blacklisted("token-a")
    assert not store.is_blacklisted("token-b")
    assert store.get_record("token-a") == RevocationRecord("token-a", "5", "access", expires_at)
    assert store.ping() is True


def test_database_store_blacklist_if_absent(session_factory, clock):
    store = DatabaseRevocationStore(session_factory, clock=clock)
    expires_at = int(clock()) + 300

    assert store.blacklist_if_absent("token-a", "5", "refresh", expires_at) is True
    assert store.blacklist_if_absent("token-a", "5", "refresh", expires_at) is False

    store.blacklist("token-a", "5", "refresh", expires_at)
    with session_factory() as db:
        assert db.query(TokenBlacklist).count() == 1


def test_database_store_ignores_expired_rows(session_factory, clock):
    store = DatabaseRevocationStore(session_factory, clock=clock)
    store.blacklist("token-a", "5", "access", int(clock()) + 30)

    clock.advance(31)

    assert not store.is_blacklisted("token-a")
    assert store.get_record("token-a") is None
    # An expired, not yet purged row does not block a fresh revocation.
    assert store.blacklist_if_absent("token-a", "5", "access", int(clock()) + 30) is True


def test_purge_expired_rows(session_factory, clock):
    store = DatabaseRevocationStore(session_factory, clock=clock)
    store.blacklist("short", "5", "access", int(clock()) + 30)
    store.blacklist("long", "5", "refresh", int(clock()) + 3600)

    with session_factory() as db:
        db.add(
            TokenBlacklist(
                token="stale",
                user_id="5",
                type="access",
                expires_at=datetime.utcnow() - timedelta(days=1),
            )
        )
        db.commit()

    assert purge_expired_blacklisted_tokens(session_factory) == 1

    clock.advance(60)
    assert store.purge_expired() == 1

    with session_factory() as db:
        assert [row.token for row in db.query(TokenBlacklist).all()] == ["long"]


# ============= DISABLED / FACTORY =============

def test_disabled_store_never_revokes(clock):
    store = DisabledRevocationStore(clock=clock)

    store.blacklist("token-a", "1", "access", int(clock()) + 60)

    assert store.is_blacklisted("token-a") is False
    assert store.blacklist_if_absent("token-a", "1", "refresh", int(clock()) + 60) is True
    assert store.get_record("token-a") is None


def test_build_store_from_settings(session_factory):
    assert isinstance(build_revocation_store(_settings(REVOCATION_BACKEND="memory")), MemoryRevocationStore)
    assert isinstance(build_revocation_store(_settings(REVOCATION_BACKEND="disabled")), DisabledRevocationStore)

    database_store = build_revocation_store(
        _settings(REVOCATION_BACKEND="database", REVOCATION_FAIL_CLOSED=True),
        session_factory=session_factory,
    )
    assert isinstance(database_store, DatabaseRevocationStore)
    assert database_store.fail_closed is True


def test_build_store_redis_and_redis_switch():
    redis_store = build_revocation_store(
        _settings(REVOCATION_BACKEND="redis", REDIS_URL="redis://localhost:6379/3", REVOCATION_KEY_PREFIX="bl:")
    )
    assert isinstance(redis_store, RedisRevocationStore)
    assert redis_store.key_prefix == "bl:"
    redis_store.close()

    switched_off = build_revocation_store(_settings(REVOCATION_BACKEND="redis", REDIS_ENABLED=False))
    assert isinstance(switched_off, DisabledRevocationStore)


# ============= SUB-SECOND BOUNDARY =============

def test_ttl_rounds_up_with_fractional_clock(clock):
    clock.now = 1000.7
    client = MagicMock()
    client.set.return_value = True
    store = RedisRevocationStore(client, clock=clock)

    store.blacklist("token-a", "1", "access", 1010)
    assert client.set.call_args.kwargs["ex"] == 10

    store.blacklist("token-b", "1", "access", 1001)
    assert client.set.call_args.kwargs["ex"] == 1


def test_memory_record_lives_until_token_expiry(clock):
    clock.now = 1000.7
    store = MemoryRevocationStore(clock=clock)

    assert store.blacklist_if_absent("token-a", "1", "refresh", 1001) is True

    clock.now = 1000.9
    assert store.is_blacklisted("token-a")
    assert store.blacklist_if_absent("token-a", "1", "refresh", 1001) is False

    clock.now = 1001
    assert not store.is_blacklisted("token-a")


def test_memory_store_prunes_expired_records_on_write(clock):
    store = MemoryRevocationStore(clock=clock)
    store.blacklist("short", "1", "access", int(clock()) + 10)
    store.blacklist("long", "1", "refresh", int(clock()) + 100)

    clock.advance(20)
    store.blacklist("fresh", "1", "access", int(clock()) + 10)

    assert set(store._records) == {"long", "fresh"}
