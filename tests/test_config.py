import pytest
from pydantic import ValidationError

from aloha.core.config import Settings

SECRET = "test-signing-key-0123456789abcdefghijklmnop"


def test_defaults():
    config = Settings(SECRET_KEY=SECRET, REVOCATION_BACKEND="redis")

    assert config.access_token_lifetime_seconds == 900
    assert config.refresh_token_lifetime_seconds == 604800
    assert config.REVOCATION_FAIL_CLOSED is False


@pytest.mark.parametrize("secret", ["short", "changeme-changeme-changeme-changeme-123"])
def test_weak_secret_is_rejected(secret):
    with pytest.raises(ValidationError):
        Settings(SECRET_KEY=secret)


def test_asymmetric_algorithm_is_rejected():
    with pytest.raises(ValidationError):
        Settings(SECRET_KEY=SECRET, ALGORITHM="RS256")


def test_non_positive_lifetime_is_rejected():
    with pytest.raises(ValidationError):
        Settings(SECRET_KEY=SECRET, ACCESS_TOKEN_EXPIRE_MINUTES=0)


def test_unknown_revocation_backend_is_rejected():
    with pytest.raises(ValidationError):
        Settings(SECRET_KEY=SECRET, REVOCATION_BACKEND="mongo")


def test_memory_backend_is_rejected_in_production():
    with pytest.raises(ValidationError):
        Settings(SECRET_KEY=SECRET, ENVIRONMENT="Production", REVOCATION_BACKEND="memory")


def test_redis_switch_disables_revocation():
    config = Settings(SECRET_KEY=SECRET, REVOCATION_BACKEND="REDIS", REDIS_ENABLED=False)

    assert config.REVOCATION_BACKEND == "redis"
    assert config.effective_revocation_backend == "disabled"
