import pytest

from aloha.core.exceptions import (
    InsufficientPermissions,
    TokenExpired,
    TokenInvalid,
    TokenMissing,
    TokenRevoked,
)
from aloha.core.tokens import ACCESS, REFRESH, SubjectClaims
from aloha.services.authenticator import RequestAuthenticator, extract_bearer_token

ADMIN = SubjectClaims(user_id="1", email="admin@example.com", role="admin")
MEMBER = SubjectClaims(user_id="2", email="member@example.com", role="user")


@pytest.fixture()
def authenticator(codec, revocation_store) -> RequestAuthenticator:
    return RequestAuthenticator(codec, revocation_store)


def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"


@pytest.mark.parametrize(
    "header",
    [None, "", "Basic dXNlcjpwYXNz", "bearer abc", "Bearer", "Bearer ", "Bearer  abc", "Bearer abc def"],
)
def test_malformed_authorization_header(header):
    with pytest.raises(TokenMissing):
        extract_bearer_token(header)


def test_authenticate_returns_claims(authenticator, codec):
    token = codec.issue(MEMBER, ACCESS)

    context = authenticator.authenticate(f"Bearer {token}")

    assert context.user_id == "2"
    assert context.role == "user"
    assert context.token == token
    assert context.claims.email == "member@example.com"


def test_authenticate_rejects_refresh_token(authenticator, codec):
    token = codec.issue(MEMBER, REFRESH)

    with pytest.raises(TokenInvalid):
        authenticator.authenticate(f"Bearer {token}")


def test_authenticate_rejects_expired_token(authenticator, codec, clock):
    token = codec.issue(MEMBER, ACCESS)
    clock.advance(15 * 60)

    with pytest.raises(TokenExpired):
        authenticator.authenticate(f"Bearer {token}")


def test_authenticate_rejects_revoked_token(authenticator, codec, revocation_store, clock):
    token = codec.issue(MEMBER, ACCESS)
    revocation_store.blacklist(token, "2", ACCESS, int(clock()) + 60)

    with pytest.raises(TokenRevoked):
        authenticator.authenticate(f"Bearer {token}")


def test_authorize_by_role(authenticator, codec):
    admin_token = codec.issue(ADMIN, ACCESS)
    member_token = codec.issue(MEMBER, ACCESS)

    assert authenticator.authorize(f"Bearer {admin_token}", "admin").user_id == "1"

    with pytest.raises(InsufficientPermissions) as exc_info:
        authenticator.authorize(f"Bearer {member_token}", "admin")

    assert exc_info.value.status_code == 403
    assert exc_info.value.required_role == "admin"


def test_revocation_holds_until_token_expiry(authenticator, codec, revocation_store, clock):
    clock.now = 1000.7
    token = codec.issue(MEMBER, ACCESS)
    claims = codec.verify(token)
    revocation_store.blacklist(token, "2", ACCESS, claims.expires_at)

    clock.now = claims.expires_at - 0.2

    with pytest.raises(TokenRevoked):
        authenticator.authenticate(f"Bearer {token}")
