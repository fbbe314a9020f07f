from dataclasses import dataclass
from typing import Optional

import structlog

from aloha.core.exceptions import InsufficientPermissions, TokenMissing, TokenRevoked
from aloha.core.tokens import ACCESS, TokenClaims, TokenCodec
from aloha.services.revocation import RevocationStore

logger = structlog.get_logger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthContext:
    claims: TokenClaims
    token: str

    @property
    def user_id(self) -> str:
        return self.claims.user_id

    @property
    def role(self) -> str:
        return self.claims.role


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token of an ``Authorization: Bearer <token>`` header value."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise TokenMissing()
    token = authorization[len(BEARER_PREFIX):]
    if not token or any(char.isspace() for char in token):
        raise TokenMissing()
    return token


class RequestAuthenticator:
    """Gate for protected operations: bearer token, signature, expiry, revocation."""

    def __init__(self, codec: TokenCodec, revocations: RevocationStore):
        self.codec = codec
        self.revocations = revocations

    def authenticate(self, authorization: Optional[str]) -> AuthContext:
        token = extract_bearer_token(authorization)
        claims = self.codec.verify(token, expected_kind=ACCESS)
        if self.revocations.is_blacklisted(token):
            logger.info("revoked_token_rejected", user_id=claims.user_id)
            raise TokenRevoked()
        return AuthContext(claims=claims, token=token)

    def authorize(self, authorization: Optional[str], role: str) -> AuthContext:
        context = self.authenticate(authorization)
        self.require_role(context, role)
        return context

    @staticmethod
    def require_role(context: AuthContext, role: str) -> None:
        if context.role != role:
            logger.warning(
                "permission_denied",
                user_id=context.user_id,
                role=context.role,
                required_role=role,
            )
            raise InsufficientPermissions(required_role=role)
