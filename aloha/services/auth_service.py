"""Session lifecycle: login, registration, refresh-token rotation and logout.

This is the only place that mints or retires sessions. A lineage of
credentials goes ``Anonymous -> Authenticated -> Refreshed* ->
LoggedOut | Expired``; every refresh consumes the refresh token it was given,
so a replayed refresh token is accepted at most once.
"""
from dataclasses import dataclass
from typing import Optional

import structlog

from aloha.core.exceptions import InvalidCredentials, TokenExpired, TokenInvalid, TokenRevoked
from aloha.core.security import dummy_verify, verify_and_update
from aloha.core.tokens import ACCESS, REFRESH, SubjectClaims, TokenCodec, TokenPair
from aloha.models.user import User, UserRole
from aloha.services.revocation import RevocationStore
from aloha.services.user_repository import UserRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuthResult:
    user: User
    access_token: str
    refresh_token: str


def subject_for(user: User) -> SubjectClaims:
    role = user.role.value if isinstance(user.role, UserRole) else str(user.role)
    return SubjectClaims(user_id=str(user.id), email=user.email, role=role)


class SessionService:
    def __init__(self, users: UserRepository, codec: TokenCodec, revocations: RevocationStore):
        self.users = users
        self.codec = codec
        self.revocations = revocations

    def _issue(self, user: User) -> TokenPair:
        return self.codec.issue_pair(subject_for(user))

    def login(self, email: str, password: str) -> AuthResult:
        user = self.users.get_by_email(email)
        if user is None:
            # Keep the unknown-account path as slow as a real check.
            dummy_verify()
            logger.info("login_failed", reason="invalid_credentials")
            raise InvalidCredentials()

        valid, new_hash = verify_and_update(password, user.password_hash)
        if not valid:
            logger.info("login_failed", reason="invalid_credentials", user_id=user.id)
            raise InvalidCredentials()

        if new_hash:
            self.users.set_password_hash(user, new_hash)
            logger.info("password_rehashed", user_id=user.id)

        pair = self._issue(user)
        logger.info("user_logged_in", user_id=user.id)
        return AuthResult(user=user, access_token=pair.access_token, refresh_token=pair.refresh_token)

    def register(self, email: str, password: str, first_name: str, last_name: str) -> AuthResult:
        user = self.users.create(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=UserRole.USER,
        )
        pair = self._issue(user)
        logger.info("user_registered", user_id=user.id)
        return AuthResult(user=user, access_token=pair.access_token, refresh_token=pair.refresh_token)

    def refresh_token(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair, consuming the old token.

        The old token is blacklisted (for its remaining lifetime) with an
        atomic set-if-absent before anything is issued; losing that race, or
        presenting an already consumed token, raises ``TokenRevoked``.
        """
        claims = self.codec.verify(refresh_token, expected_kind=REFRESH)

        consumed = self.revocations.blacklist_if_absent(
            refresh_token,
            claims.user_id,
            REFRESH,
            claims.expires_at,
        )
        if not consumed:
            logger.warning("refresh_token_replayed", user_id=claims.user_id)
            raise TokenRevoked()

        user = self.users.get_by_id(claims.user_id)
        if user is None:
            logger.warning("refresh_for_missing_user", user_id=claims.user_id)
            raise TokenInvalid()

        pair = self._issue(user)
        logger.info("token_refreshed", user_id=user.id)
        return pair

    def logout(self, user_id: str, access_token: str, refresh_token: Optional[str] = None) -> None:
        """Revoke the caller's access token, and its refresh token when given."""
        try:
            claims = self.codec.verify(access_token, expected_kind=ACCESS)
        except TokenExpired:
            logger.info("logout_with_expired_token", user_id=user_id)
            claims = None

        if claims is not None:
            if claims.user_id != str(user_id):
                raise TokenInvalid()
            self.revocations.blacklist(access_token, claims.user_id, ACCESS, claims.expires_at)

        if refresh_token:
            self._revoke_refresh_on_logout(str(user_id), refresh_token)

        logger.info("user_logged_out", user_id=user_id)

    def _revoke_refresh_on_logout(self, user_id: str, refresh_token: str) -> None:
        try:
            claims = self.codec.verify(refresh_token, expected_kind=REFRESH)
        except (TokenInvalid, TokenExpired):
            logger.info("logout_refresh_token_ignored", user_id=user_id, reason="unusable")
            return
        if claims.user_id != user_id:
            logger.warning("logout_refresh_token_ignored", user_id=user_id, reason="subject_mismatch")
            return
        self.revocations.blacklist(refresh_token, claims.user_id, REFRESH, claims.expires_at)

    def is_token_blacklisted(self, token: str) -> bool:
        return self.revocations.is_blacklisted(token)

    def change_password(self, user: User, current_password: str, new_password: str) -> User:
        if not user.check_password(current_password):
            raise InvalidCredentials()
        user = self.users.set_password(user, new_password)
        logger.info("password_changed", user_id=user.id)
        return user
