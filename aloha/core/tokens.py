"""Signed, time-bound access and refresh tokens.

Both kinds carry the same claim set (subject id, email, role, issue and
expiry times, a random ``jti``) and differ only in lifetime and in the value
of the ``type`` claim. Verification accepts exactly one HMAC algorithm.
"""
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from jose import JWTError, jwt

from aloha.core.config import Settings
from aloha.core.exceptions import TokenExpired, TokenInvalid

ACCESS = "access"
REFRESH = "refresh"
TOKEN_KINDS = (ACCESS, REFRESH)

REQUIRED_CLAIMS = ("sub", "email", "role", "type", "iat", "exp")


@dataclass(frozen=True)
class SubjectClaims:
    """Identity data embedded in every token."""

    user_id: str
    email: str
    role: str


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    role: str
    kind: str
    issued_at: int
    expires_at: int
    jti: Optional[str] = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenCodec:
    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_lifetime: int = 15 * 60,
        refresh_lifetime: int = 7 * 86400,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.lifetimes = {ACCESS: access_lifetime, REFRESH: refresh_lifetime}
        self.issuer = issuer
        self.audience = audience
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.time) -> "TokenCodec":
        return cls(
            secret_key=settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
            access_lifetime=settings.access_token_lifetime_seconds,
            refresh_lifetime=settings.refresh_token_lifetime_seconds,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            clock=clock,
        )

    def now(self) -> float:
        return self.clock()

    def issue(self, subject: SubjectClaims, kind: str = ACCESS, lifetime: Optional[int] = None) -> str:
        """Sign a token for ``subject`` expiring ``lifetime`` seconds from now."""
        if kind not in TOKEN_KINDS:
            raise ValueError(f"Unknown token kind: {kind}")
        if lifetime is None:
            lifetime = self.lifetimes[kind]

        issued_at = int(self.now())
        to_encode = {
            "sub": str(subject.user_id),
            "email": subject.email,
            "role": subject.role,
            "type": kind,
            "iat": issued_at,
            "exp": issued_at + int(lifetime),
            "jti": uuid.uuid4().hex,
        }
        if self.issuer:
            to_encode["iss"] = self.issuer
        if self.audience:
            to_encode["aud"] = self.audience
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def issue_pair(self, subject: SubjectClaims) -> TokenPair:
        return TokenPair(
            access_token=self.issue(subject, ACCESS),
            refresh_token=self.issue(subject, REFRESH),
        )

    def verify(self, token: str, expected_kind: Optional[str] = None) -> TokenClaims:
        """Check signature, structure and expiry and return the decoded claims.

        Raises ``TokenInvalid`` for anything not produced by :meth:`issue` with
        the current secret (or of the wrong kind) and ``TokenExpired`` once
        ``now >= exp``.
        """
        if not token or not isinstance(token, str):
            raise TokenInvalid()

        options = {"verify_exp": False, "verify_aud": self.audience is not None}
        try:
            header = jwt.get_unverified_header(token)
            if header.get("alg") != self.algorithm:
                raise TokenInvalid()
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options=options,
            )
        except JWTError as exc:
            raise TokenInvalid() from exc

        if any(payload.get(claim) in (None, "") for claim in REQUIRED_CLAIMS):
            raise TokenInvalid()
        if payload["type"] not in TOKEN_KINDS:
            raise TokenInvalid()

        try:
            issued_at = int(payload["iat"])
            expires_at = int(payload["exp"])
        except (TypeError, ValueError) as exc:
            raise TokenInvalid() from exc

        if self.now() >= expires_at:
            raise TokenExpired()

        if expected_kind is not None and payload["type"] != expected_kind:
            raise TokenInvalid()

        return TokenClaims(
            user_id=str(payload["sub"]),
            email=payload["email"],
            role=payload["role"],
            kind=payload["type"],
            issued_at=issued_at,
            expires_at=expires_at,
            jti=payload.get("jti"),
        )

