import structlog
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from aloha.core.exceptions import TokenInvalid
from aloha.core.tokens import TokenCodec
from aloha.db.session import get_db
from aloha.models.user import User, UserRole
from aloha.services.auth_service import SessionService
from aloha.services.authenticator import AuthContext, RequestAuthenticator
from aloha.services.revocation import RevocationStore
from aloha.services.user_repository import UserRepository

logger = structlog.get_logger()


def get_token_codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


def get_revocation_store(request: Request) -> RevocationStore:
    return request.app.state.revocation_store


def get_authenticator(
    codec: TokenCodec = Depends(get_token_codec),
    revocations: RevocationStore = Depends(get_revocation_store),
) -> RequestAuthenticator:
    return RequestAuthenticator(codec, revocations)


def get_user_repository(db: Session = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_session_service(
    users: UserRepository = Depends(get_user_repository),
    codec: TokenCodec = Depends(get_token_codec),
    revocations: RevocationStore = Depends(get_revocation_store),
) -> SessionService:
    return SessionService(users, codec, revocations)


def get_current_auth(
    request: Request,
    authenticator: RequestAuthenticator = Depends(get_authenticator),
) -> AuthContext:
    """Authenticate the bearer token and expose its claims on ``request.state``."""
    context = authenticator.authenticate(request.headers.get("Authorization"))
    request.state.user = context.claims
    request.state.token = context.token
    return context


def get_current_user(
    auth: AuthContext = Depends(get_current_auth),
    users: UserRepository = Depends(get_user_repository),
) -> User:
    user = users.get_by_id(auth.user_id)
    if user is None:
        raise TokenInvalid()
    return user


def require_admin(
    request: Request,
    auth: AuthContext = Depends(get_current_auth),
) -> AuthContext:
    RequestAuthenticator.require_role(auth, UserRole.ADMIN.value)

    logger.info(
        "admin_action",
        action=f"{request.method} {request.url.path}",
        admin_user_id=auth.user_id,
        client_ip=request.client.host if request.client else None,
    )
    return auth
