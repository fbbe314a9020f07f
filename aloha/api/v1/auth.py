from fastapi import APIRouter, Depends, Request, status

from aloha.api.deps import get_current_auth, get_session_service
from aloha.core.rate_limiter import limiter
from aloha.schemas.token import (
    AuthResponse,
    LogoutRequest,
    RefreshRequest,
    TokenClaimsResponse,
    TokenPairResponse,
)
from aloha.schemas.user import UserCreate, UserLogin, UserResponse
from aloha.services.auth_service import AuthResult, SessionService
from aloha.services.authenticator import AuthContext
from aloha.utils.response import success

router = APIRouter()


def _auth_payload(result: AuthResult) -> dict:
    return AuthResponse(
        user=UserResponse.model_validate(result.user),
        access_token=result.access_token,
        refresh_token=result.refresh_token,
    ).model_dump()


@router.post(
    "/register",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Register user account",
    description="""
Creates a user with role `user` and returns the user together with a fresh
access/refresh token pair.

Validation:
1. Email must be unique (case-insensitive)
2. Password is hashed before persistence
""",
    responses={
        201: {"description": "Registration successful"},
        409: {"description": "Email already registered"},
        422: {"description": "Validation error"},
    },
)
@limiter.limit("5/minute")
def register(
    request: Request,
    user_in: UserCreate,
    service: SessionService = Depends(get_session_service),
):
    result = service.register(
        email=user_in.email,
        password=user_in.password,
        first_name=user_in.first_name,
        last_name=user_in.last_name,
    )
    return success(data=_auth_payload(result), message="Registration successful")


@router.post(
    "/login",
    response_model=dict,
    summary="Login user",
    description="""
Verifies email and password and issues a new access/refresh token pair.
Unknown emails and wrong passwords produce the same 401 response.
""",
    responses={
        200: {"description": "Login successful"},
        401: {"description": "Invalid credentials"},
    },
)
@limiter.limit("5/minute")
def login(
    request: Request,
    credentials: UserLogin,
    service: SessionService = Depends(get_session_service),
):
    result = service.login(credentials.email, credentials.password)
    return success(data=_auth_payload(result), message="Login successful")


@router.post(
    "/refresh",
    response_model=dict,
    summary="Rotate refresh token",
    description="""
Exchanges a refresh token for a new access/refresh pair. The presented
refresh token is consumed: presenting it again fails with `AUTH_TOKEN_REVOKED`.
""",
    responses={
        200: {"description": "Token refreshed"},
        401: {"description": "Refresh token invalid, expired or revoked"},
    },
)
@limiter.limit("20/minute")
def refresh_token(
    request: Request,
    payload: RefreshRequest,
    service: SessionService = Depends(get_session_service),
):
    pair = service.refresh_token(payload.refresh_token)
    data = TokenPairResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)
    return success(data=data.model_dump(), message="Token refreshed")


@router.post("/logout", response_model=dict)
def logout(
    payload: LogoutRequest | None = None,
    auth: AuthContext = Depends(get_current_auth),
    service: SessionService = Depends(get_session_service),
):
    """Revoke the caller's access token (and refresh token, when sent)."""
    refresh_token_value = payload.refresh_token if payload else None
    service.logout(auth.user_id, auth.token, refresh_token_value)
    return success(message="Logout successful")


@router.get("/me", response_model=dict)
def read_token_claims(auth: AuthContext = Depends(get_current_auth)):
    """Return the claims of the presented access token"""
    claims = auth.claims
    data = TokenClaimsResponse(
        user_id=claims.user_id,
        email=claims.email,
        role=claims.role,
        expires_at=claims.expires_at,
    )
    return success(data=data.model_dump(), message="Token is valid")
