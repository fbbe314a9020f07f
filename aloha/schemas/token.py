from pydantic import BaseModel, Field
from typing import Optional

from aloha.schemas.user import UserResponse


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResponse(TokenPairResponse):
    user: UserResponse


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class TokenClaimsResponse(BaseModel):
    user_id: str
    email: str
    role: str
    expires_at: int
