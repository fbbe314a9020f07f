from fastapi import APIRouter, Depends, Query

from aloha.api.deps import (
    get_current_auth,
    get_current_user,
    get_session_service,
    get_user_repository,
    require_admin,
)
from aloha.core.exceptions import InsufficientPermissions, UserNotFound
from aloha.models.user import User, UserRole
from aloha.schemas.user import PasswordChange, UserResponse, UserUpdate
from aloha.services.auth_service import SessionService
from aloha.services.authenticator import AuthContext
from aloha.services.user_repository import UserRepository
from aloha.utils.response import paginated_response, success

router = APIRouter()


def _serialize(user: User) -> dict:
    return UserResponse.model_validate(user).model_dump()


@router.get("/me", response_model=dict)
def get_current_user_profile(current_user: User = Depends(get_current_user)):
    """Get current user profile"""
    return success(data=_serialize(current_user), message="User profile retrieved")


@router.put("/me", response_model=dict)
def update_user_profile(
    user_update: UserUpdate,
    current_user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
):
    """Update first/last name; never touches the password hash"""
    user = users.update_profile(
        current_user,
        first_name=user_update.first_name,
        last_name=user_update.last_name,
    )
    return success(data=_serialize(user), message="User profile updated")


@router.put("/me/password", response_model=dict)
def change_password(
    payload: PasswordChange,
    current_user: User = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    service.change_password(current_user, payload.current_password, payload.new_password)
    return success(message="Password updated")


# ============= ADMIN =============

@router.get("", response_model=dict)
def list_users(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _: AuthContext = Depends(require_admin),
    users: UserRepository = Depends(get_user_repository),
):
    items, total = users.list_users(limit=limit, offset=offset)
    return paginated_response(
        [_serialize(user) for user in items],
        total=total,
        limit=limit,
        offset=offset,
        message="Users retrieved",
    )


@router.get("/{user_id}", response_model=dict)
def get_user(
    user_id: int,
    auth: AuthContext = Depends(get_current_auth),
    users: UserRepository = Depends(get_user_repository),
):
    """Users may read their own record; admins may read any"""
    if auth.user_id != str(user_id) and auth.role != UserRole.ADMIN.value:
        raise InsufficientPermissions(required_role=UserRole.ADMIN.value)

    user = users.get_by_id(user_id)
    if user is None:
        raise UserNotFound()
    return success(data=_serialize(user), message="User retrieved")


@router.delete("/{user_id}", response_model=dict)
def delete_user(
    user_id: int,
    _: AuthContext = Depends(require_admin),
    users: UserRepository = Depends(get_user_repository),
):
    user = users.get_by_id(user_id)
    if user is None:
        raise UserNotFound()
    users.delete(user)
    return success(message="User deleted")
