"""
api/routes/users.py -- User management REST endpoints.

Routes (mounted under /api/users):
  POST   /          -- register a local account (public signup)
  GET    /          -- list users (requires auth)
  GET    /{id}      -- user detail (requires auth)
  DELETE /{id}      -- delete own account (requires auth, ownership checked)

Conflicts surface as 409 username_exists / email_exists. The response never
includes the password hash.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import UserCreate, UserResponse
from auth.dependencies import get_current_identity
from auth.models import AuthenticatedIdentity
from users.service import UserService

router = APIRouter()


@router.post("", response_model=UserResponse, status_code=201)
def create_user(request: Request, body: UserCreate) -> UserResponse:
    """Register a new account with a local password."""
    user_service: UserService = request.app.state.user_service
    user = user_service.register(body.username, body.email, body.password)
    return UserResponse.from_user(user)


@router.get("", response_model=list[UserResponse])
def list_users(
    request: Request,
    identity: AuthenticatedIdentity = Depends(get_current_identity),
) -> list[UserResponse]:
    user_service: UserService = request.app.state.user_service
    return [UserResponse.from_user(u) for u in user_service.list_users()]


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: int,
    identity: AuthenticatedIdentity = Depends(get_current_identity),
) -> UserResponse:
    user_service: UserService = request.app.state.user_service
    return UserResponse.from_user(user_service.get_user(user_id))


@router.delete("/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: int,
    identity: AuthenticatedIdentity = Depends(get_current_identity),
) -> Response:
    """Delete an account. Only the account owner may delete it (IDOR guard)."""
    user_service: UserService = request.app.state.user_service
    user_service.delete_user(user_id, acting_user_id=identity.user_id)
    return Response(status_code=204)
