"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one credential is accepted: an "Authorization: Bearer <token>" header.
There are no cookies and no server-side sessions.

get_current_identity() is the request guard: it yields an
AuthenticatedIdentity for the current request or raises a 401.
get_current_user() wraps it and resolves the User record.

Token failures are logged with their precise kind (expired, malformed, bad
signature, not yet valid) but the client always gets the same
AuthError(UNAUTHORIZED) -- distinct responses would be an oracle.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.errors import AuthError, AuthErrorKind, TokenError
from auth.models import AuthenticatedIdentity
from auth.service import AuthService
from auth.tokens import TokenCodec
from users.models import User

logger = logging.getLogger("queso.auth")


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise AuthError(AuthErrorKind.MISSING_CREDENTIALS)
    return token


def get_current_identity(request: Request) -> AuthenticatedIdentity:
    """Require a valid bearer token. Raises AuthError (401) otherwise.

    Use as a FastAPI dependency:
        @router.post("/protected")
        def route(identity: AuthenticatedIdentity = Depends(get_current_identity)): ...
    """
    token = _bearer_token(request)
    codec: TokenCodec = request.app.state.codec
    try:
        claims = codec.verify(token)
    except TokenError as exc:
        logger.info(
            "Rejected bearer token on %s %s: %s (%s)",
            request.method,
            request.url.path,
            exc.kind.name,
            exc.detail,
        )
        raise AuthError(AuthErrorKind.UNAUTHORIZED, exc.kind.name) from exc
    return AuthenticatedIdentity(user_id=claims.subject_user_id)


def get_current_user(request: Request) -> User:
    """Require authentication and return the token's User.

    A valid token whose user has since been deleted is treated as
    unauthenticated rather than as a 404.
    """
    identity = get_current_identity(request)
    auth_service: AuthService = request.app.state.auth_service
    try:
        return auth_service.resolve(identity.user_id)
    except AuthError as exc:
        if exc.kind is AuthErrorKind.NOT_FOUND:
            raise AuthError(AuthErrorKind.UNAUTHORIZED, exc.detail) from exc
        raise
