"""
api/routes/auth.py -- Authentication REST endpoints.

Routes (mounted under /api/auth):
  POST /login                   -- username/email + password; returns a bearer token
  GET  /me                      -- current user info (requires auth)
  POST /logout                  -- accepted no-op (requires auth)
  GET  /oauth/google/login      -- Google consent URL (PKCE verifier packed in state)
  POST /oauth/google/callback   -- code + state -> bearer token

Security:
  POST /login is rate-limited per client IP (Settings.login_rate_limit).
  Login responses carry Cache-Control: no-store.
  Failures are raised as AuthError / OAuthError / UserError and rendered by the
  exception handler in api/main.py -- routes never build error bodies.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import LoginRequest, MeResponse, OAuthCallbackRequest, OAuthUrlResponse, TokenResponse
from auth.dependencies import get_current_identity, get_current_user
from auth.models import AuthenticatedIdentity
from auth.oauth import GoogleOAuthClient
from auth.service import AuthService
from core.config import get_settings
from users.models import User

# Auth policy:
# - POST /login, GET /oauth/google/login, POST /oauth/google/callback: public
# - GET  /me, POST /logout: require a bearer token
router = APIRouter()


@limiter.limit(lambda: get_settings().login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=TokenResponse)
def login(request: Request, response: Response, body: LoginRequest) -> TokenResponse:
    """Authenticate with username or email and password.

    Unknown identifier and wrong password return the same 401
    ("invalid_credentials") so the endpoint cannot be used to probe which
    accounts exist.
    """
    auth_service: AuthService = request.app.state.auth_service
    response.headers["Cache-Control"] = "no-store"
    token = auth_service.login_with_credential(body.username_or_email, body.password)
    return TokenResponse(token=token)


@router.get("/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(id=current_user.id, username=current_user.username, email=current_user.email)


@router.post("/logout")
def logout(request: Request, identity: AuthenticatedIdentity = Depends(get_current_identity)) -> Response:
    """Accept a logout. The token itself stays valid until it expires."""
    auth_service: AuthService = request.app.state.auth_service
    auth_service.invalidate(identity.user_id)
    return Response(status_code=200)


@router.get("/oauth/google/login", response_model=OAuthUrlResponse)
def google_login(request: Request) -> OAuthUrlResponse:
    """Return the Google authorization URL to send the user-agent to."""
    oauth_client: GoogleOAuthClient = request.app.state.oauth_client
    return OAuthUrlResponse(url=oauth_client.authorization_url())


@router.post("/oauth/google/callback", response_model=TokenResponse)
def google_callback(request: Request, response: Response, body: OAuthCallbackRequest) -> TokenResponse:
    """Finish the Google flow and issue a session token.

    Sync def on purpose: the token exchange and profile fetch are blocking
    HTTP calls, and FastAPI runs sync handlers in its thread pool.
    """
    oauth_client: GoogleOAuthClient = request.app.state.oauth_client
    auth_service: AuthService = request.app.state.auth_service
    identity = oauth_client.complete(body.code, body.state)
    response.headers["Cache-Control"] = "no-store"
    return TokenResponse(token=auth_service.login_with_oauth(identity))
