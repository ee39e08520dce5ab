"""
auth/oauth.py -- Google OAuth 2.0 authorization code + PKCE exchange (Authlib).

Flow per login attempt:
  1. authorization_url(): generate a PKCE verifier and an anti-forgery token,
     pack both into the state parameter, and build the Google consent URL
     (scopes: profile email, S256 code challenge).
  2. complete(code, state): unpack the verifier from state, exchange the code
     at the token endpoint, then fetch the userinfo profile with the access
     token as bearer credential.

Stateless PKCE:
  The verifier travels inside state (base64url JSON, encoded -- NOT
  encrypted) and comes back on the callback. No server-side session store is
  needed, which keeps the flow consistent with stateless session tokens. The
  trade-off is deliberate: whoever intercepts the redirect sees the verifier,
  but the verifier is useless without the authorization code, and only the
  legitimate browser redirect carries that code.

Security notes:
  The token endpoint call never follows redirects and has a timeout.
  A profile whose email Google reports as unverified is rejected -- an
  unverified address could belong to someone else.
  Provider error text is kept in the exception detail for logs only.

Each callback builds its own OAuth2Session, so concurrent callbacks share no
mutable state.

Layer rule: no imports from api/ or users/. core/ is allowed.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

import requests
from authlib.common.encoding import urlsafe_b64decode, urlsafe_b64encode
from authlib.common.security import generate_token
from authlib.integrations.base_client import OAuthError as AuthlibOAuthError
from authlib.integrations.requests_client import OAuth2Session
from pydantic import BaseModel, ConfigDict, ValidationError

from auth.errors import OAuthError, OAuthErrorKind
from auth.models import ExternalIdentity
from core.config import Settings

logger = logging.getLogger("queso.auth.oauth")

SCOPES = "profile email"

# RFC 7636 section 4.1: 43-128 unreserved characters.
_VERIFIER_RE = re.compile(r"^[A-Za-z0-9\-._~]{43,128}$")


@dataclass(frozen=True)
class GoogleOAuthConfig:
    client_id: str
    client_secret: str
    redirect_url: str
    auth_url: str
    token_url: str
    userinfo_url: str
    timeout: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> GoogleOAuthConfig:
        return cls(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            redirect_url=settings.google_redirect_url,
            auth_url=settings.google_auth_url,
            token_url=settings.google_token_url,
            userinfo_url=settings.google_userinfo_url,
            timeout=settings.oauth_timeout_seconds,
        )

    def __repr__(self) -> str:
        return f"GoogleOAuthConfig(client_id={self.client_id!r}, redirect_url={self.redirect_url!r})"


class GoogleProfile(BaseModel):
    """Subset of the Google v2 userinfo response we rely on."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    email: str
    verified_email: bool = True
    name: str = ""
    picture: str = ""


# ---------------------------------------------------------------------------
# State parameter encoding
# ---------------------------------------------------------------------------


def encode_state(csrf_token: str, verifier: str) -> str:
    """Pack the anti-forgery token and PKCE verifier into a URL-safe string."""
    raw = json.dumps({"csrf": csrf_token, "verifier": verifier}, separators=(",", ":"))
    return urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_state(state: str) -> str:
    """Return the PKCE verifier carried in state.

    Raises OAuthError(STATE_INVALID) on anything that is not a state value we
    produced -- bad base64, bad JSON, missing fields or a verifier outside RFC 7636.
    """
    try:
        data = json.loads(urlsafe_b64decode(state.encode("ascii")).decode("utf-8"))
    except (ValueError, UnicodeError) as exc:
        raise OAuthError(OAuthErrorKind.STATE_INVALID, f"undecodable state: {exc}") from exc

    if not isinstance(data, dict) or not data.get("csrf"):
        raise OAuthError(OAuthErrorKind.STATE_INVALID, "state is missing the anti-forgery token")
    verifier = data.get("verifier")
    if not isinstance(verifier, str) or not _VERIFIER_RE.match(verifier):
        raise OAuthError(OAuthErrorKind.STATE_INVALID, "state carries no valid PKCE verifier")
    return verifier


# ---------------------------------------------------------------------------
# Exchange client
# ---------------------------------------------------------------------------


class GoogleOAuthClient:
    """Drives the Google authorization code + PKCE flow.

    session_factory builds the Authlib session and exists so tests can swap
    the transport out without patching module globals.
    """

    def __init__(
        self,
        config: GoogleOAuthConfig,
        session_factory: Callable[..., OAuth2Session] = OAuth2Session,
    ) -> None:
        self.config = config
        self._session_factory = session_factory

    def _session(self, **kwargs) -> OAuth2Session:
        return self._session_factory(
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            redirect_uri=self.config.redirect_url,
            scope=SCOPES,
            code_challenge_method="S256",
            **kwargs,
        )

    def authorization_url(self) -> str:
        """Build the consent URL for a fresh login attempt."""
        verifier = generate_token(64)
        state = encode_state(generate_token(32), verifier)
        url, _state = self._session().create_authorization_url(
            self.config.auth_url,
            state=state,
            code_verifier=verifier,
        )
        return url

    def exchange_code(self, code: str, state: str) -> str:
        """Trade an authorization code for an access token.

        The state is decoded first, so a forged or corrupted state fails
        before any network call is made.
        """
        verifier = decode_state(state)
        session = self._session()
        try:
            token = session.fetch_token(
                self.config.token_url,
                grant_type="authorization_code",
                code=code,
                code_verifier=verifier,
                timeout=self.config.timeout,
                allow_redirects=False,
            )
        except AuthlibOAuthError as exc:
            raise OAuthError(OAuthErrorKind.EXCHANGE_REJECTED, f"{exc.error}: {exc.description}") from exc
        except requests.RequestException as exc:
            raise OAuthError(OAuthErrorKind.PROVIDER_UNAVAILABLE, f"token endpoint: {exc}") from exc
        except ValueError as exc:
            # Non-JSON body, e.g. an HTML error page or a redirect we refused to follow.
            raise OAuthError(OAuthErrorKind.EXCHANGE_REJECTED, f"unreadable token response: {exc}") from exc

        access_token = token.get("access_token") if token else None
        if not access_token:
            raise OAuthError(OAuthErrorKind.EXCHANGE_REJECTED, "token response has no access_token")
        return access_token

    def fetch_profile(self, access_token: str) -> ExternalIdentity:
        """Fetch the userinfo profile for access_token."""
        session = self._session(token={"access_token": access_token, "token_type": "Bearer"})
        try:
            resp = session.get(self.config.userinfo_url, timeout=self.config.timeout, allow_redirects=False)
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as exc:
            raise OAuthError(OAuthErrorKind.PROVIDER_UNAVAILABLE, f"userinfo endpoint: {exc}") from exc
        except ValueError as exc:
            raise OAuthError(OAuthErrorKind.PROFILE_INVALID, f"userinfo is not JSON: {exc}") from exc

        try:
            profile = GoogleProfile.model_validate(body)
        except ValidationError as exc:
            raise OAuthError(OAuthErrorKind.PROFILE_INVALID, f"userinfo schema mismatch: {exc}") from exc

        if not profile.verified_email:
            raise OAuthError(OAuthErrorKind.EMAIL_UNVERIFIED, f"unverified email for subject {profile.id}")

        return ExternalIdentity(
            external_id=profile.id,
            email=profile.email,
            display_name=profile.name,
            avatar_url=profile.picture,
        )

    def complete(self, code: str, state: str) -> ExternalIdentity:
        """Run the callback half of the flow: state -> token -> profile."""
        access_token = self.exchange_code(code, state)
        identity = self.fetch_profile(access_token)
        logger.info("Google profile fetched (subject=%s)", identity.external_id)
        return identity
