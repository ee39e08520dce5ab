"""
auth/errors.py -- Closed error types for the authentication components.

  TokenError  -- raised by the claims codec (auth/tokens.py).
  OAuthError  -- raised by the Google exchange client (auth/oauth.py).
  AuthError   -- raised by the auth service and the request guard.

Token failures never reach the client with their specific kind: the request
guard logs the kind and re-raises AuthError(UNAUTHORIZED) so an attacker
cannot tell expired from tampered from malformed.

Layer rule: no imports from api/ or users/. core/ is allowed.
"""

from __future__ import annotations

from core.errors import ErrorKind, ServiceError


class TokenErrorKind(ErrorKind):
    MALFORMED = ("token_malformed", 401, "Invalid session token.")
    INVALID_SIGNATURE = ("token_invalid_signature", 401, "Invalid session token signature.")
    EXPIRED = ("token_expired", 401, "Session token has expired.")
    NOT_YET_VALID = ("token_not_yet_valid", 401, "Session token is not valid yet.")


class TokenError(ServiceError):
    kind: TokenErrorKind


class OAuthErrorKind(ErrorKind):
    STATE_INVALID = ("oauth_state_invalid", 400, "OAuth state parameter is invalid.")
    EXCHANGE_REJECTED = ("oauth_exchange_rejected", 401, "The identity provider rejected the authorization code.")
    PROVIDER_UNAVAILABLE = ("oauth_provider_unavailable", 502, "The identity provider could not be reached.")
    PROFILE_INVALID = ("oauth_profile_invalid", 502, "The identity provider returned an unexpected profile.")
    EMAIL_UNVERIFIED = ("oauth_email_unverified", 401, "The identity provider has not verified this email address.")


class OAuthError(ServiceError):
    kind: OAuthErrorKind


class AuthErrorKind(ErrorKind):
    INVALID_CREDENTIALS = ("invalid_credentials", 401, "Invalid username/email or password.")
    MISSING_CREDENTIALS = ("missing_credentials", 401, "Missing credentials.")
    UNAUTHORIZED = ("unauthorized", 401, "Authentication required.")
    NOT_FOUND = ("user_not_found", 404, "User not found.")
    INTERNAL = ("internal_error", 500, "An unexpected error occurred.")


class AuthError(ServiceError):
    kind: AuthErrorKind
