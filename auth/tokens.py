"""
auth/tokens.py -- Session token codec (HS256 JWT via python-jose).

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (user id as a string, as RFC 7519
       requires), user_id (int), iat, nbf and exp. Validity is fixed at 24
       hours from issue; nbf equals iat.

  Secret: TokenCodec is built exactly once at startup from
       Settings.jwt_secret and handed to every component that needs it. The
       instance holds no mutable state, so concurrent requests share it
       without locking.

  Verification order: structure first, then signature, then the validity
       window. Each failure is a distinct TokenErrorKind so it can be logged
       precisely; the request guard collapses all of them into a single 401.

  Time checks are done here against an injectable clock rather than inside
  jose, which reports nbf and iat problems with the same exception type.

  No revocation list: signature + expiry is the entire trust model.

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from jose.utils import base64url_decode, base64url_encode

from auth.errors import TokenError, TokenErrorKind
from auth.models import SessionClaims


ALGORITHM = "HS256"
TOKEN_TTL = timedelta(hours=24)

_REQUIRED_CLAIMS = ("sub", "user_id", "iat", "nbf", "exp")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Issues and verifies signed session tokens.

    Usage:
        codec = TokenCodec(settings.jwt_secret)
        token = codec.issue(42)
        claims = codec.verify(token)   # raises TokenError
    """

    def __init__(self, secret: str, clock: Callable[[], datetime] = _utcnow) -> None:
        if not secret:
            raise ValueError("TokenCodec requires a non-empty signing secret")
        self._secret = secret
        self._clock = clock

    def __repr__(self) -> str:
        return "TokenCodec(secret=<redacted>)"

    def issue(self, user_id: int) -> str:
        """Encode a signed token for user_id, valid for TOKEN_TTL from now."""
        now = self._clock().replace(microsecond=0)
        payload = {
            "sub": str(user_id),
            "user_id": user_id,
            "iat": now,
            "nbf": now,
            "exp": now + TOKEN_TTL,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> SessionClaims:
        """Check signature and validity window; return the decoded claims.

        Raises:
            TokenError(MALFORMED):         token cannot be decoded into the expected shape.
            TokenError(INVALID_SIGNATURE): tampered payload, wrong secret or wrong alg.
            TokenError(EXPIRED):           now > exp.
            TokenError(NOT_YET_VALID):     now < nbf.
        """
        try:
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise TokenError(TokenErrorKind.MALFORMED, str(exc)) from exc

        _check_signature_encoding(token)
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "verify_nbf": False, "verify_iat": False},
            )
        except JWTError as exc:
            raise TokenError(TokenErrorKind.INVALID_SIGNATURE, str(exc)) from exc

        claims = _claims_from_payload(payload)

        now = self._clock()
        if now < claims.not_before:
            raise TokenError(TokenErrorKind.NOT_YET_VALID, f"nbf={claims.not_before.isoformat()}")
        if now > claims.expires_at:
            raise TokenError(TokenErrorKind.EXPIRED, f"exp={claims.expires_at.isoformat()}")
        return claims


def _claims_from_payload(payload: dict) -> SessionClaims:
    missing = [name for name in _REQUIRED_CLAIMS if name not in payload]
    if missing:
        raise TokenError(TokenErrorKind.MALFORMED, f"missing claims: {', '.join(missing)}")

    user_id = payload["user_id"]
    # bool is an int subclass; a JSON true must not pass as user 1.
    if not isinstance(user_id, int) or isinstance(user_id, bool) or payload["sub"] != str(user_id):
        raise TokenError(TokenErrorKind.MALFORMED, "subject claims do not agree")

    try:
        return SessionClaims(
            subject_user_id=user_id,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            not_before=datetime.fromtimestamp(payload["nbf"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (TypeError, ValueError, OverflowError, OSError) as exc:
        raise TokenError(TokenErrorKind.MALFORMED, "invalid timestamp claim") from exc


def _check_signature_encoding(token: str) -> None:
    """Reject a signature segment that is not the canonical base64url form.

    The last character of an HS256 signature carries two unused bits, and a
    lenient decoder maps several spellings to the same bytes. Only the exact
    encoding of the signature bytes is accepted.
    """
    segment = token.rsplit(".", 1)[-1]
    try:
        canonical = base64url_encode(base64url_decode(segment.encode("utf-8"))).decode("ascii")
    except (TypeError, ValueError) as exc:
        raise TokenError(TokenErrorKind.INVALID_SIGNATURE, "undecodable signature segment") from exc
    if canonical != segment:
        raise TokenError(TokenErrorKind.INVALID_SIGNATURE, "non-canonical signature encoding")
