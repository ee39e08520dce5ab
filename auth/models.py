"""
auth/models.py -- Domain dataclasses for authentication values.

Pattern: Data class (pure data container, zero logic). The codec, the OAuth
client and the auth service do the work; these only carry shape.

All three are frozen: claims are never mutated once issued, and an
authenticated identity lives for exactly one request.

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class SessionClaims:
    """The payload carried inside a signed session token.

    expires_at is always issued_at + 24h and not_before == issued_at.
    """

    subject_user_id: int
    issued_at: datetime
    not_before: datetime
    expires_at: datetime


@dataclass(frozen=True)
class ExternalIdentity:
    """A profile fetched from the identity provider during OAuth exchange.

    external_id is the provider's stable user ID (Google "id"). It is the
    only field used to match an existing account.
    """

    external_id: str
    email: str
    display_name: str = ""
    avatar_url: str = ""


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """The result of a successfully validated bearer token."""

    user_id: int
