"""
users/models.py -- User entity and the user-management error type.

Pattern: Data class (pure data container, zero logic). The store maps rows
into User; the service and routes do the work.

Layer rule: no imports from api/ or auth/. core/ is allowed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.errors import ErrorKind, ServiceError


@dataclass
class User:
    """A registered account.

    password_hash is None for OAuth-only accounts (they never had a local
    password). google_id is None until the account is created or linked by a
    Google login. The hash is excluded from repr so it cannot end up in logs.
    """

    username: str
    email: str
    id: int | None = None
    password_hash: str | None = field(default=None, repr=False)
    google_id: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    created_at: str | None = None


class UserErrorKind(ErrorKind):
    USERNAME_EXISTS = ("username_exists", 409, "Username already exists.")
    EMAIL_EXISTS = ("email_exists", 409, "Email already exists.")
    NOT_FOUND = ("not_found", 404, "User not found.")
    FORBIDDEN = ("forbidden", 403, "You may only modify your own account.")
    INTERNAL = ("internal_error", 500, "An unexpected error occurred.")


class UserError(ServiceError):
    kind: UserErrorKind
