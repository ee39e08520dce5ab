"""
auth/service.py -- Login orchestration: credentials or OAuth profile -> session token.

Security design decisions:
  Identifier enumeration: an unknown username/email and a wrong password
       produce the same AuthError(INVALID_CREDENTIALS) with the same message.
       An unknown identifier still runs a full argon2 verification against a
       dummy hash so response time does not reveal which case occurred.

  OAuth-only accounts have no password hash; verify_password() returns False
       for them, which lands in the ordinary mismatch path.

  Collaborator failures (store, hashing) are wrapped into AuthError(INTERNAL)
       here. Their detail goes to the log, never to the client.

  invalidate() is accepted but ineffective. Tokens are stateless and stay
       valid until natural expiry; there is no denylist.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import AuthError, AuthErrorKind
from auth.models import ExternalIdentity
from auth.passwords import HashingError, burn_verification, verify_password
from auth.tokens import TokenCodec
from users.models import User, UserError, UserErrorKind
from users.service import UserService

logger = logging.getLogger("queso.auth")

_USERNAME_UNSAFE = re.compile(r"[^a-z0-9._-]+")


def derive_username(identity: ExternalIdentity, policy: str = "email_local_part") -> str:
    """Pick a base username for an account created from an OAuth profile.

    email_local_part: "Jane.Doe@example.com" -> "jane.doe"
    display_name:     "Jane Doe"             -> "jane-doe"

    Falls back to the other source, then to "user", when the preferred one
    normalizes to nothing. Uniqueness is the user service's job.
    """
    local_part = identity.email.split("@", 1)[0]
    sources = [identity.display_name, local_part] if policy == "display_name" else [local_part, identity.display_name]
    for source in sources:
        candidate = _USERNAME_UNSAFE.sub("-", (source or "").strip().lower()).strip("-.")
        if candidate:
            return candidate[:64]
    return "user"


class AuthService:
    def __init__(self, users: UserService, codec: TokenCodec, username_policy: str = "email_local_part") -> None:
        self.users = users
        self.codec = codec
        self.username_policy = username_policy

    def login_with_credential(self, identifier: str, password: str) -> str:
        """Authenticate by username or email and password; return a session token.

        Raises AuthError(INVALID_CREDENTIALS) for an unknown identifier and
        for a wrong password alike.
        """
        store = self.users.store
        try:
            user = store.get_by_username(identifier)
            if user is None and "@" in identifier:
                user = store.get_by_email(identifier)
        except SQLAlchemyError as exc:
            raise _store_failure("credential lookup", exc) from exc

        if user is None:
            # Equalize timing -- do NOT return before running argon2.
            burn_verification(password)
            logger.info("Login failed: unknown identifier")
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, "unknown identifier")

        try:
            matched = verify_password(password, user.password_hash)
        except HashingError as exc:
            logger.error("Corrupt password record for user id=%d", user.id)
            raise AuthError(AuthErrorKind.INTERNAL, "corrupt password record") from exc

        if not matched:
            logger.info("Login failed: bad password (user id=%d)", user.id)
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, f"bad password for user id={user.id}")

        logger.info("Login succeeded (user id=%d)", user.id)
        return self.codec.issue(user.id)

    def login_with_oauth(self, identity: ExternalIdentity) -> str:
        """Find or create the account for a Google identity; return a session token.

        Raises UserError(EMAIL_EXISTS) when the profile email already belongs
        to an account that is not linked to this Google subject.
        """
        try:
            user = self.users.store.get_by_google_id(identity.external_id)
            if user is None:
                base = derive_username(identity, self.username_policy)
                user = self.users.create_oauth_user(identity, base)
        except SQLAlchemyError as exc:
            raise _store_failure("oauth account lookup", exc) from exc
        logger.info("OAuth login succeeded (user id=%d)", user.id)
        return self.codec.issue(user.id)

    def resolve(self, user_id: int) -> User:
        """Return the user a validated token refers to."""
        try:
            return self.users.get_user(user_id)
        except UserError as exc:
            if exc.kind is UserErrorKind.NOT_FOUND:
                raise AuthError(AuthErrorKind.NOT_FOUND, f"token subject {user_id} no longer exists") from exc
            raise
        except SQLAlchemyError as exc:
            raise _store_failure("user lookup", exc) from exc

    def invalidate(self, user_id: int) -> None:
        """Accept a logout request. Tokens remain valid until they expire."""
        logger.info("Logout requested (user id=%d); token stays valid until expiry", user_id)


def _store_failure(operation: str, exc: SQLAlchemyError) -> AuthError:
    logger.error("Store failure during %s: %s", operation, exc.__class__.__name__)
    return AuthError(AuthErrorKind.INTERNAL, f"store failure during {operation}: {exc}")
