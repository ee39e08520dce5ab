"""
users/service.py -- User management use cases on top of UserStore.

Existence checks before an insert are best-effort only: two concurrent
registrations can both pass them. The UNIQUE constraints in the store settle
the race, and the IntegrityError is mapped back to USERNAME_EXISTS or
EMAIL_EXISTS by re-reading which value is now taken.

Layer rule: no imports from api/. auth/passwords is allowed (hashing is a
leaf utility with no dependencies on the rest of auth/).
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.models import ExternalIdentity
from auth.passwords import HashingError, hash_password
from users.models import User, UserError, UserErrorKind
from users.store import UserStore

logger = logging.getLogger("queso.users")

# Suffixes tried when an OAuth-derived username is already taken (alice, alice2, ...).
_MAX_USERNAME_ATTEMPTS = 50


class UserService:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, username: str, email: str, password: str) -> User:
        """Create a local account with a hashed password.

        Raises:
            UserError(USERNAME_EXISTS / EMAIL_EXISTS): value already taken; nothing is written.
            UserError(INTERNAL):                       password hashing failed.
        """
        email = email.strip().lower()
        if self.store.get_by_username(username) is not None:
            raise UserError(UserErrorKind.USERNAME_EXISTS, f"username={username!r}")
        if self.store.get_by_email(email) is not None:
            raise UserError(UserErrorKind.EMAIL_EXISTS, f"email={email!r}")

        try:
            password_hash = hash_password(password)
        except HashingError as exc:
            logger.error("Password hashing failed while registering %r", username)
            raise UserError(UserErrorKind.INTERNAL, "password hashing failed") from exc

        user = User(username=username, email=email, password_hash=password_hash)
        try:
            user_id = self.store.create_user(user)
        except IntegrityError as exc:
            raise self._conflict_error(username, email) from exc

        logger.info("User registered (id=%d, username=%s)", user_id, username)
        return self._get_created(user_id)

    def create_oauth_user(self, identity: ExternalIdentity, base_username: str) -> User:
        """Create an OAuth-only account (no password) for a Google identity.

        base_username is deduplicated with a numeric suffix. If a concurrent
        callback already created the account for this Google subject, that
        account is returned instead.

        Raises:
            UserError(EMAIL_EXISTS): a different account already owns the email.
        """
        email = identity.email.strip().lower()
        if self.store.get_by_email(email) is not None:
            raise UserError(UserErrorKind.EMAIL_EXISTS, f"email={email!r} (oauth subject {identity.external_id})")

        for candidate in _username_candidates(base_username):
            if self.store.get_by_username(candidate) is not None:
                continue
            user = User(
                username=candidate,
                email=email,
                google_id=identity.external_id,
                display_name=identity.display_name or None,
                avatar_url=identity.avatar_url or None,
            )
            try:
                user_id = self.store.create_user(user)
            except IntegrityError as exc:
                existing = self.store.get_by_google_id(identity.external_id)
                if existing is not None:
                    return existing
                if self.store.get_by_email(email) is not None:
                    raise UserError(UserErrorKind.EMAIL_EXISTS, f"email={email!r}") from exc
                # Username taken between the check and the insert -- try the next suffix.
                continue
            logger.info("OAuth user created (id=%d, username=%s)", user_id, candidate)
            return self._get_created(user_id)

        raise UserError(UserErrorKind.USERNAME_EXISTS, f"no free username derived from {base_username!r}")

    # ------------------------------------------------------------------
    # Queries / deletion
    # ------------------------------------------------------------------

    def get_user(self, user_id: int) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise UserError(UserErrorKind.NOT_FOUND, f"id={user_id}")
        return user

    def list_users(self) -> list[User]:
        return self.store.list_users()

    def delete_user(self, user_id: int, acting_user_id: int) -> None:
        """Delete an account. Users may only delete themselves."""
        if user_id != acting_user_id:
            raise UserError(UserErrorKind.FORBIDDEN, f"user {acting_user_id} tried to delete {user_id}")
        if not self.store.delete_user(user_id):
            raise UserError(UserErrorKind.NOT_FOUND, f"id={user_id}")
        logger.info("User deleted (id=%d)", user_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _conflict_error(self, username: str, email: str) -> UserError:
        if self.store.get_by_username(username) is not None:
            return UserError(UserErrorKind.USERNAME_EXISTS, f"username={username!r} (lost race)")
        if self.store.get_by_email(email) is not None:
            return UserError(UserErrorKind.EMAIL_EXISTS, f"email={email!r} (lost race)")
        return UserError(UserErrorKind.INTERNAL, "integrity error with no matching conflict")

    def _get_created(self, user_id: int) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise UserError(UserErrorKind.INTERNAL, f"user {user_id} not found after write")
        return user


def _username_candidates(base: str):
    yield base
    for n in range(2, _MAX_USERNAME_ATTEMPTS + 1):
        yield f"{base}{n}"
