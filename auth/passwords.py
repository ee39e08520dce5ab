"""
auth/passwords.py -- Password hashing and verification (argon2id).

Security design decisions:
  argon2id via argon2-cffi's PasswordHasher. Memory-hard, so GPU brute force
  of a leaked users table is expensive. Every hash() call draws a fresh
  random salt; the PHC string output embeds salt and cost parameters, so
  verify() needs nothing but the stored record.

  An absent or empty record (OAuth-only account) always verifies False. The
  auth service treats "no password set" as an ordinary credential mismatch.

  A malformed record means corrupt storage -- that is the only case that
  raises HashingError. A wrong password is never an error.

  _DUMMY_HASH enables timing equalization in the auth service: an unknown
  identifier still pays the full argon2 cost.

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

from argon2 import PasswordHasher, Type
from argon2.exceptions import HashingError as Argon2HashingError
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

_hasher = PasswordHasher(type=Type.ID)


class HashingError(Exception):
    """The hashing primitive failed or a stored record is corrupt."""


def hash_password(plain: str) -> str:
    """Return an argon2id PHC string for the given plaintext password."""
    try:
        return _hasher.hash(plain)
    except Argon2HashingError as exc:
        raise HashingError("password hashing failed") from exc


def verify_password(plain: str, record: str | None) -> bool:
    """Return True if the plaintext matches the stored argon2 record.

    Raises HashingError only when the record is present but not a valid
    argon2 hash.
    """
    if not record:
        return False
    try:
        return _hasher.verify(record, plain)
    except VerifyMismatchError:
        return False
    except InvalidHashError as exc:
        raise HashingError("stored password record is malformed") from exc
    except VerificationError:
        return False


# Computed once at module load so the first unknown-user login is not
# measurably slower than later ones.
_DUMMY_HASH: str = hash_password("queso_timing_dummy")


def burn_verification(plain: str) -> None:
    """Run a full verification against the dummy hash and discard the result."""
    verify_password(plain, _DUMMY_HASH)
