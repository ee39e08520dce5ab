"""
core/errors.py -- Shared base for the per-component error types.

Each component (tokens, OAuth, auth service, users) owns one exception class
whose variants are a closed Enum. Every variant carries its wire code, HTTP
status and the generic client-facing message, so the API layer renders all of
them with a single exception handler and never has to inspect messages.

Detail text passed at raise time is for logs only. It is never sent to the
client -- that would leak store or provider internals.

Layer rule: core/ is the kernel. No imports from api/, auth/, or users/.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Base for closed error-variant enums.

    Members are declared as (code, status_code, message) tuples.
    """

    def __init__(self, code: str, status_code: int, message: str) -> None:
        self.code = code
        self.status_code = status_code
        self.message = message


class ServiceError(Exception):
    """An error whose cause is one member of a closed ErrorKind enum."""

    def __init__(self, kind: ErrorKind, detail: str | None = None) -> None:
        super().__init__(detail or kind.message)
        self.kind = kind
        self.detail = detail

    @property
    def code(self) -> str:
        return self.kind.code

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def public_message(self) -> str:
        return self.kind.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.name}, {self.detail!r})"
