"""
Consent Ledger - Error Taxonomy

Every error raised by the ledger carries a stable ``kind`` and an
HTTP-style ``status`` so that an outer transport layer can map it 1:1 to a
response of the form ``{"error": {"kind": ..., "message": ...}}``.
"""

from __future__ import annotations

from typing import Any

from consent_ledger.core.enums import ErrorKind


class ConsentLedgerError(Exception):
    """Base exception for all consent ledger errors."""

    kind: ErrorKind = ErrorKind.INTERNAL_SERVER_ERROR
    status: int | None = None

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        status: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.status = status or type(self).status or self.kind.default_status
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Render the error body the transport layer returns."""
        body: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value}, status={self.status}, message={self.message!r})"


class ValidationError(ConsentLedgerError):
    """A field validator or legacy parser rejected a value."""

    kind = ErrorKind.BAD_REQUEST

    def __init__(self, field: str, message: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field = field
        self.details.setdefault("field", field)


class MissingRequiredFieldError(ConsentLedgerError):
    """A required field had neither a value nor a default on create."""

    kind = ErrorKind.BAD_REQUEST

    def __init__(self, field: str, **kwargs: Any):
        super().__init__(f"{field} is required", **kwargs)
        self.field = field
        self.details.setdefault("field", field)


class NotFoundError(ConsentLedgerError):
    """An explicitly referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(ConsentLedgerError):
    """Identifiers or state disagree (e.g. userId and externalId name different subjects)."""

    kind = ErrorKind.BAD_REQUEST


class DependencyFailure(ConsentLedgerError):
    """An auto-create step returned no record."""

    kind = ErrorKind.INTERNAL_SERVER_ERROR
    status = 503


class DuplicateEntryError(ConsentLedgerError):
    """A storage uniqueness constraint was violated."""

    kind = ErrorKind.CONFLICT

    def __init__(self, table: str, columns: tuple[str, ...], **kwargs: Any):
        super().__init__(
            f"Duplicate entry in {table} for unique constraint on {', '.join(columns)}",
            **kwargs,
        )
        self.table = table
        self.columns = columns
