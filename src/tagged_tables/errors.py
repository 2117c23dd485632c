"""Error taxonomy for tagged_tables.

Every error carries a ``kind`` and, where one exists, the offending
identifier (column, table, tag, rule, database) so callers can report it.
"""

from __future__ import annotations


class TaggedTablesError(Exception):
    """Base class for all errors raised by tagged_tables."""

    kind = "error"

    def __init__(self, message: str, identifier: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.identifier = identifier

    def __str__(self) -> str:
        return self.message


class NotFoundError(TaggedTablesError, LookupError):
    """A database, table, column, row or backup does not exist."""

    kind = "not_found"


class ConflictError(TaggedTablesError):
    """A name is already taken, or a concurrent writer got there first."""

    kind = "conflict"


class ValidationError(TaggedTablesError, ValueError):
    """A value or identifier failed type, shape or range checks."""

    kind = "validation"


class ProtectedColumnError(TaggedTablesError):
    """A structural change was attempted on a protected column."""

    kind = "protected"


class InvariantError(TaggedTablesError, RuntimeError):
    """Metadata and catalog disagree; this is a defect, not a user error."""

    kind = "invariant"


class StorageError(TaggedTablesError):
    """The physical store rejected an operation."""

    kind = "storage"


class InconsistentStateError(TaggedTablesError):
    """Physical storage and metadata diverged and could not be reconciled."""

    kind = "inconsistent_state"
