from __future__ import annotations


class SyncError(Exception):
    """Base class for every failure raised while synchronizing metadata."""


class ArgumentError(SyncError, ValueError):
    """Malformed connection parameters, or a requested database that does not exist."""


class QueryError(SyncError):
    """The query executor failed (network, authentication, syntax, ...)."""


class UnrecognizedDataError(SyncError):
    """A catalog returned a value outside the set this package understands."""
