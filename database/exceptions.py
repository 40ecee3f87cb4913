"""Database exception types."""


class DatabaseError(Exception):
    """Raised when the data layer fails.

    The message carries the underlying driver message so callers can surface it.
    """
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when schema loading or migration fails."""
    pass


__all__ = ['DatabaseError', 'DatabaseSchemaError']
