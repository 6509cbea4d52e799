"""Custom exceptions for database and domain operations."""


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class DatabaseConnectionError(DatabaseError):
    """Database connection failed."""
    pass


class DatabaseConstraintError(DatabaseError):
    """Database constraint violation (duplicate link, second active share, etc)."""
    pass


class DatabaseOperationError(DatabaseError):
    """General database operation failed."""
    pass


class EntityNotFoundError(DatabaseError):
    """Requested entity not found."""
    pass


class ValidationError(DatabaseError):
    """Data validation failed before database operation."""
    pass


class AccessDeniedError(DatabaseError):
    """Caller is not allowed to perform the operation (owner-only actions)."""
    pass


class ExpiredError(DatabaseError):
    """Entity exists but its validity window has passed."""
    pass


class GuestSessionExpiredError(ExpiredError):
    """Guest identity is older than the guest validity window."""
    pass


class ShareExpiredError(ExpiredError):
    """Share link is past its expiry."""
    pass
