"""Custom exceptions for database and domain operations."""


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class DatabaseConnectionError(DatabaseError):
    """Database connection failed."""
    pass


class DatabaseConstraintError(DatabaseError):
    """Database constraint violation (duplicate, foreign key, etc)."""
    pass


class AssignmentConflictError(DatabaseConstraintError):
    """Destination employee already owns an instance of the template for that day."""

    def __init__(
        self,
        message: str = "This employee already has this task template assigned for the same date.",
        existing_task_id: str = None,
    ):
        super().__init__(message)
        self.existing_task_id = existing_task_id


class DatabaseOperationError(DatabaseError):
    """General database operation failed."""
    pass


class EntityNotFoundError(DatabaseError):
    """Requested entity not found."""
    pass


class PermissionDeniedError(DatabaseError):
    """Caller is not allowed to act on the entity."""
    pass


class ValidationError(DatabaseError):
    """Data validation failed before database operation."""
    pass
