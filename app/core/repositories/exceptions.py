"""
Repository exceptions.
"""


class RepositoryError(Exception):
    """Base exception for all repository errors."""
    pass


class SessionRepositoryError(RepositoryError):
    """Exception raised by SessionRepository operations."""
    pass


class NotFoundError(RepositoryError):
    """Raised when a requested resource is not found."""
    pass


class ValidationError(RepositoryError):
    """Raised when input validation fails."""
    pass
