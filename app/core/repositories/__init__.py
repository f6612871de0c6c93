"""
Repository layer for Firestore data access.
"""

from app.core.repositories.exceptions import (
    NotFoundError,
    RepositoryError,
    SessionRepositoryError,
    ValidationError,
)
from app.core.repositories.sessions import SessionRepository

__all__ = [
    "NotFoundError",
    "RepositoryError",
    "SessionRepository",
    "SessionRepositoryError",
    "ValidationError",
]
