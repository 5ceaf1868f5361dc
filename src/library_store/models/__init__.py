"""
Single import point for the database models.

    from library_store.models import User, Book, UserRole
"""

from .user import User, UserRole, UserStatus
from .book import Book

__all__ = [
    "User",
    "UserRole",
    "UserStatus",
    "Book",
]
