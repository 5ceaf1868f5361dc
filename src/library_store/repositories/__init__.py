from .base_repository import BaseRepository
from .user_repository import UserRepository
from .book_repository import BookRepository

__all__ = ["BaseRepository", "UserRepository", "BookRepository"]
