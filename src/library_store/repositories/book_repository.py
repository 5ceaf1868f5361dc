"""
Book repository.

Besides the shared CRUD operations this owns the copy inventory of a book:
`available_copies` is a bounded counter with floor 0 and ceiling
`total_copies`. Borrow and return move it through
`decrease_available_copies()` / `increase_available_copies()`, each a single
conditional UPDATE whose WHERE clause carries the bound. Two concurrent
decrements against one remaining copy therefore produce exactly one success
and one no-op, and the counter never leaves [0, total_copies].
"""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from library_store.core.clock import AuditClock
from library_store.models.book import Book
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookRepository(BaseRepository[Book]):
    """
    Repository for Book entity operations.

    A duplicate ISBN is `DuplicateKey("isbn")`; `available_copies` above
    `total_copies` is `CheckViolation("available_copies", "within_total")`; a
    publication year below the floor is
    `CheckViolation("publication_year", "min_year")`; an over-long ISBN or
    title is a `LengthViolation`.
    """

    mutable_fields = (
        "isbn",
        "title",
        "author_id",
        "publisher_id",
        "category_id",
        "publication_year",
        "pages",
        "language",
        "description",
        "price",
        "location",
        "status",
        "total_copies",
        "available_copies",
    )

    def __init__(self, db: AsyncSession, clock: AuditClock | None = None):
        super().__init__(Book, db, clock)

    # =================================================================================================================
    # Read Operations
    # =================================================================================================================

    async def find_by_isbn(self, isbn: str) -> Book | None:
        return await self._find_one_by(Book.isbn, isbn, "find_by_isbn")

    async def search_by_title(self, fragment: str) -> list[Book]:
        """
        Case-insensitive substring match on `title`.

        `%` and `_` in `fragment` match literally. An empty fragment matches
        every book.
        """
        query = (
            select(Book)
            .where(func.lower(Book.title).contains(fragment.lower(), autoescape=True))
            .order_by(Book.book_id)
        )
        books = await self._find_many(query, "search_by_title")
        logger.debug(
            "repo.book.search_by_title.success",
            extra={"model": self.model_name, "count": len(books)},
        )
        return books

    async def find_available_books(self) -> list[Book]:
        """Exactly the books with at least one copy available."""
        query = select(Book).where(Book.available_copies > 0).order_by(Book.book_id)
        return await self._find_many(query, "find_available_books")

    async def count_available_books(self) -> int:
        query = select(func.count()).select_from(Book).where(Book.available_copies > 0)
        return await self._count(query, "count_available_books")

    # =================================================================================================================
    # Copy inventory
    # =================================================================================================================

    async def update_available_copies(self, book_id: int, available_copies: int) -> bool:
        """
        Set `available_copies` unconditionally. Administrative repair only.

        Unlike the counter operations this is a plain overwrite and is not
        safe for concurrent borrow/return traffic. The store's CHECK
        constraints still apply: a value outside [0, total_copies] raises
        CheckViolation. Returns False if the book does not exist.
        """
        stmt = (
            update(Book)
            .where(Book.book_id == book_id)
            .values(available_copies=available_copies)
        )
        changed = await self._execute_conditional(stmt, "update_available_copies", book_id)
        logger.info(
            "repo.book.available_copies.set" if changed else "repo.book.available_copies.not_found",
            extra={"model": self.model_name, "id": book_id, "available_copies": available_copies},
        )
        return changed

    async def decrease_available_copies(self, book_id: int) -> bool:
        """
        Take one copy out: `available_copies - 1` if it is above 0.

        Returns False, without error, when no copy is available or the book
        does not exist.
        """
        stmt = (
            update(Book)
            .where(Book.book_id == book_id, Book.available_copies > 0)
            .values(available_copies=Book.available_copies - 1)
        )
        changed = await self._execute_conditional(stmt, "decrease_available_copies", book_id)
        if changed:
            logger.info("repo.book.decrease.success", extra={"model": self.model_name, "id": book_id})
        else:
            logger.info("repo.book.decrease.floor", extra={"model": self.model_name, "id": book_id})
        return changed

    async def increase_available_copies(self, book_id: int) -> bool:
        """
        Put one copy back: `available_copies + 1` if it is below `total_copies`.

        Returns False, without error, when every copy is already in or the
        book does not exist.
        """
        stmt = (
            update(Book)
            .where(Book.book_id == book_id, Book.available_copies < Book.total_copies)
            .values(available_copies=Book.available_copies + 1)
        )
        changed = await self._execute_conditional(stmt, "increase_available_copies", book_id)
        if changed:
            logger.info("repo.book.increase.success", extra={"model": self.model_name, "id": book_id})
        else:
            logger.info("repo.book.increase.ceiling", extra={"model": self.model_name, "id": book_id})
        return changed
