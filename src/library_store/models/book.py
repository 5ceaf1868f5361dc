from decimal import Decimal
from sqlalchemy import String, DateTime, Integer, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from datetime import datetime

from library_store.database.base import (
    Base,
    field_check,
    max_length_check,
    non_negative_check,
)
from library_store.database.triggers import install_updated_at_trigger

ISBN_MAX_LENGTH = 13
TITLE_MAX_LENGTH = 200

# Oldest publication year accepted; anything below is treated as a data-entry error.
MIN_PUBLICATION_YEAR = 1000


class Book(Base):
    """
    SQLAlchemy model for a catalogued book and its copy inventory.

    `available_copies` is a bounded counter: the store rejects any row where it
    leaves the range [0, total_copies]. The repository only moves it through
    conditional single-statement updates.
    """
    __tablename__ = "books"

    __table_args__ = (
        UniqueConstraint("isbn", name="uq_books_isbn"),
        max_length_check("isbn", ISBN_MAX_LENGTH),
        max_length_check("title", TITLE_MAX_LENGTH),
        field_check(
            f"publication_year >= {MIN_PUBLICATION_YEAR}",
            name="publication_year_min",
            field="publication_year",
            rule="min_year",
        ),
        field_check("pages > 0", name="pages_positive", field="pages", rule="positive"),
        non_negative_check("price"),
        non_negative_check("total_copies"),
        non_negative_check("available_copies"),
        field_check(
            "available_copies <= total_copies",
            name="available_within_total",
            field="available_copies",
            rule="within_total",
        ),
        # Deleted ids are never handed out again.
        {"sqlite_autoincrement": True},
    )

    book_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    isbn: Mapped[str] = mapped_column(String(ISBN_MAX_LENGTH), nullable=False)

    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH), nullable=False)

    # References into the external catalog (authors, publishers, categories)
    author_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    publisher_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    category_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    publication_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pages: Mapped[int | None] = mapped_column(Integer, nullable=True)
    language: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    location: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), server_default="available", nullable=False)

    total_copies: Mapped[int] = mapped_column(Integer, server_default="1", nullable=False)
    available_copies: Mapped[int] = mapped_column(Integer, server_default="1", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<Book(book_id={self.book_id!r}, isbn={self.isbn!r}, "
            f"available={self.available_copies!r}/{self.total_copies!r})>"
        )


install_updated_at_trigger(Book.__table__)
