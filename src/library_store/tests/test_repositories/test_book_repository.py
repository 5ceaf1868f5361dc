from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from library_store.core.clock import as_utc
from library_store.exceptions import CheckViolation, DuplicateKey, LengthViolation, NotNullViolation
from library_store.models import Book
from library_store.repositories import BookRepository
from library_store.tests.test_fixtures.repository_fixtures import build_book, unique_isbn


async def available_copies(repo: BookRepository, book_id: int) -> int:
    book = await repo.find_by_id(book_id)
    assert book is not None
    return book.available_copies


@pytest.mark.asyncio
class TestBookRepositoryCreate:
    """
    Tests covering BookRepository.create().

    Rationale:
      - The books table guards the copy counter (0 <= available <= total), the
        publication-year floor and the ISBN/title lengths; each must surface
        as a typed error naming its field.
    """

    async def test_create_book_success(self, book_repository: BookRepository):
        data = build_book()
        isbn, title = data.isbn, data.title

        book = await book_repository.create(data)

        assert isinstance(book, Book)
        assert book.book_id is not None and book.book_id > 0
        assert book.isbn == isbn
        assert book.title == title
        assert book.publication_year == 2023
        assert book.pages == 300
        assert book.language == "Indonesian"
        assert book.price == Decimal("75000.00")
        assert book.location == "Rak A-1"
        assert book.total_copies == 5
        assert book.available_copies == 5
        assert book.created_at is not None
        assert book.updated_at is not None

    async def test_create_book_applies_defaults(self, create_book):
        book = await create_book(status=None, total_copies=None, available_copies=None)

        assert book.status == "available"
        assert book.total_copies == 1
        assert book.available_copies == 1

    async def test_create_book_duplicate_isbn_raises(self, create_book):
        existing = await create_book()

        with pytest.raises(DuplicateKey) as exc_info:
            await create_book(isbn=existing.isbn)

        assert exc_info.value.field == "isbn"

    async def test_create_book_available_above_total_raises(self, create_book):
        with pytest.raises(CheckViolation) as exc_info:
            await create_book(total_copies=5, available_copies=10)

        assert exc_info.value.field == "available_copies"
        assert exc_info.value.rule == "within_total"

    async def test_create_book_negative_copies_raises(self, create_book):
        with pytest.raises(CheckViolation) as exc_info:
            await create_book(total_copies=-1, available_copies=-1)

        assert exc_info.value.field in {"total_copies", "available_copies"}

    async def test_create_book_publication_year_floor(self, create_book):
        """
        Behavior:
          - Year 999 is rejected as a CheckViolation on publication_year.
          - Year 1000 is the first accepted value.
        """
        with pytest.raises(CheckViolation) as exc_info:
            await create_book(publication_year=999)

        assert exc_info.value.field == "publication_year"
        assert exc_info.value.rule == "min_year"

        book = await create_book(publication_year=1000)
        assert book.publication_year == 1000

    async def test_create_book_zero_pages_raises(self, create_book):
        with pytest.raises(CheckViolation) as exc_info:
            await create_book(pages=0)

        assert exc_info.value.field == "pages"

    async def test_create_book_negative_price_raises(self, create_book):
        with pytest.raises(CheckViolation) as exc_info:
            await create_book(price=Decimal("-1.00"))

        assert exc_info.value.field == "price"

    async def test_create_book_isbn_too_long_raises(self, create_book):
        with pytest.raises(LengthViolation) as exc_info:
            await create_book(isbn=unique_isbn() + "0")

        assert exc_info.value.field == "isbn"

    async def test_create_book_title_length_boundary(self, create_book):
        book = await create_book(title="T" * 200)
        assert len(book.title) == 200

        with pytest.raises(LengthViolation) as exc_info:
            await create_book(title="T" * 201)

        assert exc_info.value.field == "title"

    async def test_create_book_missing_title_raises(self, create_book):
        with pytest.raises(NotNullViolation) as exc_info:
            await create_book(title=None)

        assert exc_info.value.field == "title"


@pytest.mark.asyncio
class TestBookRepositoryRead:

    async def test_find_by_id_and_isbn(self, book_repository: BookRepository, create_book):
        book = await create_book()

        by_id = await book_repository.find_by_id(book.book_id)
        by_isbn = await book_repository.find_by_isbn(book.isbn)

        assert by_id is not None and by_id.isbn == book.isbn
        assert by_isbn is not None and by_isbn.book_id == book.book_id

    async def test_find_missing_returns_none(self, book_repository: BookRepository):
        assert await book_repository.find_by_id(999_999) is None
        assert await book_repository.find_by_isbn("0000000000000") is None

    async def test_find_all_returns_every_book(self, book_repository: BookRepository, create_book):
        books = [await create_book() for _ in range(3)]

        found = await book_repository.find_all()

        assert [b.book_id for b in found] == sorted(b.book_id for b in books)

    async def test_search_by_title_is_case_insensitive(self, book_repository: BookRepository, create_book):
        """
        Behavior:
          - A book titled "...SearchTestBook..." is found by "SearchTest",
            by "searchtest" and by "SEARCHTEST".
          - A title without the fragment is not.
        """
        target = await create_book(title="The SearchTestBook Collection")
        other = await create_book(title="Unrelated Volume")

        for fragment in ("SearchTest", "searchtest", "SEARCHTEST"):
            ids = [b.book_id for b in await book_repository.search_by_title(fragment)]
            assert target.book_id in ids
            assert other.book_id not in ids

    async def test_search_by_title_no_match_returns_empty(self, book_repository: BookRepository, create_book):
        await create_book(title="Something")

        assert await book_repository.search_by_title("NoSuchTitleFragment") == []

    async def test_search_by_title_treats_wildcards_literally(self, book_repository: BookRepository, create_book):
        percent = await create_book(title="100% Organic Gardening")
        digits = await create_book(title="1000 Organic Recipes")
        underscore = await create_book(title="snake_case explained")
        letters = await create_book(title="snakeXcase explained")

        percent_ids = [b.book_id for b in await book_repository.search_by_title("100%")]
        underscore_ids = [b.book_id for b in await book_repository.search_by_title("snake_case")]

        assert percent_ids == [percent.book_id]
        assert digits.book_id not in percent_ids
        assert underscore_ids == [underscore.book_id]
        assert letters.book_id not in underscore_ids

    async def test_find_available_books(self, book_repository: BookRepository, create_book):
        on_shelf = await create_book(total_copies=3, available_copies=3)
        all_out = await create_book(total_copies=2, available_copies=0)

        ids = [b.book_id for b in await book_repository.find_available_books()]

        assert on_shelf.book_id in ids
        assert all_out.book_id not in ids

    async def test_counts(self, book_repository: BookRepository, create_book):
        await create_book(total_copies=3, available_copies=3)
        await create_book(total_copies=2, available_copies=0)

        assert await book_repository.count_all() == 2
        assert await book_repository.count_available_books() == 1


@pytest.mark.asyncio
class TestBookRepositoryCopyCounter:
    """
    Tests covering the bounded counter on available_copies.

    Rationale:
      - decrease stops at 0, increase stops at total_copies; hitting a bound
        returns False and leaves the count untouched, it is not an error.
    """

    async def test_decrease_available_copies(self, book_repository: BookRepository, create_book):
        book = await create_book(total_copies=5, available_copies=5)

        assert await book_repository.decrease_available_copies(book.book_id) is True
        assert await available_copies(book_repository, book.book_id) == 4

    async def test_decrease_at_zero_returns_false(self, book_repository: BookRepository, create_book):
        book = await create_book(total_copies=5, available_copies=0)

        assert await book_repository.decrease_available_copies(book.book_id) is False
        assert await available_copies(book_repository, book.book_id) == 0

    async def test_decrease_until_empty(self, book_repository: BookRepository, create_book):
        book = await create_book(total_copies=3, available_copies=3)

        results = [await book_repository.decrease_available_copies(book.book_id) for _ in range(5)]

        assert results == [True, True, True, False, False]
        assert await available_copies(book_repository, book.book_id) == 0

    async def test_increase_at_ceiling_returns_false(self, book_repository: BookRepository, create_book):
        book = await create_book(total_copies=5, available_copies=5)

        assert await book_repository.increase_available_copies(book.book_id) is False
        assert await available_copies(book_repository, book.book_id) == 5

    async def test_increase_below_ceiling(self, book_repository: BookRepository, create_book):
        book = await create_book(total_copies=5, available_copies=3)

        assert await book_repository.increase_available_copies(book.book_id) is True
        assert await available_copies(book_repository, book.book_id) == 4

    async def test_counter_ops_on_missing_book(self, book_repository: BookRepository):
        assert await book_repository.decrease_available_copies(999_999) is False
        assert await book_repository.increase_available_copies(999_999) is False

    async def test_counter_refreshes_loaded_instance(self, book_repository: BookRepository, create_book):
        book = await create_book(total_copies=2, available_copies=2)

        await book_repository.decrease_available_copies(book.book_id)

        assert book.available_copies == 1

    async def test_counter_advances_updated_at(self, book_repository: BookRepository, create_book):
        book = await create_book(total_copies=2, available_copies=2)
        before = as_utc(book.updated_at)

        await book_repository.decrease_available_copies(book.book_id)

        assert as_utc(book.updated_at) > before

    @pytest.mark.parametrize(
        "operation, args",
        [
            ("decrease_available_copies", ()),
            ("increase_available_copies", ()),
            ("update_available_copies", (1,)),
        ],
    )
    async def test_counter_stamps_past_a_future_updated_at(
        self, book_repository: BookRepository, create_book, operation, args
    ):
        """
        Behavior:
          - The row was last written by a process whose clock ran an hour ahead.
          - Every copy operation still moves updated_at past the stored value.
        """
        book = await create_book(total_copies=3, available_copies=2)
        ahead = datetime.now(timezone.utc) + timedelta(hours=1)
        await book_repository.db.execute(
            update(Book).where(Book.book_id == book.book_id).values(updated_at=ahead)
        )

        assert await getattr(book_repository, operation)(book.book_id, *args) is True

        reloaded = await book_repository.find_by_id(book.book_id)
        assert as_utc(reloaded.updated_at) > ahead

    async def test_update_available_copies(self, book_repository: BookRepository, create_book):
        book = await create_book(total_copies=5, available_copies=5)

        assert await book_repository.update_available_copies(book.book_id, 2) is True
        assert await available_copies(book_repository, book.book_id) == 2

    async def test_update_available_copies_missing_book(self, book_repository: BookRepository):
        assert await book_repository.update_available_copies(999_999, 1) is False

    async def test_update_available_copies_still_checked(self, book_repository: BookRepository, create_book):
        """
        Behavior:
          - The raw setter bypasses the counter guards but not the store's
            CHECK constraints: above total or below zero is rejected.
        """
        book = await create_book(total_copies=5, available_copies=5)

        with pytest.raises(CheckViolation) as above:
            await book_repository.update_available_copies(book.book_id, 6)
        with pytest.raises(CheckViolation) as below:
            await book_repository.update_available_copies(book.book_id, -1)

        assert above.value.field == "available_copies"
        assert below.value.field == "available_copies"
        assert await available_copies(book_repository, book.book_id) == 5

    async def test_available_count_never_exceeds_total_count(self, book_repository: BookRepository, create_book):
        books = [
            await create_book(total_copies=2, available_copies=2),
            await create_book(total_copies=1, available_copies=0),
            await create_book(total_copies=3, available_copies=1),
        ]
        operations = [
            (book_repository.decrease_available_copies, 0),
            (book_repository.decrease_available_copies, 0),
            (book_repository.increase_available_copies, 1),
            (book_repository.decrease_available_copies, 2),
            (book_repository.decrease_available_copies, 2),
            (book_repository.increase_available_copies, 0),
        ]

        for operation, index in operations:
            await operation(books[index].book_id)
            assert await book_repository.count_available_books() <= await book_repository.count_all()

        for book in books:
            reloaded = await book_repository.find_by_id(book.book_id)
            assert 0 <= reloaded.available_copies <= reloaded.total_copies


@pytest.mark.asyncio
class TestBookRepositoryUpdateDelete:

    async def test_update_book(self, book_repository: BookRepository, create_book):
        book = await create_book()
        before = as_utc(book.updated_at)
        book.title = "Revised Edition"
        book.location = "Rak B-2"

        assert await book_repository.update(book) is True

        reloaded = await book_repository.find_by_id(book.book_id)
        assert reloaded.title == "Revised Edition"
        assert reloaded.location == "Rak B-2"
        assert as_utc(reloaded.updated_at) > before

    async def test_update_book_breaking_counter_invariant_raises(self, book_repository: BookRepository, create_book):
        book = await create_book(total_copies=5, available_copies=5)
        book.total_copies = 3

        with pytest.raises(CheckViolation) as exc_info:
            await book_repository.update(book)

        assert exc_info.value.field == "available_copies"
        assert book.total_copies == 5

    async def test_update_missing_book_returns_false(self, book_repository: BookRepository):
        assert await book_repository.update(build_book(book_id=999_999)) is False

    async def test_delete_book(self, book_repository: BookRepository, create_book):
        book = await create_book()

        assert await book_repository.delete(book.book_id) is True
        assert await book_repository.find_by_id(book.book_id) is None
        assert await book_repository.delete(book.book_id) is False

    async def test_deleted_book_id_is_not_reused(self, book_repository: BookRepository, create_book):
        book = await create_book()
        await book_repository.delete(book.book_id)

        again = await create_book(isbn=book.isbn)

        assert again.book_id > book.book_id
