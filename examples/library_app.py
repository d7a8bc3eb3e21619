"""Library app: store, query and change books with the storage manager.

Run with:
    python -m examples.library_app

Set ENTITYFORGE_ADAPTER=sql and ENTITYFORGE_DATABASE_URL=sqlite:///library.db
to persist the library in SQLite instead of memory.
"""

import asyncio
import logging

from entityforge import IntervalConstraintViolation, StorageManager

from .models import Author, Book, BookCategoryEL, Publisher


async def main() -> None:
    manager = StorageManager(db_name="public_library")
    await manager.create_empty_db([Publisher, Author, Book])
    if await manager.has_database_contents():
        await manager.clear_database()

    await manager.add(
        Publisher,
        [
            {
                "name": "Harper",
                "address": "New York",
                "phone_numbers": [{"kind": "office", "number": "+1 212 207 7000"}],
            },
            {"name": "Basic Books", "address": "New York"},
        ],
    )
    tim, mark, douglas = await manager.add(
        Author,
        [{"name": "Tim Berners-Lee"}, {"name": "Mark Fischetti"}, {"name": "Douglas Hofstadter"}],
    )
    await manager.add(
        Book,
        [
            {
                "isbn": "006251587X",
                "title": "Weaving the Web",
                "year": 2000,
                "publisher": "Harper",
                "authors": [tim, mark],
            },
            {
                "isbn": "0465026567",
                "title": "Gödel, Escher, Bach",
                "year": 1999,
                "category": BookCategoryEL.OTHER,
                "publisher": "Basic Books",
                "authors": [douglas],
            },
            # Rejected: the title is too short
            {"isbn": "0465030793", "title": "I", "year": 2008},
        ],
    )

    books = await manager.retrieve_all(Book)
    for book in books.values():
        print(book)
        print(f"  by {book.get_value_as_string('authors')}, published by {book.publisher.display_value}")

    publishers = await manager.retrieve_all(Publisher)
    for publisher in publishers.values():
        print(f"{publisher.name} published: {publisher.get_value_as_string('published_books')}")

    result = await manager.update(Book, "006251587X", {"year": "2001", "category": BookCategoryEL.TEXTBOOK})
    print(f"Updated {', '.join(result.updated)}")

    try:
        books["006251587X"].year = 1222
    except IntervalConstraintViolation as e:
        print(e)

    await manager.destroy(Book, "0465026567")
    print(f"Remaining books: {', '.join(b.title for b in (await manager.retrieve_all(Book)).values())}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(main())
