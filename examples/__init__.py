"""Example entity types and storage usage for entityforge.

This package demonstrates library usage but is not part of the core API.
"""

from .models import Author, Book, BookCategoryEL, Publisher

__all__ = [
    "Author",
    "Book",
    "BookCategoryEL",
    "Publisher",
]
