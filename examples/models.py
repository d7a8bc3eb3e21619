"""Public library model: publishers, authors and books."""

from datetime import date

from entityforge import UNBOUNDED, Entity, Enumeration, Property, entity_type, list_of, record_of

BookCategoryEL = Enumeration("BookCategoryEL", ["novel", "biography", "textbook", "other"])

PhoneNumbers = list_of(record_of(kind="String", number="PhoneNumber"))


def next_year() -> int:
    return date.today().year + 1


@entity_type(display_attribute="name")
class Publisher(Entity):
    name = Property("NonEmptyString", id=True, label="Name")
    address = Property("NonEmptyString", optional=True, label="Address")
    phone_numbers = Property(PhoneNumbers, optional=True, label="Phone numbers")
    published_books = Property("Book", max_card=UNBOUNDED, inverse_of="publisher", label="Published books")


@entity_type(display_attribute="name")
class Author(Entity):
    author_id = Property("AutoIdNumber", id=True, label="Author ID")
    name = Property("NonEmptyString", max=120, label="Name")
    date_of_birth = Property("Date", optional=True, label="Date of birth")


@entity_type(display_attribute="title")
class Book(Entity):
    isbn = Property(
        "NonEmptyString",
        id=True,
        pattern=r"^\d{9}(\d|X)$",
        pattern_message="The ISBN must be a 10-digit string or a 9-digit string followed by 'X'!",
        label="ISBN",
    )
    title = Property("NonEmptyString", min=2, max=50, label="Title")
    year = Property("Integer", min=1459, max=next_year, label="Year")
    category = Property(BookCategoryEL, optional=True, label="Category")
    publisher = Property(Publisher, optional=True, label="Publisher")
    authors = Property(Author, max_card=UNBOUNDED, optional=True, label="Authors")
