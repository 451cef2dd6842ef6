import mongomock
import pytest

from bookstore_mongodb.facade import CollectionFacade
from bookstore_mongodb.insert_books import SAMPLE_BOOKS


def make_book(title, genre="Fiction", price=10.0, **extra):
    doc = {
        "title": title,
        "author": extra.pop("author", "Anon"),
        "genre": genre,
        "published_year": extra.pop("published_year", 2000),
        "price": price,
        "in_stock": extra.pop("in_stock", True),
    }
    doc.update(extra)
    return doc


@pytest.fixture
def collection():
    return mongomock.MongoClient()["plp_bookstore"]["books"]


@pytest.fixture
def books(collection) -> CollectionFacade:
    return CollectionFacade(collection)


@pytest.fixture
def seeded_books(books) -> CollectionFacade:
    books.insert_many(SAMPLE_BOOKS)
    return books
