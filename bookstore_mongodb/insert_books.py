# insert_books.py - load the sample catalogue into the books collection
import logging
import os
from typing import Any, Iterable, Mapping

from .errors import BookstoreError, describe
from .facade import CollectionFacade, open_collection

logger = logging.getLogger(__name__)

SAMPLE_BOOKS = [
    {
        "title": "To Kill a Mockingbird",
        "author": "Harper Lee",
        "genre": "Fiction",
        "published_year": 1960,
        "price": 12.99,
        "in_stock": True,
        "pages": 336,
        "publisher": "J. B. Lippincott & Co.",
    },
    {
        "title": "1984",
        "author": "George Orwell",
        "genre": "Dystopian",
        "published_year": 1949,
        "price": 10.99,
        "in_stock": True,
        "pages": 328,
        "publisher": "Secker & Warburg",
    },
    {
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "genre": "Fiction",
        "published_year": 1925,
        "price": 9.99,
        "in_stock": True,
        "pages": 180,
        "publisher": "Charles Scribner's Sons",
    },
    {
        "title": "Brave New World",
        "author": "Aldous Huxley",
        "genre": "Dystopian",
        "published_year": 1932,
        "price": 11.50,
        "in_stock": False,
        "pages": 311,
        "publisher": "Chatto & Windus",
    },
    {
        "title": "The Hobbit",
        "author": "J.R.R. Tolkien",
        "genre": "Fantasy",
        "published_year": 1937,
        "price": 14.99,
        "in_stock": True,
        "pages": 310,
        "publisher": "George Allen & Unwin",
    },
    {
        "title": "The Catcher in the Rye",
        "author": "J.D. Salinger",
        "genre": "Fiction",
        "published_year": 1951,
        "price": 8.99,
        "in_stock": True,
        "pages": 224,
        "publisher": "Little, Brown and Company",
    },
    {
        "title": "Pride and Prejudice",
        "author": "Jane Austen",
        "genre": "Romance",
        "published_year": 1813,
        "price": 7.99,
        "in_stock": True,
        "pages": 432,
        "publisher": "T. Egerton",
    },
    {
        "title": "The Lord of the Rings",
        "author": "J.R.R. Tolkien",
        "genre": "Fantasy",
        "published_year": 1954,
        "price": 19.99,
        "in_stock": True,
        "pages": 1178,
        "publisher": "Allen & Unwin",
    },
    {
        "title": "Animal Farm",
        "author": "George Orwell",
        "genre": "Political Satire",
        "published_year": 1945,
        "price": 8.50,
        "in_stock": False,
        "pages": 112,
        "publisher": "Secker & Warburg",
    },
    {
        "title": "The Alchemist",
        "author": "Paulo Coelho",
        "genre": "Fiction",
        "published_year": 1988,
        "price": 10.99,
        "in_stock": True,
        "pages": 197,
        "publisher": "HarperOne",
    },
    {
        "title": "Moby Dick",
        "author": "Herman Melville",
        "genre": "Adventure",
        "published_year": 1851,
        "price": 12.50,
        "in_stock": False,
        "pages": 635,
        "publisher": "Harper & Brothers",
    },
    {
        "title": "Wuthering Heights",
        "author": "Emily Brontë",
        "genre": "Gothic Fiction",
        "published_year": 1847,
        "price": 9.99,
        "in_stock": True,
        "pages": 342,
        "publisher": "Thomas Cautley Newby",
    },
]


def insert_books(
    books: CollectionFacade,
    documents: Iterable[Mapping[str, Any]] = SAMPLE_BOOKS,
    drop_existing: bool = True,
) -> int:
    """Insert ``documents`` and return how many were written.

    With ``drop_existing`` the collection is emptied first so reruns do not
    pile up duplicates. The input mappings are never modified.
    """
    if drop_existing:
        books.drop()
    inserted = books.insert_many(documents)
    logger.info("Inserted %d book(s) into %s", len(inserted), books.name)
    return len(inserted)


def main() -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    try:
        with open_collection() as books:
            count = insert_books(books)
            print(f"✅ Inserted {count} books into '{books.name}'.")
            for doc in books.find_many():
                print(f"- {doc['title']} by {doc['author']} ({doc['published_year']})")
    except BookstoreError as e:
        print(f"❌ Failed to insert books: {describe(e)}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
