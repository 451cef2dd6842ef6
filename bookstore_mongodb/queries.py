# queries.py - CRUD, advanced queries, aggregation and indexing against the books collection
import logging
import os
from pprint import pformat
from typing import Callable, List, Optional, Tuple

from .connect_db import Settings
from .errors import BookstoreError, describe
from .facade import CollectionFacade, DeleteOutcome, FindOptions, UpdateOutcome, open_collection
from .query import Avg, Count, DecadeLabel, Eq, Gt, Group, Limit, Sort
from .schema import Direction, Document, KeySpec

logger = logging.getLogger(__name__)


# ======== Basic CRUD ========
def books_in_genre(books: CollectionFacade, genre: str = "Fiction") -> List[Document]:
    return list(books.find_many(Eq("genre", genre)))


def books_published_after(books: CollectionFacade, year: int = 2000) -> List[Document]:
    return list(books.find_many(Gt("published_year", year)))


def books_by_author(books: CollectionFacade, author: str = "George Orwell") -> List[Document]:
    return list(books.find_many(Eq("author", author)))


def update_price(books: CollectionFacade, title: str = "1984", price: float = 12.99) -> UpdateOutcome:
    return books.update_one(Eq("title", title), {"$set": {"price": price}})


def delete_by_title(books: CollectionFacade, title: str = "Moby Dick") -> DeleteOutcome:
    return books.delete_one(Eq("title", title))


# ======== Advanced queries ========
def in_stock_published_after(books: CollectionFacade, year: int = 2010) -> List[Document]:
    return list(books.find_many(Eq("in_stock", True) & Gt("published_year", year)))


def title_author_price(books: CollectionFacade) -> List[Document]:
    options = FindOptions(projection={"title": 1, "author": 1, "price": 1, "_id": 0})
    return list(books.find_many(None, options))


def sorted_by_price(books: CollectionFacade, direction: Direction = Direction.ASCENDING) -> List[Document]:
    return list(books.find_many(None, FindOptions(sort=[("price", direction)])))


def page_of_books(
    books: CollectionFacade, page_size: int = 5, page_number: int = 2, sort: Optional[KeySpec] = None
) -> List[Document]:
    return list(books.find_many(None, FindOptions.page(page_size, page_number, sort=sort)))


# ======== Aggregation ========
def average_price_by_genre(books: CollectionFacade) -> List[Document]:
    return list(books.aggregate([
        Group("genre", averagePrice=Avg("price")),
        Sort({"averagePrice": Direction.DESCENDING}),
    ]))


def author_with_most_books(books: CollectionFacade) -> Optional[Document]:
    top = list(books.aggregate([
        Group("author", count=Count()),
        Sort({"count": Direction.DESCENDING}),
        Limit(1),
    ]))
    return top[0] if top else None


def books_by_decade(books: CollectionFacade) -> List[Document]:
    return list(books.aggregate([
        Group(DecadeLabel("published_year"), count=Count()),
        Sort({"_id": Direction.ASCENDING}),
    ]))


# ======== Indexing ========
def create_indexes(books: CollectionFacade) -> Tuple[str, str]:
    title_index = books.create_index([("title", Direction.ASCENDING)])
    compound_index = books.create_index([
        ("author", Direction.ASCENDING),
        ("published_year", Direction.DESCENDING),
    ])
    return title_index, compound_index


def explain_author_query(books: CollectionFacade, author: str = "George Orwell", year: int = 1940) -> Document:
    return books.explain(Eq("author", author) & Gt("published_year", year))


def run_queries(books: CollectionFacade, echo: Callable[[str], None] = print) -> None:
    """Run every query in order, writing results through ``echo``.

    The first failure propagates and the remaining steps are skipped.
    """
    echo('\nBooks in genre "Fiction":')
    for book in books_in_genre(books):
        echo(f"- {book['title']}")

    echo("\nBooks published after 2000:")
    for book in books_published_after(books):
        echo(f"- {book['title']} ({book['published_year']})")

    echo("\nBooks by George Orwell:")
    for book in books_by_author(books):
        echo(f"- {book['title']}")

    updated = update_price(books)
    echo(f'\nUpdated price for "1984": {updated.modified_count} document(s) modified')

    deleted = delete_by_title(books)
    echo(f'\nDeleted "Moby Dick": {deleted.deleted_count} document(s) deleted')

    echo("\nBooks in stock and published after 2010:")
    for book in in_stock_published_after(books):
        echo(f"- {book['title']} ({book['published_year']})")

    echo("\nBooks with projection (title, author, price):")
    echo(pformat(title_author_price(books), sort_dicts=False))

    echo("\nBooks sorted by price (ascending):")
    for book in sorted_by_price(books, Direction.ASCENDING):
        echo(f"- {book['title']}: ${book['price']}")

    echo("\nBooks sorted by price (descending):")
    for book in sorted_by_price(books, Direction.DESCENDING):
        echo(f"- {book['title']}: ${book['price']}")

    echo("\nBooks page 2 (5 per page):")
    for book in page_of_books(books):
        echo(f"- {book['title']}")

    echo("\nAverage price of books by genre:")
    for genre in average_price_by_genre(books):
        echo(f"- {genre['_id']}: ${genre['averagePrice']:.2f}")

    echo("\nAuthor with the most books:")
    top = author_with_most_books(books)
    if top:
        echo(f"- {top['_id']}: {top['count']} books")

    echo("\nBooks grouped by publication decade:")
    for decade in books_by_decade(books):
        echo(f"- {decade['_id']}: {decade['count']}")

    title_index, compound_index = create_indexes(books)
    echo(f"\nCreated index on title: {title_index}")
    echo(f"Created compound index on author and published_year: {compound_index}")

    echo("\nExplain plan for query using indexes:")
    echo(pformat(explain_author_query(books), sort_dicts=False))


def main() -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    try:
        settings = Settings.from_env()
        with open_collection(settings) as books:
            print("Connected to database:", settings.db_name)
            run_queries(books)
    except BookstoreError as e:
        logger.error("Error running queries: %s", describe(e))
        print(f"❌ Error running queries: {describe(e)}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
