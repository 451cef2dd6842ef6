from unittest.mock import MagicMock

import pytest
from pymongo.errors import AutoReconnect, OperationFailure, ServerSelectionTimeoutError

from bookstore_mongodb.errors import DatabaseConnectionError, QueryError
from bookstore_mongodb.facade import CollectionFacade, FindOptions
from bookstore_mongodb.query import Avg, Eq, Group, Sort
from bookstore_mongodb.schema import Direction

from conftest import make_book


def titles(docs):
    return [d["title"] for d in docs]


# ======== find_many ========
def test_no_match_returns_empty_sequence(seeded_books):
    assert list(seeded_books.find_many(Eq("genre", "Cookbooks"))) == []


def test_single_fiction_title(books):
    books.insert_many([
        make_book("Dune", genre="Fiction"),
        make_book("Cosmos", genre="Science"),
        make_book("Sapiens", genre="History"),
    ])
    assert titles(books.find_many(Eq("genre", "Fiction"))) == ["Dune"]


def test_inserted_document_found_until_deleted(books):
    books.insert_many([make_book("Dune")])
    assert titles(books.find_many({"title": "Dune"})) == ["Dune"]
    books.delete_one({"title": "Dune"})
    assert list(books.find_many({"title": "Dune"})) == []


def test_find_many_is_one_shot(seeded_books):
    results = seeded_books.find_many()
    assert len(list(results)) == 12
    assert list(results) == []


def test_projection_limits_fields(seeded_books):
    options = FindOptions(projection={"title": 1, "price": 1, "_id": 0})
    docs = list(seeded_books.find_many(Eq("title", "1984"), options))
    assert docs == [{"title": "1984", "price": 10.99}]


def test_sort_descending(seeded_books):
    prices = [d["price"] for d in seeded_books.find_many(None, FindOptions(sort={"price": Direction.DESCENDING}))]
    assert prices == sorted(prices, reverse=True)


def test_second_page_of_five(books):
    books.insert_many([make_book(f"Book {i:02d}", published_year=2000 + i) for i in range(12)])
    options = FindOptions.page(5, 2, sort=[("published_year", Direction.ASCENDING)])
    assert titles(books.find_many(None, options)) == [f"Book {i:02d}" for i in range(5, 10)]


def test_last_partial_page(books):
    books.insert_many([make_book(f"Book {i:02d}", published_year=2000 + i) for i in range(12)])
    options = FindOptions.page(5, 3, sort=[("published_year", Direction.ASCENDING)])
    assert titles(books.find_many(None, options)) == ["Book 10", "Book 11"]


def test_page_options():
    options = FindOptions.page(5, 2)
    assert (options.skip, options.limit) == (5, 5)
    with pytest.raises(ValueError):
        FindOptions.page(5, 0)
    with pytest.raises(ValueError):
        FindOptions(skip=-1)


# ======== writes ========
def test_update_one_twice_is_idempotent(seeded_books):
    first = seeded_books.update_one(Eq("title", "1984"), {"$set": {"price": 12.99}})
    assert (first.matched_count, first.modified_count) == (1, 1)
    after_first = seeded_books.find_one(Eq("title", "1984"))

    second = seeded_books.update_one(Eq("title", "1984"), {"$set": {"price": 12.99}})
    assert second.matched_count == 1
    assert seeded_books.find_one(Eq("title", "1984")) == after_first


def test_update_without_match_reports_zero(seeded_books):
    outcome = seeded_books.update_one(Eq("title", "Missing"), {"$set": {"price": 1.0}})
    assert (outcome.matched_count, outcome.modified_count) == (0, 0)


def test_delete_one_twice(seeded_books):
    assert seeded_books.delete_one(Eq("title", "Moby Dick")).deleted_count == 1
    assert seeded_books.delete_one(Eq("title", "Moby Dick")).deleted_count == 0
    assert seeded_books.count() == 11


def test_insert_many_copies_input(books):
    doc = make_book("Dune")
    ids = books.insert_many([doc])
    assert len(ids) == 1
    assert "_id" not in doc
    assert books.insert_many([]) == []


# ======== aggregate / indexes ========
def test_average_price_by_genre(books):
    books.insert_many([
        make_book("A", genre="Fiction", price=10.00),
        make_book("B", genre="Fiction", price=20.00),
        make_book("C", genre="Poetry", price=4.00),
    ])
    rows = list(books.aggregate([
        Group("genre", averagePrice=Avg("price")),
        Sort({"averagePrice": Direction.DESCENDING}),
    ]))
    assert rows[0]["_id"] == "Fiction"
    assert rows[0]["averagePrice"] == pytest.approx(15.00)
    assert [r["_id"] for r in rows] == ["Fiction", "Poetry"]


def test_create_index_is_idempotent(books, collection):
    first = books.create_index([("title", Direction.ASCENDING)])
    second = books.create_index({"title": Direction.ASCENDING})
    assert first == second == "title_1"
    assert [name for name in collection.index_information() if name != "_id_"] == ["title_1"]


def test_compound_index_name(books):
    name = books.create_index([("author", Direction.ASCENDING), ("published_year", Direction.DESCENDING)])
    assert name == "author_1_published_year_-1"


def test_explain_returns_execution_stats():
    collection = MagicMock()
    collection.name = "books"
    collection.database.command.return_value = {
        "queryPlanner": {},
        "executionStats": {"nReturned": 1, "totalDocsExamined": 1},
    }
    books = CollectionFacade(collection)

    stats = books.explain(Eq("author", "George Orwell") & {"published_year": {"$gt": 1940}})

    assert stats == {"nReturned": 1, "totalDocsExamined": 1}
    collection.database.command.assert_called_once_with(
        "explain",
        {"find": "books", "filter": {"author": "George Orwell", "published_year": {"$gt": 1940}}},
        verbosity="executionStats",
    )


# ======== errors ========
def test_store_rejection_becomes_query_error():
    collection = MagicMock()
    collection.find_one.side_effect = OperationFailure(
        "unknown operator", code=2, details={"errmsg": "unknown operator: $foo"}
    )
    books = CollectionFacade(collection)

    with pytest.raises(QueryError) as e:
        books.find_one({"price": {"$foo": 1}})

    assert str(e.value) == "unknown operator: $foo"
    assert e.value.code == 2
    assert isinstance(e.value.__cause__, OperationFailure)


def test_lazy_cursor_failure_becomes_query_error():
    class _FailingCursor:
        def __iter__(self):
            raise OperationFailure("bad sort", code=17144)

    collection = MagicMock()
    collection.find.return_value = _FailingCursor()
    results = CollectionFacade(collection).find_many({"genre": "Fiction"})

    with pytest.raises(QueryError):
        list(results)


def test_facade_usable_after_query_error(seeded_books):
    with pytest.raises(QueryError):
        seeded_books.update_one(Eq("title", "1984"), {"price": 1.0})
    assert titles(seeded_books.find_many(Eq("title", "1984"))) == ["1984"]


def test_malformed_pipeline_becomes_query_error(books):
    with pytest.raises(QueryError):
        books.aggregate([Sort({"price": 3})])


@pytest.mark.parametrize("exc", [ServerSelectionTimeoutError("no servers"), AutoReconnect("reset")])
def test_lost_connection_becomes_connection_error(exc):
    collection = MagicMock()
    collection.update_one.side_effect = exc
    books = CollectionFacade(collection)

    with pytest.raises(DatabaseConnectionError) as e:
        books.update_one({"title": "1984"}, {"$set": {"price": 1}})

    assert isinstance(e.value, ConnectionError)


def test_invalid_sort_direction_becomes_query_error(seeded_books):
    with pytest.raises(QueryError):
        seeded_books.find_many(None, FindOptions(sort={"price": 3}))
    assert len(list(seeded_books.find_many())) == 12
