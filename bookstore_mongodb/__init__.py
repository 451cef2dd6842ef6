"""bookstore_mongodb package initializer

Query-and-aggregation access to the ``books`` collection of the
``plp_bookstore`` MongoDB database. ``CollectionFacade`` is the entry point;
``open_collection()`` builds one from environment settings.
"""

from .errors import BookstoreError, DatabaseConnectionError, QueryError
from .facade import CollectionFacade, DeleteOutcome, FindOptions, UpdateOutcome, open_collection
from .schema import Book, Direction, Document

__all__ = [
    "Book",
    "BookstoreError",
    "CollectionFacade",
    "DatabaseConnectionError",
    "DeleteOutcome",
    "Direction",
    "Document",
    "FindOptions",
    "QueryError",
    "UpdateOutcome",
    "open_collection",
]
