"""Narrow, typed access to a single document collection.

``CollectionFacade`` forwards each call to the driver. It compiles query
expressions to store syntax, translates driver errors, and hands results back
as plain documents or small count records. It holds no state besides the
collection handle, so a ``QueryError`` never leaves it unusable.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pymongo import MongoClient
from pymongo.collection import Collection

from .connect_db import ClientFactory, Settings, connect
from .errors import translate_errors
from .query import FilterLike, PipelineLike, compile_filter, compile_pipeline, compile_projection
from .schema import COLLECTION_NAME, Document, KeySpec, key_list

logger = logging.getLogger(__name__)


class FindOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    projection: Optional[Union[Dict[str, Any], List[str]]] = None
    # directions are checked when the query runs, see CollectionFacade.find_many
    sort: Optional[Union[Dict[str, int], List[Tuple[str, int]]]] = None
    skip: int = Field(default=0, ge=0)
    # 0 means no limit, as in the driver
    limit: int = Field(default=0, ge=0)

    @classmethod
    def page(
        cls,
        page_size: int,
        page_number: int,
        sort: Optional[KeySpec] = None,
        projection: Optional[Union[Dict[str, Any], List[str]]] = None,
    ) -> "FindOptions":
        """Options for 1-based page ``page_number`` of ``page_size`` documents."""
        if page_size < 1 or page_number < 1:
            raise ValueError("page_size and page_number must be >= 1")
        return cls(
            projection=projection,
            sort=sort,
            skip=page_size * (page_number - 1),
            limit=page_size,
        )


class UpdateOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    matched_count: int
    modified_count: int


class DeleteOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    deleted_count: int


def _drain(operation: str, cursor: Iterable[Document]) -> Iterator[Document]:
    # cursors fetch lazily, so driver errors can surface mid-iteration
    with translate_errors(operation):
        yield from cursor


class CollectionFacade:
    """Typed operations over one collection.

    Not safe for concurrent use; give each thread its own facade or
    serialize calls.
    """

    def __init__(self, collection: Collection):
        self._collection = collection

    @property
    def name(self) -> str:
        return self._collection.name

    def find_many(self, flt: Optional[FilterLike] = None, options: Optional[FindOptions] = None) -> Iterator[Document]:
        """Matching documents as a one-shot iterator.

        Order is whatever the store returns unless ``options.sort`` is set;
        ties under a sort come back in no guaranteed order.
        """
        options = options or FindOptions()
        with translate_errors("find"):
            query = compile_filter(flt)
            projection = compile_projection(options.projection) if options.projection is not None else None
            sort = key_list(options.sort) if options.sort else None
            cursor = self._collection.find(query, projection)
            if sort:
                cursor = cursor.sort(sort)
            if options.skip:
                cursor = cursor.skip(options.skip)
            if options.limit:
                cursor = cursor.limit(options.limit)
        logger.debug("find on %s: filter=%s options=%s", self.name, query, options)
        return _drain("find", cursor)

    def find_one(self, flt: Optional[FilterLike] = None, projection: Optional[Union[Dict[str, Any], List[str]]] = None) -> Optional[Document]:
        with translate_errors("find_one"):
            query = compile_filter(flt)
            return self._collection.find_one(
                query, compile_projection(projection) if projection is not None else None
            )

    def count(self, flt: Optional[FilterLike] = None) -> int:
        with translate_errors("count"):
            return self._collection.count_documents(compile_filter(flt))

    def insert_many(self, documents: Iterable[Mapping[str, Any]]) -> List[Any]:
        """Insert copies of ``documents``; returns the new ids in order."""
        docs = [dict(d) for d in documents]
        if not docs:
            return []
        with translate_errors("insert_many"):
            result = self._collection.insert_many(docs)
        logger.debug("inserted %d document(s) into %s", len(result.inserted_ids), self.name)
        return list(result.inserted_ids)

    def update_one(self, flt: FilterLike, update: Mapping[str, Any]) -> UpdateOutcome:
        """Apply ``update`` to the first match. No match gives zero counts."""
        with translate_errors("update_one"):
            result = self._collection.update_one(compile_filter(flt), dict(update))
        logger.debug("update_one on %s: matched=%s modified=%s", self.name, result.matched_count, result.modified_count)
        return UpdateOutcome(matched_count=result.matched_count, modified_count=result.modified_count)

    def delete_one(self, flt: FilterLike) -> DeleteOutcome:
        with translate_errors("delete_one"):
            result = self._collection.delete_one(compile_filter(flt))
        logger.debug("delete_one on %s: deleted=%s", self.name, result.deleted_count)
        return DeleteOutcome(deleted_count=result.deleted_count)

    def aggregate(self, pipeline: PipelineLike) -> Iterator[Document]:
        with translate_errors("aggregate"):
            stages = compile_pipeline(pipeline)
            cursor = self._collection.aggregate(stages)
        logger.debug("aggregate on %s: %d stage(s)", self.name, len(stages))
        return _drain("aggregate", cursor)

    def create_index(self, spec: KeySpec, **kwargs: Any) -> str:
        """Request an index; asking again for the same keys returns the same name."""
        with translate_errors("create_index"):
            name = self._collection.create_index(key_list(spec), **kwargs)
        logger.debug("index %s ready on %s", name, self.name)
        return name

    def explain(self, flt: Optional[FilterLike] = None) -> Document:
        """Execution statistics of a find with ``flt``; shape is defined by the store."""
        with translate_errors("explain"):
            reply = self._collection.database.command(
                "explain",
                {"find": self.name, "filter": compile_filter(flt)},
                verbosity="executionStats",
            )
        return reply.get("executionStats", reply)

    def drop(self) -> None:
        with translate_errors("drop"):
            self._collection.drop()
        logger.info("Dropped collection %s", self.name)


@contextmanager
def open_collection(
    settings: Optional[Settings] = None,
    name: str = COLLECTION_NAME,
    client_factory: ClientFactory = MongoClient,
) -> Iterator[CollectionFacade]:
    """``connect()`` and wrap collection ``name``; the client closes on exit."""
    with connect(settings, client_factory) as db:
        yield CollectionFacade(db[name])
