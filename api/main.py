import logging
import os
from enum import Enum
from typing import Any, Iterator, Mapping, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bookstore_mongodb.errors import DatabaseConnectionError, QueryError, describe
from bookstore_mongodb.facade import CollectionFacade, FindOptions, open_collection
from bookstore_mongodb.query import And, Eq, Gt
from bookstore_mongodb import queries
from bookstore_mongodb.schema import Direction

logger = logging.getLogger(__name__)


app = FastAPI(title="Bookstore Query API (Mongo)", version="1.0.0")


def get_books() -> Iterator[CollectionFacade]:
    # one client per request, closed even when the handler raises
    with open_collection() as books:
        yield books


@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": describe(exc)})


@app.exception_handler(DatabaseConnectionError)
async def connection_error_handler(request: Request, exc: DatabaseConnectionError):
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": describe(exc)})


# ======== Enums ========
class SortField(str, Enum):
    TITLE = "title"
    AUTHOR = "author"
    PUBLISHED_YEAR = "published_year"
    PRICE = "price"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @property
    def direction(self) -> Direction:
        return Direction.ASCENDING if self is SortOrder.ASC else Direction.DESCENDING


# ======== Schemas ========
class PriceIn(BaseModel):
    price: float = Field(ge=0)


class GenreAverageOut(BaseModel):
    genre: Optional[str]
    average_price: float


class AuthorCountOut(BaseModel):
    author: Optional[str]
    count: int


class DecadeCountOut(BaseModel):
    decade: Optional[str]
    count: int


class BookOut(BaseModel):
    # the collection is schemaless, so every field may be absent
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None
    published_year: Optional[int] = None
    price: Optional[float] = None
    in_stock: Optional[bool] = None
    pages: Optional[int] = None
    publisher: Optional[str] = None


def _book_out(doc: Mapping[str, Any]) -> Optional[BookOut]:
    try:
        return BookOut(**{k: v for k, v in doc.items() if k != "_id"})
    except ValidationError as e:
        logger.warning("Skipping book %r with unexpected field types: %s", doc.get("title"), e)
        return None


# ======== Books ========
@app.get("/books", response_model=list[BookOut], tags=["Books"])
def list_books(
    genre: Optional[str] = None,
    author: Optional[str] = None,
    published_after: Optional[int] = None,
    in_stock: Optional[bool] = None,
    sort: Optional[SortField] = None,
    order: SortOrder = SortOrder.ASC,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    books: CollectionFacade = Depends(get_books),
):
    clauses = []
    if genre is not None:
        clauses.append(Eq("genre", genre))
    if author is not None:
        clauses.append(Eq("author", author))
    if published_after is not None:
        clauses.append(Gt("published_year", published_after))
    if in_stock is not None:
        clauses.append(Eq("in_stock", in_stock))
    sort_spec = [(sort.value, order.direction)] if sort else None
    options = FindOptions.page(page_size, page, sort=sort_spec)
    rows = (_book_out(doc) for doc in books.find_many(And(*clauses), options))
    return [row for row in rows if row is not None]


@app.get("/books/{title}", response_model=BookOut, tags=["Books"])
def get_book(title: str, books: CollectionFacade = Depends(get_books)):
    doc = books.find_one(Eq("title", title))
    if not doc:
        raise HTTPException(status_code=404, detail="Book not found")
    book = _book_out(doc)
    if book is None:
        raise HTTPException(status_code=422, detail="Stored book has unexpected field types")
    return book


@app.patch("/books/{title}/price", response_model=dict, tags=["Books"])
def patch_price(title: str, payload: PriceIn, books: CollectionFacade = Depends(get_books)):
    result = queries.update_price(books, title=title, price=payload.price)
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Book not found")
    return {"matched": result.matched_count, "modified": result.modified_count}


@app.delete("/books/{title}", response_model=dict, tags=["Books"])
def delete_book(title: str, books: CollectionFacade = Depends(get_books)):
    result = queries.delete_by_title(books, title=title)
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Book not found")
    return {"deleted": result.deleted_count}


# ======== Stats ========
@app.get("/stats/genres", response_model=list[GenreAverageOut], tags=["Stats"])
def genre_averages(books: CollectionFacade = Depends(get_books)):
    return [
        GenreAverageOut(genre=row["_id"], average_price=round(row["averagePrice"], 2))
        for row in queries.average_price_by_genre(books)
    ]


@app.get("/stats/top-author", response_model=AuthorCountOut, tags=["Stats"])
def top_author(books: CollectionFacade = Depends(get_books)):
    row = queries.author_with_most_books(books)
    if not row:
        raise HTTPException(status_code=404, detail="No books in collection")
    return AuthorCountOut(author=row["_id"], count=row["count"])


@app.get("/stats/decades", response_model=list[DecadeCountOut], tags=["Stats"])
def decade_counts(books: CollectionFacade = Depends(get_books)):
    return [DecadeCountOut(decade=row["_id"], count=row["count"]) for row in queries.books_by_decade(books)]


@app.get("/health", response_model=dict, tags=["Health"])
def health(books: CollectionFacade = Depends(get_books)):
    # get_books already pinged the server
    return {"status": "ok", "collection": books.name}


def run() -> None:
    """Serve the API with uvicorn on API_HOST:API_PORT (default 127.0.0.1:8000)."""
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    uvicorn.run(app, host=os.getenv("API_HOST", "127.0.0.1"), port=int(os.getenv("API_PORT", "8000")))


if __name__ == "__main__":
    run()
