# schema.py
from enum import IntEnum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

# A stored value: scalars, arrays and nested mappings of the same. Driver-native
# scalars (ObjectId, datetime) also pass through untouched.
DocumentValue = Union[str, int, float, bool, None, List["DocumentValue"], Dict[str, "DocumentValue"], Any]
Document = Dict[str, DocumentValue]

COLLECTION_NAME = "books"


class Direction(IntEnum):
    ASCENDING = 1
    DESCENDING = -1


# ordered (field, direction) pairs, or a mapping in insertion order
KeySpec = Union[Sequence[Tuple[str, Union[Direction, int]]], Mapping[str, Union[Direction, int]]]


def key_list(spec: KeySpec) -> List[Tuple[str, int]]:
    """Normalize a sort/index spec to the driver's list-of-pairs form."""
    items = spec.items() if isinstance(spec, Mapping) else spec
    pairs = []
    for field, direction in items:
        if int(direction) not in (1, -1):
            raise ValueError(f"direction for {field!r} must be 1 or -1, got {direction!r}")
        pairs.append((field, int(direction)))
    return pairs


class Book(BaseModel):
    """Typed view of a document in the books collection."""

    model_config = ConfigDict(extra="ignore")

    title: str
    author: str
    genre: str
    published_year: int
    price: float = Field(ge=0)
    in_stock: bool = True
    pages: Optional[int] = Field(default=None, ge=0)
    publisher: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Book":
        return cls(**{k: v for k, v in doc.items() if k != "_id"})

    def to_document(self) -> Document:
        return self.model_dump(exclude_none=True)
