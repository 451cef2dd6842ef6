"""Query and aggregation expressions.

Callers describe filters and pipelines with the small set of node types below
instead of hand-writing store syntax. Every node compiles to MongoDB's query
language with ``to_mongo()``; raw mappings are still accepted anywhere a node
is and are forwarded verbatim.

    >>> (Eq("in_stock", True) & Gt("published_year", 2010)).to_mongo()
    {'in_stock': True, 'published_year': {'$gt': 2010}}
"""
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .schema import Document, KeySpec, key_list


def _is_operator_doc(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(str(k).startswith("$") for k in value)


# ======== Filters ========
class Predicate:
    def to_mongo(self) -> Document:
        raise NotImplementedError

    def __and__(self, other: "FilterLike") -> "And":
        return And(self, other)

    def __or__(self, other: "FilterLike") -> "Or":
        return Or(self, other)


@dataclass(frozen=True)
class Comparison(Predicate):
    field: str
    value: Any
    operator: ClassVar[str] = "$eq"

    def condition(self) -> Document:
        return {self.operator: self.value}

    def to_mongo(self) -> Document:
        return {self.field: self.condition()}


class Eq(Comparison):
    operator = "$eq"

    def to_mongo(self) -> Document:
        # plain equality reads like the store's own shorthand
        return {self.field: self.value}


class Ne(Comparison):
    operator = "$ne"


class Gt(Comparison):
    operator = "$gt"


class Gte(Comparison):
    operator = "$gte"


class Lt(Comparison):
    operator = "$lt"


class Lte(Comparison):
    operator = "$lte"


class In(Comparison):
    operator = "$in"

    def condition(self) -> Document:
        return {self.operator: list(self.value)}


@dataclass(frozen=True)
class Exists(Predicate):
    field: str
    present: bool = True

    def condition(self) -> Document:
        return {"$exists": self.present}

    def to_mongo(self) -> Document:
        return {self.field: self.condition()}


@dataclass(frozen=True)
class Not(Predicate):
    clause: Union[Comparison, Exists]

    def to_mongo(self) -> Document:
        if not isinstance(self.clause, (Comparison, Exists)):
            raise TypeError("Not() only negates a single field predicate")
        return {self.clause.field: {"$not": self.clause.condition()}}


@dataclass(frozen=True, init=False)
class And(Predicate):
    clauses: Tuple["FilterLike", ...]

    def __init__(self, *clauses: "FilterLike"):
        object.__setattr__(self, "clauses", tuple(clauses))

    def to_mongo(self) -> Document:
        parts = [compile_filter(c) for c in self.clauses]
        merged: Dict[str, Any] = {}
        for part in parts:
            for key, cond in part.items():
                if key not in merged:
                    merged[key] = cond
                    continue
                existing = merged[key]
                if _is_operator_doc(existing) and _is_operator_doc(cond) and not set(existing) & set(cond):
                    merged[key] = {**existing, **cond}
                else:
                    return {"$and": parts}
        return merged


@dataclass(frozen=True, init=False)
class Or(Predicate):
    clauses: Tuple["FilterLike", ...]

    def __init__(self, *clauses: "FilterLike"):
        if not clauses:
            raise ValueError("Or() needs at least one clause")
        object.__setattr__(self, "clauses", tuple(clauses))

    def to_mongo(self) -> Document:
        return {"$or": [compile_filter(c) for c in self.clauses]}


FilterLike = Union[Predicate, Mapping[str, Any]]


def compile_filter(flt: Optional[FilterLike]) -> Document:
    """Return the store form of ``flt``. ``None`` matches every document."""
    if flt is None:
        return {}
    if isinstance(flt, Predicate):
        return flt.to_mongo()
    if isinstance(flt, Mapping):
        return dict(flt)
    raise TypeError(f"unsupported filter type: {type(flt).__name__}")


# ======== Aggregation expressions ========
class Expression:
    def to_mongo(self) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class FieldRef(Expression):
    field: str

    def to_mongo(self) -> str:
        return "$" + self.field.lstrip("$")


@dataclass(frozen=True)
class Literal(Expression):
    value: Any

    def to_mongo(self) -> Any:
        return {"$literal": self.value}


@dataclass(frozen=True)
class DecadeLabel(Expression):
    """``1949`` -> ``"1940s"``: the year floored to its decade, plus an ``s``."""

    field: str

    def to_mongo(self) -> Any:
        ref = FieldRef(self.field).to_mongo()
        return {
            "$concat": [
                {"$toString": {"$subtract": [ref, {"$mod": [ref, 10]}]}},
                "s",
            ]
        }


def compile_expression(value: Any) -> Any:
    """Strings name fields; numbers, booleans and ``None`` are taken as-is."""
    if isinstance(value, Expression):
        return value.to_mongo()
    if isinstance(value, str):
        return FieldRef(value).to_mongo()
    if isinstance(value, Mapping):
        return dict(value)
    return value


# ======== Accumulators ========
@dataclass(frozen=True)
class Accumulator:
    operand: Any
    operator: ClassVar[str] = ""

    def to_mongo(self) -> Document:
        return {self.operator: compile_expression(self.operand)}


class Avg(Accumulator):
    operator = "$avg"


class Sum(Accumulator):
    operator = "$sum"


class Min(Accumulator):
    operator = "$min"


class Max(Accumulator):
    operator = "$max"


@dataclass(frozen=True)
class Count(Sum):
    operand: Any = 1


# ======== Pipeline stages ========
class Stage:
    def to_mongo(self) -> Document:
        raise NotImplementedError


@dataclass(frozen=True)
class Match(Stage):
    filter: FilterLike

    def to_mongo(self) -> Document:
        return {"$match": compile_filter(self.filter)}


@dataclass(frozen=True, init=False)
class Group(Stage):
    key: Any
    accumulators: Tuple[Tuple[str, Union[Accumulator, Mapping[str, Any]]], ...]

    def __init__(self, key: Any, **accumulators: Union[Accumulator, Mapping[str, Any]]):
        object.__setattr__(self, "key", key)
        object.__setattr__(self, "accumulators", tuple(accumulators.items()))

    def to_mongo(self) -> Document:
        body: Dict[str, Any] = {"_id": compile_expression(self.key)}
        for name, acc in self.accumulators:
            body[name] = acc.to_mongo() if isinstance(acc, Accumulator) else dict(acc)
        return {"$group": body}


@dataclass(frozen=True)
class Sort(Stage):
    spec: KeySpec

    def to_mongo(self) -> Document:
        return {"$sort": dict(key_list(self.spec))}


@dataclass(frozen=True)
class Limit(Stage):
    count: int

    def to_mongo(self) -> Document:
        if self.count < 1:
            raise ValueError("$limit must be a positive integer")
        return {"$limit": self.count}


@dataclass(frozen=True)
class Skip(Stage):
    count: int

    def to_mongo(self) -> Document:
        if self.count < 0:
            raise ValueError("$skip must not be negative")
        return {"$skip": self.count}


@dataclass(frozen=True)
class Project(Stage):
    fields: Union[Mapping[str, Any], Sequence[str]]

    def to_mongo(self) -> Document:
        return {"$project": compile_projection(self.fields)}


PipelineLike = Iterable[Union[Stage, Mapping[str, Any]]]


def compile_projection(fields: Union[Mapping[str, Any], Sequence[str]]) -> Document:
    if isinstance(fields, Mapping):
        return {k: int(v) if isinstance(v, bool) else v for k, v in fields.items()}
    if isinstance(fields, str):
        raise TypeError("projection must be a mapping or a list of field names")
    return {name: 1 for name in fields}


def compile_pipeline(pipeline: PipelineLike) -> List[Document]:
    if isinstance(pipeline, (Stage, Mapping, str)):
        raise TypeError("pipeline must be a sequence of stages")
    stages = []
    for stage in pipeline:
        if isinstance(stage, Stage):
            stages.append(stage.to_mongo())
        elif isinstance(stage, Mapping):
            stages.append(dict(stage))
        else:
            raise TypeError(f"unsupported pipeline stage: {type(stage).__name__}")
    return stages
