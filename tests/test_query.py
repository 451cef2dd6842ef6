import pytest

from bookstore_mongodb.query import (
    And,
    Avg,
    Count,
    DecadeLabel,
    Eq,
    Exists,
    FieldRef,
    Gt,
    Gte,
    Group,
    In,
    Limit,
    Literal,
    Lt,
    Match,
    Max,
    Ne,
    Not,
    Or,
    Project,
    Skip,
    Sort,
    Sum,
    compile_filter,
    compile_pipeline,
)
from bookstore_mongodb.schema import Direction


def test_equality_uses_shorthand():
    assert Eq("genre", "Fiction").to_mongo() == {"genre": "Fiction"}


def test_comparison_operators():
    assert Gt("published_year", 2000).to_mongo() == {"published_year": {"$gt": 2000}}
    assert Gte("price", 5).to_mongo() == {"price": {"$gte": 5}}
    assert Lt("price", 5).to_mongo() == {"price": {"$lt": 5}}
    assert Ne("genre", "Fiction").to_mongo() == {"genre": {"$ne": "Fiction"}}
    assert In("genre", ("Fiction", "Fantasy")).to_mongo() == {"genre": {"$in": ["Fiction", "Fantasy"]}}
    assert Exists("pages").to_mongo() == {"pages": {"$exists": True}}


def test_predicates_compare_by_type():
    assert Eq("price", 1) == Eq("price", 1)
    assert Eq("price", 1) != Gt("price", 1)


def test_and_on_distinct_fields_is_implicit_conjunction():
    flt = Eq("in_stock", True) & Gt("published_year", 2010)
    assert flt.to_mongo() == {"in_stock": True, "published_year": {"$gt": 2010}}


def test_and_merges_disjoint_operators_on_one_field():
    flt = And(Gt("published_year", 1900), Lt("published_year", 2000))
    assert flt.to_mongo() == {"published_year": {"$gt": 1900, "$lt": 2000}}


def test_and_falls_back_to_explicit_and_on_conflict():
    flt = And(Gt("price", 5), Gt("price", 10))
    assert flt.to_mongo() == {"$and": [{"price": {"$gt": 5}}, {"price": {"$gt": 10}}]}


def test_empty_and_matches_everything():
    assert And().to_mongo() == {}


def test_and_accepts_raw_mappings():
    flt = And({"author": "George Orwell"}, Gt("published_year", 1940))
    assert flt.to_mongo() == {"author": "George Orwell", "published_year": {"$gt": 1940}}


def test_or_and_not():
    flt = Or(Eq("genre", "Fiction"), Not(Gt("price", 10)))
    assert flt.to_mongo() == {
        "$or": [{"genre": "Fiction"}, {"price": {"$not": {"$gt": 10}}}]
    }
    with pytest.raises(ValueError):
        Or()


def test_pipe_operator_builds_or():
    assert (Eq("a", 1) | Eq("b", 2)).to_mongo() == {"$or": [{"a": 1}, {"b": 2}]}


def test_compile_filter_passes_raw_documents_through():
    raw = {"published_year": {"$gt": 2000}}
    assert compile_filter(raw) == raw
    assert compile_filter(None) == {}
    with pytest.raises(TypeError):
        compile_filter("genre = Fiction")


def test_decade_label_expression():
    assert DecadeLabel("published_year").to_mongo() == {
        "$concat": [
            {"$toString": {"$subtract": ["$published_year", {"$mod": ["$published_year", 10]}]}},
            "s",
        ]
    }


def test_group_with_accumulators():
    stage = Group("genre", averagePrice=Avg("price"), count=Count(), most=Max(FieldRef("price")))
    assert stage.to_mongo() == {
        "$group": {
            "_id": "$genre",
            "averagePrice": {"$avg": "$price"},
            "count": {"$sum": 1},
            "most": {"$max": "$price"},
        }
    }


def test_group_key_none_groups_everything():
    assert Group(None, total=Sum("price")).to_mongo() == {"$group": {"_id": None, "total": {"$sum": "$price"}}}


def test_literal_expression():
    assert Literal("$price").to_mongo() == {"$literal": "$price"}


def test_compile_pipeline_in_order():
    pipeline = [
        Match(Eq("in_stock", True)),
        Group("author", count=Count()),
        Sort({"count": Direction.DESCENDING}),
        Skip(0),
        Limit(1),
        {"$project": {"_id": 1}},
    ]
    assert compile_pipeline(pipeline) == [
        {"$match": {"in_stock": True}},
        {"$group": {"_id": "$author", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
        {"$skip": 0},
        {"$limit": 1},
        {"$project": {"_id": 1}},
    ]


def test_project_from_field_list():
    assert Project(["title", "price"]).to_mongo() == {"$project": {"title": 1, "price": 1}}


def test_invalid_stages_rejected():
    with pytest.raises(ValueError):
        Limit(0).to_mongo()
    with pytest.raises(ValueError):
        Sort({"price": 2}).to_mongo()
    with pytest.raises(TypeError):
        compile_pipeline(Limit(1))
    with pytest.raises(TypeError):
        compile_pipeline([42])
