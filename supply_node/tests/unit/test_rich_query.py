# Unit-тесты rich query: селекторы, сортировка, проекция, ошибки разбора
import json

import pytest

from supply_node.rich_query import execute, match_selector, parse_query
from supply_node.shim import QueryError

DOCS = [
    ("a", {"docType": "product", "pname": "bolt", "ptype": "10", "owner": "alice", "qty": 5, "tags": ["x", "y"]}),
    ("b", {"docType": "product", "pname": "nut", "ptype": "20", "owner": "bob", "qty": 12, "meta": {"origin": "de"}}),
    ("c", {"docType": "product", "pname": "screw", "ptype": "10", "owner": "alice", "qty": 1}),
    ("d", {"docType": "other", "owner": "alice", "active": True}),
]


def _entries():
    return [(k, json.dumps(v).encode()) for k, v in DOCS]


def _keys(query):
    return [kv.key for kv in execute(_entries(), json.dumps(query))]


def test_implicit_equality():
    assert _keys({"selector": {"owner": "alice", "docType": "product"}}) == ["a", "c"]


def test_comparison_operators():
    assert _keys({"selector": {"qty": {"$gt": 4}}}) == ["a", "b"]
    assert _keys({"selector": {"qty": {"$gte": 5, "$lt": 12}}}) == ["a"]
    assert _keys({"selector": {"qty": {"$lte": 1}}}) == ["c"]
    # Строка и число не сравниваются
    assert _keys({"selector": {"ptype": {"$gt": 5}}}) == []


def test_in_nin_ne():
    assert _keys({"selector": {"pname": {"$in": ["nut", "screw"]}}}) == ["b", "c"]
    assert _keys({"selector": {"docType": "product", "pname": {"$nin": ["nut"]}}}) == ["a", "c"]
    assert _keys({"selector": {"owner": {"$ne": "alice"}}}) == ["b"]


def test_exists_and_missing_fields():
    assert _keys({"selector": {"meta": {"$exists": True}}}) == ["b"]
    assert _keys({"selector": {"qty": {"$exists": False}}}) == ["d"]
    # Для отсутствующего поля $ne не совпадает
    assert _keys({"selector": {"qty": {"$ne": 5}}}) == ["b", "c"]


def test_nested_fields():
    assert _keys({"selector": {"meta.origin": "de"}}) == ["b"]
    assert _keys({"selector": {"meta": {"origin": "de"}}}) == ["b"]


def test_combinations():
    assert _keys({"selector": {"$or": [{"pname": "bolt"}, {"qty": {"$gt": 10}}]}}) == ["a", "b"]
    assert _keys({"selector": {"$and": [{"owner": "alice"}, {"ptype": "10"}]}}) == ["a", "c"]
    assert _keys({"selector": {"$nor": [{"owner": "alice"}]}}) == ["b"]
    assert _keys({"selector": {"docType": "product", "$not": {"owner": "alice"}}}) == ["b"]


def test_array_and_regex_operators():
    assert _keys({"selector": {"tags": {"$all": ["y", "x"]}}}) == ["a"]
    assert _keys({"selector": {"tags": {"$size": 2}}}) == ["a"]
    assert _keys({"selector": {"tags": {"$elemMatch": {"$eq": "y"}}}}) == ["a"]
    assert _keys({"selector": {"pname": {"$regex": "^s"}}}) == ["c"]


def test_boolean_is_not_number():
    assert _keys({"selector": {"active": True}}) == ["d"]
    assert _keys({"selector": {"active": 1}}) == []
    assert _keys({"selector": {"active": {"$type": "boolean"}}}) == ["d"]
    assert _keys({"selector": {"active": {"$type": "number"}}}) == []


def test_sort_skip_limit():
    query = {"selector": {"docType": "product"}, "sort": [{"qty": "desc"}]}
    assert _keys(query) == ["b", "a", "c"]
    assert _keys({**query, "skip": 1, "limit": 1}) == ["a"]
    assert _keys({"selector": {"docType": "product"}, "sort": ["ptype", "pname"]}) == ["a", "c", "b"]


def test_projection():
    results = execute(_entries(), json.dumps({"selector": {"pname": "nut"}, "fields": ["pname", "meta.origin"]}))
    assert len(results) == 1
    assert json.loads(results[0].value) == {"pname": "nut", "meta": {"origin": "de"}}


def test_value_returned_verbatim_without_projection():
    raw = b'{"owner": "alice",   "pname": "spaced"}'
    results = execute([("k", raw)], json.dumps({"selector": {"owner": "alice"}}))
    assert results[0].value == raw


def test_non_json_values_skipped():
    entries = [("idx", b"\x00"), ("list", b"[1, 2]"), ("doc", b'{"owner": "alice"}')]
    assert [kv.key for kv in execute(entries, json.dumps({"selector": {}}))] == ["doc"]


@pytest.mark.parametrize(
    "query_string",
    [
        "{bad",
        "[]",
        json.dumps({"fields": ["a"]}),
        json.dumps({"selector": []}),
        json.dumps({"selector": {"$bogus": []}}),
        json.dumps({"selector": {"a": {"$like": 1}}}),
        json.dumps({"selector": {"a": {"$in": "x"}}}),
        json.dumps({"selector": {"a": {"$regex": "("}}}),
        json.dumps({"selector": {}, "limit": -1}),
        json.dumps({"selector": {}, "sort": [{"a": "up"}]}),
    ],
)
def test_invalid_queries(query_string):
    with pytest.raises(QueryError):
        parse_query(query_string)


def test_match_selector_direct():
    assert match_selector({"a": {"b": [1, 2]}}, {"a.b": {"$size": 2}})
    assert not match_selector({"a": 1}, {"a": {"$gt": 1}})
