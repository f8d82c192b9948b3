# Unit-тесты shim: ответы, составные ключи, итераторы
import pytest

from supply_node import shim
from supply_node.shim import (
    KV,
    ResultsIterator,
    ShimError,
    create_composite_key,
    is_composite_key,
    split_composite_key,
)


class TestResponse:
    def test_success(self):
        r = shim.success(b"data")
        assert r.status == 200
        assert r.ok
        assert r.payload == b"data"
        assert r.message == ""

    def test_error(self):
        r = shim.error("boom")
        assert r.status == 500
        assert not r.ok
        assert r.payload is None
        assert r.to_dict() == {"status": 500, "message": "boom", "payload": ""}


class TestCompositeKey:
    def test_format(self):
        assert create_composite_key("type~name", ["10", "bolt"]) == "\x00type~name\x0010\x00bolt\x00"

    def test_split_roundtrip(self):
        key = create_composite_key("type~name", ["10", "bolt"])
        assert split_composite_key(key) == ("type~name", ["10", "bolt"])
        assert is_composite_key(key)
        assert not is_composite_key("plain")

    def test_no_attributes(self):
        assert split_composite_key(create_composite_key("idx", [])) == ("idx", [])

    def test_rejects_forbidden_runes(self):
        with pytest.raises(ShimError):
            create_composite_key("bad\x00type", [])
        with pytest.raises(ShimError):
            create_composite_key("idx", ["a\U0010ffffb"])
        with pytest.raises(ShimError):
            create_composite_key("idx", [10])

    def test_split_rejects_plain_key(self):
        with pytest.raises(ShimError):
            split_composite_key("plain")


class TestResultsIterator:
    def test_has_next_style(self):
        it = ResultsIterator([KV("a", b"1"), KV("b", b"2")])
        keys = []
        while it.has_next():
            keys.append(it.next().key)
        assert keys == ["a", "b"]
        with pytest.raises(ShimError):
            it.next()

    def test_context_manager_closes(self):
        with ResultsIterator([KV("a", b"1"), KV("b", b"2")]) as it:
            first = next(iter(it))
        assert first.key == "a"
        assert not it.has_next()


def test_function_and_parameters(ledger):
    stub = ledger.new_stub(["initProduct", "a", "b"])
    assert stub.get_function_and_parameters() == ("initProduct", ["a", "b"])
    assert ledger.new_stub([]).get_function_and_parameters() == ("", [])
