from __future__ import annotations

import json

import pytest

from private_marbles.entities import MarbleInput
from private_marbles.errors import DecodeError, MalformedInput, StoreError
from private_marbles.queries import QueryExecutor, format_results, owner_query
from private_marbles.repository import GENERAL_COLLECTION, MarbleRepository
from private_marbles.store.base import KV
from private_marbles.store.memory import InMemoryStateStore


@pytest.fixture
def store() -> InMemoryStateStore:
    store = InMemoryStateStore()
    repo = MarbleRepository(store)
    for name, color, size, owner in [
        ("m1", "blue", 5, "alice"),
        ("m2", "red", 10, "bob"),
        ("m3", "blue", 20, "alice"),
    ]:
        repo.create(
            MarbleInput(name=name, color=color, size=size, owner=owner, price=100)
        )
    return store


def test_format_results_embeds_records_verbatim() -> None:
    raw = b'{"docType": "marble",  "name": "m1"}'

    result = format_results([KV("m1", raw), KV("\x00idx\x00a\x00", b"\x00")])

    assert result == (
        b'[{"Key":"m1","Record":{"docType": "marble",  "name": "m1"}},'
        b'{"Key":"\\u0000idx\\u0000a\\u0000","Record":null}]'
    )
    assert json.loads(result)[1] == {"Key": "\x00idx\x00a\x00", "Record": None}


def test_format_results_rejects_non_json_values() -> None:
    with pytest.raises(DecodeError, match="is not JSON"):
        format_results([KV("m1", b"garbage")])


@pytest.mark.parametrize("value", [b'{"size": NaN}', b"Infinity", b'[-Infinity]'])
def test_format_results_rejects_non_finite_constants(value: bytes) -> None:
    with pytest.raises(DecodeError, match="is not a JSON value"):
        format_results([KV("m1", value)])


def test_range_query_returns_records_in_key_order(store: InMemoryStateStore) -> None:
    result = json.loads(QueryExecutor(store).range_query("m1", "m3"))

    assert [item["Key"] for item in result] == ["m1", "m2"]
    assert result[0]["Record"] == {
        "docType": "marble",
        "name": "m1",
        "color": "blue",
        "size": 5,
        "owner": "alice",
    }


def test_range_query_over_empty_span(store: InMemoryStateStore) -> None:
    assert QueryExecutor(store).range_query("x", "y") == b"[]"
    assert QueryExecutor(InMemoryStateStore()).range_query("", "") == b"[]"


def test_unbounded_range_skips_index_entries(store: InMemoryStateStore) -> None:
    result = json.loads(QueryExecutor(store).range_query("", ""))

    assert [item["Key"] for item in result] == ["m1", "m2", "m3"]
    assert all(item["Record"]["docType"] == "marble" for item in result)


def test_range_query_over_color_index(store: InMemoryStateStore) -> None:
    repo = MarbleRepository(store)
    start, end = repo.index_bounds("blue")

    result = json.loads(QueryExecutor(store).range_query(start, end))

    assert result == [
        {"Key": repo.index_key("blue", "m1"), "Record": None},
        {"Key": repo.index_key("blue", "m3"), "Record": None},
    ]


def test_owner_query_is_lower_cased_json() -> None:
    assert owner_query("Bob") == '{"selector":{"docType":"marble","owner":"bob"}}'
    assert json.loads(owner_query('x"}, "$or": [{')) == {
        "selector": {"docType": "marble", "owner": 'x"}, "$or": [{'}
    }


def test_query_by_owner(store: InMemoryStateStore) -> None:
    executor = QueryExecutor(store)

    alice = json.loads(executor.query_by_owner("ALICE"))
    assert [item["Key"] for item in alice] == ["m1", "m3"]
    assert all(item["Record"]["owner"] == "alice" for item in alice)

    assert executor.query_by_owner("carol") == b"[]"


def test_predicate_query_with_operators_and_sort(store: InMemoryStateStore) -> None:
    query = json.dumps(
        {
            "selector": {"docType": "marble", "size": {"$gte": 10}},
            "sort": [{"size": "desc"}],
        }
    )

    result = json.loads(QueryExecutor(store).predicate_query(query))

    assert [item["Key"] for item in result] == ["m3", "m2"]


def test_malformed_predicate_is_malformed_input(store: InMemoryStateStore) -> None:
    with pytest.raises(MalformedInput, match="query must contain a 'selector' object"):
        QueryExecutor(store).predicate_query('{"fields": ["name"]}')


def test_store_failure_during_query_is_a_store_error() -> None:
    class _BrokenQueries(InMemoryStateStore):
        def get_private_data_query_result(self, collection, query):
            raise OSError("index unavailable")

    with pytest.raises(StoreError, match="index unavailable"):
        QueryExecutor(_BrokenQueries()).query_by_owner("bob")


def test_executor_reads_only_its_collection(store: InMemoryStateStore) -> None:
    store.put_private_data("elsewhere", "m1", b'{"docType":"marble","owner":"alice"}')

    assert QueryExecutor(store, collection="elsewhere").range_query("", "") == (
        b'[{"Key":"m1","Record":{"docType":"marble","owner":"alice"}}]'
    )
    assert QueryExecutor(store, collection=GENERAL_COLLECTION).query_by_owner("bob") != b"[]"
