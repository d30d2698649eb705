from __future__ import annotations

import logging

import pytest

from private_marbles.entities import MarbleInput
from private_marbles.errors import (
    AlreadyExists,
    DecodeError,
    EncodingError,
    NotFound,
    StoreError,
)
from private_marbles.repository import (
    DETAILS_COLLECTION,
    GENERAL_COLLECTION,
    INDEX_SENTINEL,
    MarbleRepository,
)
from private_marbles.store.memory import InMemoryStateStore

M1_GENERAL = b'{"docType":"marble","name":"m1","color":"blue","size":5,"owner":"alice"}'
M1_DETAILS = b'{"docType":"marblePrivateDetails","name":"m1","price":100}'
M1_INDEX_KEY = "\x00color~name\x00blue\x00m1\x00"


def _input(name: str = "m1", color: str = "blue", owner: str = "alice") -> MarbleInput:
    return MarbleInput(name=name, color=color, size=5, owner=owner, price=100)


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def repo(store: InMemoryStateStore) -> MarbleRepository:
    return MarbleRepository(store)


def test_create_writes_record_details_and_index(
    store: InMemoryStateStore, repo: MarbleRepository
) -> None:
    repo.create(_input())

    assert repo.read_general("m1") == M1_GENERAL
    assert repo.read_detail("m1") == M1_DETAILS
    assert store.collection(GENERAL_COLLECTION) == {
        "m1": M1_GENERAL,
        M1_INDEX_KEY: INDEX_SENTINEL,
    }
    assert store.collection(DETAILS_COLLECTION) == {"m1": M1_DETAILS}


def test_create_never_overwrites(
    store: InMemoryStateStore, repo: MarbleRepository
) -> None:
    repo.create(_input())
    before = (store.collection(GENERAL_COLLECTION), store.collection(DETAILS_COLLECTION))

    with pytest.raises(AlreadyExists, match="This marble already exists: m1"):
        repo.create(_input(color="red", owner="bob"))

    after = (store.collection(GENERAL_COLLECTION), store.collection(DETAILS_COLLECTION))
    assert after == before


def test_create_checks_the_index_key_before_writing(
    store: InMemoryStateStore, repo: MarbleRepository
) -> None:
    unchecked = MarbleInput.model_construct(
        name="m1", color="blue\U0010ffff", size=5, owner="alice", price=100
    )

    with pytest.raises(EncodingError, match=r"must not contain U\+10FFFF"):
        repo.create(unchecked)

    assert store.collection(GENERAL_COLLECTION) == {}
    assert store.collection(DETAILS_COLLECTION) == {}


def test_reads_report_missing_keys(repo: MarbleRepository) -> None:
    with pytest.raises(NotFound, match="Marble does not exist: nope"):
        repo.read_general("nope")
    with pytest.raises(NotFound, match="Marble private details does not exist: nope"):
        repo.read_detail("nope")


def test_read_returns_stored_bytes_unmodified(store: InMemoryStateStore) -> None:
    raw = b'{ "docType": "marble", "name": "odd",  "extra": true }'
    store.put_private_data(GENERAL_COLLECTION, "odd", raw)

    assert MarbleRepository(store).read_general("odd") == raw


def test_transfer_changes_only_the_owner(
    store: InMemoryStateStore, repo: MarbleRepository
) -> None:
    repo.create(_input())

    transferred = repo.transfer("m1", "bob")

    assert transferred.owner == "bob"
    assert repo.read_general("m1") == (
        b'{"docType":"marble","name":"m1","color":"blue","size":5,"owner":"bob"}'
    )
    assert repo.read_detail("m1") == M1_DETAILS
    assert store.get_private_data(GENERAL_COLLECTION, M1_INDEX_KEY) == INDEX_SENTINEL


def test_transfer_missing_marble(repo: MarbleRepository) -> None:
    with pytest.raises(NotFound, match="Marble does not exist: m1"):
        repo.transfer("m1", "bob")


def test_transfer_and_delete_reject_undecodable_records(
    store: InMemoryStateStore, repo: MarbleRepository
) -> None:
    store.put_private_data(GENERAL_COLLECTION, "bad", b"not json")
    store.put_private_data(GENERAL_COLLECTION, "partial", b'{"name":"partial"}')

    with pytest.raises(DecodeError, match="Failed to decode JSON of: not json"):
        repo.transfer("bad", "bob")
    with pytest.raises(DecodeError):
        repo.delete("partial")

    assert store.get_private_data(GENERAL_COLLECTION, "bad") == b"not json"
    assert store.get_private_data(GENERAL_COLLECTION, "partial") is not None


def test_delete_removes_all_three_entries(
    store: InMemoryStateStore, repo: MarbleRepository
) -> None:
    repo.create(_input())
    repo.create(_input(name="m2"))

    deleted = repo.delete("m1")

    assert deleted.color == "blue"
    with pytest.raises(NotFound):
        repo.read_general("m1")
    with pytest.raises(NotFound):
        repo.read_detail("m1")
    assert M1_INDEX_KEY not in store.collection(GENERAL_COLLECTION)
    assert set(store.collection(GENERAL_COLLECTION)) == {
        "m2",
        "\x00color~name\x00blue\x00m2\x00",
    }
    assert set(store.collection(DETAILS_COLLECTION)) == {"m2"}


def test_delete_missing_marble(repo: MarbleRepository) -> None:
    with pytest.raises(NotFound, match="Marble does not exist: m1"):
        repo.delete("m1")


def test_index_bounds_select_one_color_or_one_marble(
    store: InMemoryStateStore, repo: MarbleRepository
) -> None:
    repo.create(_input("m1", "blue"))
    repo.create(_input("m2", "blue"))
    repo.create(_input("m3", "red"))

    start, end = repo.index_bounds("blue")
    blue = [kv.key for kv in store.get_private_data_by_range(GENERAL_COLLECTION, start, end)]
    assert blue == [repo.index_key("blue", "m1"), repo.index_key("blue", "m2")]

    start, end = repo.index_bounds("blue", "m1")
    single = list(store.get_private_data_by_range(GENERAL_COLLECTION, start, end))
    assert [kv.key for kv in single] == [M1_INDEX_KEY]


def test_custom_collection_names(store: InMemoryStateStore) -> None:
    repo = MarbleRepository(
        store,
        general_collection="publicMarbles",
        details_collection="secretPrices",
        index_name="by-color",
    )
    repo.create(_input())

    assert set(store.collection("publicMarbles")) == {"m1", "\x00by-color\x00blue\x00m1\x00"}
    assert set(store.collection("secretPrices")) == {"m1"}
    assert store.collection(GENERAL_COLLECTION) == {}


class _BrokenStore(InMemoryStateStore):
    def get_private_data(self, collection: str, key: str) -> bytes | None:
        raise OSError("disk on fire")


def test_store_failures_become_store_errors() -> None:
    repo = MarbleRepository(_BrokenStore())

    with pytest.raises(StoreError, match="Failed to get state for m1: disk on fire") as exc:
        repo.read_general("m1")
    assert isinstance(exc.value.__cause__, OSError)

    with pytest.raises(StoreError, match="Failed to get marble m1"):
        repo.create(_input())


def test_operations_log_through_injected_logger(
    repo: MarbleRepository, caplog: pytest.LogCaptureFixture
) -> None:
    logger = logging.getLogger("test.request")
    repo = MarbleRepository(repo.store, logger=logger)

    with caplog.at_level(logging.INFO, logger="test.request"):
        repo.create(_input())
        repo.transfer("m1", "bob")

    messages = [r.getMessage() for r in caplog.records if r.name == "test.request"]
    assert messages == [
        "- start init marble",
        "- end init marble",
        "- start transfer marble",
        "- end transferMarble (success)",
    ]
