"""In-memory :class:`StateStore` with host-style transactions.

Design notes / invariants:
- Each collection is an independent `dict[str, bytes]`; range iteration and
  selector queries walk keys in ascending order (code point order, which is
  also UTF-8 byte order).
- Direct calls on :class:`InMemoryStateStore` apply immediately.
- :meth:`InMemoryStateStore.transaction` returns a :class:`Transaction` that
  stages writes, lets its own reads see them, and applies them all on
  `commit()`. Used as a context manager it commits on normal exit and discards
  everything when the block raises, which is how a ledger host treats a
  failed invocation.
- Iterators returned by range/query calls are materialized lists, so writing
  while consuming one is safe.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Final

from private_marbles.store.base import KV, StateStore, check_value
from private_marbles.store.selector import decode_document, parse_query, run_query


# Lower bound for an empty start key: composite keys (`\x00...`) sort below it.
_FIRST_SIMPLE_KEY: Final[str] = "\x01"


def _in_range(key: str, start_key: str, end_key: str) -> bool:
    if key < (start_key or _FIRST_SIMPLE_KEY):
        return False
    return not (end_key and key >= end_key)


def _select(entries: list[KV], query: str) -> list[KV]:
    parsed = parse_query(query)
    documents = {kv.key: decode_document(kv.value) for kv in entries}
    return run_query(parsed, entries, document_of=lambda kv: documents[kv.key])


class InMemoryStateStore(StateStore):
    """Dictionary-backed store for tests, demos and embedding."""

    _collections: dict[str, dict[str, bytes]]

    def __init__(
        self, initial: Mapping[str, Mapping[str, bytes]] | None = None
    ) -> None:
        self._collections = {}
        for collection, entries in (initial or {}).items():
            for key, value in entries.items():
                self.put_private_data(collection, key, value)

    def collection(self, name: str) -> dict[str, bytes]:
        """Return a copy of one collection's contents."""

        return dict(self._collections.get(name, {}))

    def get_private_data(self, collection: str, key: str) -> bytes | None:
        return self._collections.get(collection, {}).get(key)

    def put_private_data(self, collection: str, key: str, value: bytes) -> None:
        self._collections.setdefault(collection, {})[key] = check_value(value)

    def del_private_data(self, collection: str, key: str) -> None:
        self._collections.get(collection, {}).pop(key, None)

    def get_private_data_by_range(
        self, collection: str, start_key: str, end_key: str
    ) -> Iterator[KV]:
        entries = self._collections.get(collection, {})
        return iter(
            [
                KV(key, entries[key])
                for key in sorted(entries)
                if _in_range(key, start_key, end_key)
            ]
        )

    def get_private_data_query_result(
        self, collection: str, query: str
    ) -> Iterator[KV]:
        return iter(_select(list(self.get_private_data_by_range(collection, "", "")), query))

    def apply(self, writes: Mapping[tuple[str, str], bytes | None]) -> None:
        """Apply a batch of staged writes (`None` deletes)."""

        for (collection, key), value in writes.items():
            if value is None:
                self.del_private_data(collection, key)
            else:
                self.put_private_data(collection, key, value)

    def begin(self) -> Transaction:
        return Transaction(self)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run a block in a transaction: commit on success, discard on error."""

        txn = self.begin()
        try:
            yield txn
        except BaseException:
            txn.discard()
            raise
        txn.commit()


class Transaction(StateStore):
    """Staged view over an :class:`InMemoryStateStore`.

    `None` in the write set marks a staged delete.
    """

    def __init__(self, store: InMemoryStateStore) -> None:
        self._store = store
        self._writes: dict[tuple[str, str], bytes | None] = {}
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._writes)

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("transaction is already closed")

    def get_private_data(self, collection: str, key: str) -> bytes | None:
        self._check_open()
        if (collection, key) in self._writes:
            return self._writes[(collection, key)]
        return self._store.get_private_data(collection, key)

    def put_private_data(self, collection: str, key: str, value: bytes) -> None:
        self._check_open()
        self._writes[(collection, key)] = check_value(value)

    def del_private_data(self, collection: str, key: str) -> None:
        self._check_open()
        self._writes[(collection, key)] = None

    def get_private_data_by_range(
        self, collection: str, start_key: str, end_key: str
    ) -> Iterator[KV]:
        self._check_open()
        merged = {
            kv.key: kv.value
            for kv in self._store.get_private_data_by_range(collection, start_key, end_key)
        }
        for (staged_collection, key), value in self._writes.items():
            if staged_collection != collection or not _in_range(key, start_key, end_key):
                continue
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        return iter([KV(key, merged[key]) for key in sorted(merged)])

    def get_private_data_query_result(
        self, collection: str, query: str
    ) -> Iterator[KV]:
        return iter(_select(list(self.get_private_data_by_range(collection, "", "")), query))

    def commit(self) -> None:
        self._check_open()
        self._store.apply(self._writes)
        self._writes.clear()
        self._closed = True

    def discard(self) -> None:
        self._writes.clear()
        self._closed = True
