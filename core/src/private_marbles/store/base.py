"""Structural interface of the collection-partitioned state store.

The repository and query executor only talk to the store through
:class:`StateStore`. A host supplies the implementation; this package ships
an in-memory one (`store.memory`) and a JSONL-file one (`store.jsonl`).

Contract:
- Keys are strings; values are non-empty bytes. Writing an empty value is an
  error (on a ledger an empty value means "delete").
- `get_private_data` returns `None` for a missing key.
- `get_private_data_by_range` yields `(key, value)` pairs with
  `start_key <= key < end_key` in ascending key order. An empty `start_key`
  means "from U+0001", so composite keys (which start with U+0000) are only
  reachable through explicit bounds. An empty `end_key` means "to the last
  key".
- `get_private_data_query_result` evaluates a store-specific query string and
  yields matches in store-defined order. Results may change between two
  evaluations of the same query (phantom reads).
- Within one transaction reads observe the transaction's own writes.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import NamedTuple, Protocol, runtime_checkable


class KV(NamedTuple):
    key: str
    value: bytes


@runtime_checkable
class StateStore(Protocol):
    """Protocol for the private-data side of a key-value state store."""

    def get_private_data(self, collection: str, key: str) -> bytes | None:
        """Return the value under `key`, or `None` if missing."""

    def put_private_data(self, collection: str, key: str, value: bytes) -> None:
        """Write `value` under `key`."""

    def del_private_data(self, collection: str, key: str) -> None:
        """Delete `key` (no-op if missing)."""

    def get_private_data_by_range(
        self, collection: str, start_key: str, end_key: str
    ) -> Iterator[KV]:
        """Yield entries in `[start_key, end_key)` in key order."""

    def get_private_data_query_result(
        self, collection: str, query: str
    ) -> Iterator[KV]:
        """Yield entries matching a store-specific query."""


def check_value(value: bytes) -> bytes:
    """Validate a value before it is written."""

    if not isinstance(value, bytes | bytearray):
        raise TypeError(f"value must be bytes, got {type(value).__name__}")
    if not value:
        raise ValueError("value must be non-empty; use delete to remove a key")
    return bytes(value)
