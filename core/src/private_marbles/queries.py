"""Range and selector queries over the general collection.

Result envelope
---------------
Every query returns one UTF-8 JSON array. Each element is
`{"Key":<key>,"Record":<stored JSON>}` where the stored JSON is embedded as
stored (checked to parse, never re-encoded). Index entries carry no document,
so their `Record` is `null`. Results keep the order the store produced them
in; nothing is sorted or de-duplicated here. No matches gives `[]`.

Consistency
-----------
- Range queries: the result set is fixed by its boundary keys. When such a
  result feeds a state change, the host can re-run the same range at commit
  time and invalidate the transaction if the set moved. They are the query
  form to use in update transactions.
- Selector queries: evaluated by the store engine at one point in time and
  not re-checked at commit ("phantom reads"). Use them for point-in-time
  reads; an update transaction built on one must cope with being invalidated
  by the host.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Iterator
from typing import NoReturn

from private_marbles.entities import MARBLE_DOC_TYPE
from private_marbles.errors import DecodeError, PrivateDataError, StoreError
from private_marbles.repository import GENERAL_COLLECTION, INDEX_SENTINEL
from private_marbles.store.base import KV, StateStore


def _reject_constant(name: str) -> NoReturn:
    raise ValueError(f"{name} is not a JSON value")


def _record_json(kv: KV) -> str:
    if kv.value == INDEX_SENTINEL:
        return "null"
    try:
        text = kv.value.decode("utf-8")
        json.loads(text, parse_constant=_reject_constant)
    except ValueError as e:
        raise DecodeError(f"Stored value under {kv.key!r} is not JSON: {e}") from e
    return text


def format_results(results: Iterable[KV]) -> bytes:
    """Serialize `(key, value)` pairs into the query result envelope."""

    members = [
        '{"Key":' + json.dumps(kv.key) + ',"Record":' + _record_json(kv) + "}"
        for kv in results
    ]
    return ("[" + ",".join(members) + "]").encode("utf-8")


def owner_query(owner: str) -> str:
    """Build the selector for marbles owned by `owner` (lower-cased)."""

    return json.dumps(
        {"selector": {"docType": MARBLE_DOC_TYPE, "owner": owner.lower()}},
        separators=(",", ":"),
    )


class QueryExecutor:
    def __init__(
        self,
        store: StateStore,
        *,
        logger: logging.Logger | None = None,
        collection: str = GENERAL_COLLECTION,
    ) -> None:
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self.collection = collection

    def range_query(self, start_key: str, end_key: str) -> bytes:
        """Return entries with `start_key <= key < end_key`, in key order."""

        result = self._collect(
            lambda: self.store.get_private_data_by_range(
                self.collection, start_key, end_key
            )
        )
        self.logger.debug("- getMarblesByRange queryResult:\n%s", result.decode())
        return result

    def predicate_query(self, query: str) -> bytes:
        """Return entries matching a store query string, in store order.

        Raises:
            MalformedInput: If the store rejects the query string itself.
            StoreError: If the store fails while evaluating it.
        """

        self.logger.debug("- getQueryResultForQueryString queryString:\n%s", query)
        result = self._collect(
            lambda: self.store.get_private_data_query_result(self.collection, query)
        )
        self.logger.debug(
            "- getQueryResultForQueryString queryResult:\n%s", result.decode()
        )
        return result

    def query_by_owner(self, owner: str) -> bytes:
        return self.predicate_query(owner_query(owner))

    def _collect(self, open_iterator: Callable[[], Iterator[KV]]) -> bytes:
        try:
            # Drained before formatting: a failure mid-iteration is a StoreError.
            entries = [KV(*item) for item in open_iterator()]
        except PrivateDataError:
            raise
        except Exception as e:
            raise StoreError(str(e)) from e
        return format_results(entries)
