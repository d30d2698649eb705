"""Private marble records over a collection-partitioned key-value store.

Public entrypoints:
- `PrivateMarbles`: named operations (`create`, `readGeneral`, ...) returning
  a `Response`.
- `MarbleRepository`: create/read/transfer/delete with index maintenance.
- `QueryExecutor`: range, selector and by-owner queries.
- `InMemoryStateStore` / `JsonlStateStore`: bundled store implementations.
"""

from private_marbles.contract import PrivateMarbles, Response
from private_marbles.queries import QueryExecutor
from private_marbles.repository import MarbleRepository
from private_marbles.store import InMemoryStateStore, JsonlStateStore, StateStore

__all__ = [
    "InMemoryStateStore",
    "JsonlStateStore",
    "MarbleRepository",
    "PrivateMarbles",
    "QueryExecutor",
    "Response",
    "StateStore",
]
