"""State store collaborators.

Public entrypoints:
- `StateStore`: protocol the repository and query executor depend on.
- `InMemoryStateStore`: dictionary-backed store with `transaction()`.
- `JsonlStateStore`: the same, persisted to a JSONL file.
"""

from private_marbles.store.base import KV, StateStore
from private_marbles.store.jsonl import JsonlStateStore
from private_marbles.store.memory import InMemoryStateStore, Transaction

__all__ = [
    "KV",
    "InMemoryStateStore",
    "JsonlStateStore",
    "StateStore",
    "Transaction",
]
