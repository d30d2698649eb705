"""JSONL-file-backed :class:`StateStore`.

Layout: one JSON object per non-empty line,
`{"collection": ..., "key": ..., "value": <base64 bytes>}`, sorted by
`(collection, key)`.

Design notes / invariants:
- Parsing is strict: invalid JSON, a malformed entry, or a duplicate
  `(collection, key)` raises `ValueError` with path/line context.
- A missing file is an empty store.
- Every committed change rewrites the whole file through a temp file in the
  same directory followed by an atomic rename, so readers never see a
  half-written snapshot.
- Cache invalidation is keyed off the file's mtime/size; call `refresh()`
  after editing the file by other means within the same mtime tick.
- Writes made inside `transaction()` are persisted once, at commit.
"""

from __future__ import annotations

import tempfile
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from private_marbles.store.base import KV
from private_marbles.store.memory import InMemoryStateStore


@dataclass(slots=True)
class _CacheKey:
    mtime_ns: int
    size: int


class _EntryOnDisk(BaseModel):
    """On-disk schema for one line of the store file."""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    collection: str = Field(min_length=1)
    key: str
    value: bytes = Field(min_length=1)


class JsonlStateStore(InMemoryStateStore):
    """Persist collections to a JSONL file.

    Args:
        path: Path to the JSONL file (created on first write).
        encoding: File encoding used for reading/writing.

    Safe for a single process. Concurrent writers from several processes can
    lose updates; run one writer at a time.
    """

    path: Path
    encoding: str

    _cache_key: _CacheKey | None

    def __init__(self, path: str | Path, *, encoding: str = "utf-8") -> None:
        super().__init__()
        self.path = Path(path)
        self.encoding = encoding
        self._cache_key = None

    def refresh(self) -> None:
        """Force a reload from disk (even if the file did not change)."""

        self._cache_key = None
        self._load_if_needed(force=True)

    def collection(self, name: str) -> dict[str, bytes]:
        self._load_if_needed()
        return super().collection(name)

    def get_private_data(self, collection: str, key: str) -> bytes | None:
        self._load_if_needed()
        return super().get_private_data(collection, key)

    def put_private_data(self, collection: str, key: str, value: bytes) -> None:
        self.apply({(collection, key): value})

    def del_private_data(self, collection: str, key: str) -> None:
        self.apply({(collection, key): None})

    def get_private_data_by_range(
        self, collection: str, start_key: str, end_key: str
    ) -> Iterator[KV]:
        self._load_if_needed()
        return super().get_private_data_by_range(collection, start_key, end_key)

    def get_private_data_query_result(
        self, collection: str, query: str
    ) -> Iterator[KV]:
        self._load_if_needed()
        return super().get_private_data_query_result(collection, query)

    def apply(self, writes: Mapping[tuple[str, str], bytes | None]) -> None:
        self._load_if_needed()
        for (collection, key), value in writes.items():
            if value is None:
                InMemoryStateStore.del_private_data(self, collection, key)
            else:
                InMemoryStateStore.put_private_data(self, collection, key, value)
        self._persist_snapshot()
        self._cache_key = self._stat_key()

    def _load_if_needed(self, *, force: bool = False) -> None:
        key = self._stat_key()
        if key is None:
            # Missing file counts as an empty store.
            self._cache_key = None
            self._collections = {}
            return

        if not force and self._cache_key is not None and key == self._cache_key:
            return

        self._collections = _read_jsonl_entries(self.path, encoding=self.encoding)
        self._cache_key = key

    def _stat_key(self) -> _CacheKey | None:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return _CacheKey(mtime_ns=stat.st_mtime_ns, size=stat.st_size)

    def _persist_snapshot(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding=self.encoding,
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tf:
            tmp_path = Path(tf.name)
            for collection in sorted(self._collections):
                entries = self._collections[collection]
                for key in sorted(entries):
                    entry = _EntryOnDisk(
                        collection=collection, key=key, value=entries[key]
                    )
                    tf.write(entry.model_dump_json() + "\n")

        tmp_path.replace(self.path)


def _read_jsonl_entries(path: Path, *, encoding: str) -> dict[str, dict[str, bytes]]:
    collections: dict[str, dict[str, bytes]] = {}

    with path.open("r", encoding=encoding) as f:
        for line_no, raw_line in enumerate(f, start=1):
            line = raw_line.strip()
            if not line:
                continue
            try:
                entry = _EntryOnDisk.model_validate_json(line)
            except ValidationError as e:
                raise ValueError(f"Invalid store entry at {path}:{line_no}: {e}") from e

            entries = collections.setdefault(entry.collection, {})
            if entry.key in entries:
                raise ValueError(
                    f"Duplicate key at {path}:{line_no}: "
                    f"{entry.collection}/{entry.key!r}"
                )
            entries[entry.key] = entry.value

    return collections
