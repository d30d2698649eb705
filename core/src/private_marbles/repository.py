"""CRUD over the general and private-details collections.

Design notes / invariants:
- Every `Marble` under key `name` in the general collection has exactly one
  index entry `encode(index_name, [color, name])` next to it (value
  `INDEX_SENTINEL`), and exactly one `MarblePrivateDetails` under `name` in
  the details collection. Nothing else in this package writes either
  collection, and the index is only touched through `_put_index` /
  `_delete_index`.
- Color, size and name are immutable once created; `transfer` rewrites the
  owner only, which is not part of the index key.
- Writes are issued in a fixed order (record, details, index on create;
  record, index, details on delete) inside the caller's transaction. The
  repository does not roll back earlier writes when a later one fails; the
  host aborts the transaction instead.
- The existence check in `create` is a plain read. Two concurrent creates of
  the same name both pass it; only the host's write-conflict detection keeps
  one of them from committing.
- Store failures are re-raised as `StoreError` with the cause chained.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Final

from pydantic import ValidationError

from private_marbles.entities import Marble, MarbleInput
from private_marbles.errors import (
    AlreadyExists,
    DecodeError,
    NotFound,
    PrivateDataError,
    StoreError,
)
from private_marbles.keys import composite_prefix_range, encode_composite_key
from private_marbles.store.base import StateStore

GENERAL_COLLECTION: Final[str] = "collectionMarbles"
DETAILS_COLLECTION: Final[str] = "collectionMarblePrivateDetails"
COLOR_NAME_INDEX: Final[str] = "color~name"
# An empty value would read as a delete on a ledger, so index entries hold one NUL byte.
INDEX_SENTINEL: Final[bytes] = b"\x00"


class MarbleRepository:
    """Create, read, transfer and delete marbles in one store transaction.

    Args:
        store: The transaction-scoped store for this invocation.
        logger: Request-scoped logger; defaults to this module's logger.
        general_collection: Collection holding marbles and the index.
        details_collection: Collection holding private details.
        index_name: Name of the color/name composite index.
    """

    def __init__(
        self,
        store: StateStore,
        *,
        logger: logging.Logger | None = None,
        general_collection: str = GENERAL_COLLECTION,
        details_collection: str = DETAILS_COLLECTION,
        index_name: str = COLOR_NAME_INDEX,
    ) -> None:
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self.general_collection = general_collection
        self.details_collection = details_collection
        self.index_name = index_name

    def create(self, marble_input: MarbleInput) -> Marble:
        """Persist a new marble, its private details and its index entry.

        Raises:
            AlreadyExists: If a marble with the same name is present.
            StoreError: If the store fails.
        """

        self.logger.info("- start init marble")
        name = marble_input.name

        existing = self._get(self.general_collection, name, what="marble")
        if existing is not None:
            self.logger.info("This marble already exists: %s", name)
            raise AlreadyExists(f"This marble already exists: {name}")

        marble = marble_input.to_marble()
        # Built before the first write so an unencodable key fails with nothing written.
        index_key = self.index_key(marble.color, marble.name)
        self._put(self.general_collection, name, marble.to_bytes())
        self._put(
            self.details_collection,
            name,
            marble_input.to_private_details().to_bytes(),
        )
        self._put_index(index_key)

        self.logger.info("- end init marble")
        return marble

    def read_general(self, name: str) -> bytes:
        """Return the stored marble bytes unchanged.

        Raises:
            NotFound: If no marble has this name.
            StoreError: If the store fails.
        """

        value = self._get(self.general_collection, name, what="state for")
        if value is None:
            raise NotFound(f"Marble does not exist: {name}")
        return value

    def read_detail(self, name: str) -> bytes:
        """Return the stored private-details bytes unchanged.

        Raises:
            NotFound: If no private details exist for this name.
            StoreError: If the store fails.
        """

        value = self._get(self.details_collection, name, what="private details for")
        if value is None:
            raise NotFound(f"Marble private details does not exist: {name}")
        return value

    def transfer(self, name: str, new_owner: str) -> Marble:
        """Set a new owner on an existing marble.

        Private details and the index are left untouched.

        Raises:
            NotFound: If no marble has this name.
            DecodeError: If the stored marble cannot be decoded.
            StoreError: If the store fails.
        """

        self.logger.info("- start transfer marble")
        marble = self._load_marble(name)
        transferred = marble.model_copy(update={"owner": new_owner})
        self._put(self.general_collection, transferred.name, transferred.to_bytes())
        self.logger.info("- end transferMarble (success)")
        return transferred

    def delete(self, name: str) -> Marble:
        """Delete a marble, its index entry and its private details.

        Raises:
            NotFound: If no marble has this name.
            DecodeError: If the stored marble cannot be decoded (its color is
                needed to find the index entry).
            StoreError: If the store fails.
        """

        self.logger.info("- start delete marble")
        marble = self._load_marble(name)
        self._delete(self.general_collection, name)
        self._delete_index(marble)
        self._delete(self.details_collection, name)
        return marble

    def index_key(self, color: str, name: str) -> str:
        return encode_composite_key(self.index_name, [color, name])

    def index_bounds(self, color: str, name: str | None = None) -> tuple[str, str]:
        """Return `[start, end)` range bounds over the index for one color.

        With `name`, the bounds cover only that marble's index entry.
        """

        segments = [color] if name is None else [color, name]
        return composite_prefix_range(self.index_name, segments)

    def _load_marble(self, name: str) -> Marble:
        raw = self._get(self.general_collection, name, what="marble")
        if raw is None:
            raise NotFound(f"Marble does not exist: {name}")
        try:
            return Marble.model_validate_json(raw)
        except ValidationError as e:
            raise DecodeError(
                "Failed to decode JSON of: " + raw.decode("utf-8", errors="replace")
            ) from e

    def _put_index(self, index_key: str) -> None:
        self._put(self.general_collection, index_key, INDEX_SENTINEL)

    def _delete_index(self, marble: Marble) -> None:
        self._delete(self.general_collection, self.index_key(marble.color, marble.name))

    def _get(self, collection: str, key: str, *, what: str) -> bytes | None:
        return _store_call(
            lambda: self.store.get_private_data(collection, key),
            f"Failed to get {what} {key}",
        )

    def _put(self, collection: str, key: str, value: bytes) -> None:
        _store_call(
            lambda: self.store.put_private_data(collection, key, value),
            f"Failed to put state in {collection}",
        )

    def _delete(self, collection: str, key: str) -> None:
        _store_call(
            lambda: self.store.del_private_data(collection, key),
            f"Failed to delete state in {collection}",
        )


def _store_call[T](call: Callable[[], T], failure: str) -> T:
    try:
        return call()
    except PrivateDataError:
        raise
    except Exception as e:
        raise StoreError(f"{failure}: {e}") from e
