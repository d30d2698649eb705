"""Named operations exposed to the host.

Each operation takes the positional `args` of the call plus the transient map
and returns a :class:`Response`. Mutating operations (create, transfer, delete)
read their data only from the transient map and validate it completely before
the repository touches the store.

Every :class:`~private_marbles.errors.PrivateDataError` becomes an error
response carrying its message. Anything else propagates to the host, which
aborts the transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Final

from private_marbles.config import Config
from private_marbles.errors import MalformedInput, PrivateDataError
from private_marbles.queries import QueryExecutor
from private_marbles.repository import MarbleRepository
from private_marbles.store.base import StateStore
from private_marbles.validation import (
    parse_create_input,
    parse_delete_input,
    parse_transfer_input,
    require_no_args,
)

OK: Final[int] = 200
ERROR: Final[int] = 500


@dataclass(frozen=True, slots=True)
class Response:
    status: int
    payload: bytes = b""
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status < 400

    @classmethod
    def success(cls, payload: bytes = b"") -> Response:
        return cls(status=OK, payload=payload)

    @classmethod
    def error(cls, message: str) -> Response:
        return cls(status=ERROR, message=message)


type Handler = Callable[[Sequence[str], Mapping[str, bytes]], bytes]


def _expect_exactly(args: Sequence[str], count: int, what: str) -> None:
    if len(args) != count:
        raise MalformedInput(f"Incorrect number of arguments. Expecting {what}")


def _expect_at_least(args: Sequence[str], count: int) -> None:
    if len(args) < count:
        raise MalformedInput(f"Incorrect number of arguments. Expecting {count}")


class PrivateMarbles:
    """Operation surface over one store transaction.

    Args:
        store: Store (usually a transaction) for this invocation.
        config: Collection/index names; defaults to `Config()`.
        logger: Request-scoped logger passed down to the repository and the
            query executor.
    """

    def __init__(
        self,
        store: StateStore,
        *,
        config: Config | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        config = config or Config()
        self.logger = logger or logging.getLogger(__name__)
        self.repository = MarbleRepository(
            store,
            logger=self.logger,
            general_collection=config.general_collection,
            details_collection=config.details_collection,
            index_name=config.index_name,
        )
        self.queries = QueryExecutor(
            store, logger=self.logger, collection=config.general_collection
        )
        self._handlers: dict[str, Handler] = {
            "create": self.create,
            "readGeneral": self.read_general,
            "readDetail": self.read_detail,
            "transfer": self.transfer,
            "delete": self.delete,
            "queryByOwner": self.query_by_owner,
            "queryByRange": self.query_by_range,
            "queryByPredicate": self.query_by_predicate,
        }
        # Names used by existing clients.
        self._handlers |= {
            "initMarble": self.create,
            "readMarble": self.read_general,
            "readMarblePrivateDetails": self.read_detail,
            "transferMarble": self.transfer,
            "queryMarblesByOwner": self.query_by_owner,
            "getMarblesByRange": self.query_by_range,
            "queryMarbles": self.query_by_predicate,
        }

    @property
    def operations(self) -> list[str]:
        return sorted(self._handlers)

    def invoke(
        self,
        function: str,
        args: Sequence[str] = (),
        transient: Mapping[str, bytes] | None = None,
    ) -> Response:
        self.logger.info("invoke is running %s", function)
        handler = self._handlers.get(function)
        if handler is None:
            self.logger.info("invoke did not find func: %s", function)
            return Response.error("Received unknown function invocation")

        try:
            payload = handler(args, transient or {})
        except PrivateDataError as e:
            self.logger.info("%s failed: %s", function, e.message)
            return Response.error(e.message)
        return Response.success(payload)

    def create(self, args: Sequence[str], transient: Mapping[str, bytes]) -> bytes:
        require_no_args(args)
        self.repository.create(parse_create_input(transient))
        return b""

    def read_general(self, args: Sequence[str], transient: Mapping[str, bytes]) -> bytes:
        _expect_exactly(args, 1, "name of the marble to query")
        return self.repository.read_general(args[0])

    def read_detail(self, args: Sequence[str], transient: Mapping[str, bytes]) -> bytes:
        _expect_exactly(args, 1, "name of the marble to query")
        return self.repository.read_detail(args[0])

    def transfer(self, args: Sequence[str], transient: Mapping[str, bytes]) -> bytes:
        require_no_args(args)
        transfer_input = parse_transfer_input(transient)
        self.repository.transfer(transfer_input.name, transfer_input.owner)
        return b""

    def delete(self, args: Sequence[str], transient: Mapping[str, bytes]) -> bytes:
        require_no_args(args)
        self.repository.delete(parse_delete_input(transient).name)
        return b""

    def query_by_owner(self, args: Sequence[str], transient: Mapping[str, bytes]) -> bytes:
        _expect_at_least(args, 1)
        return self.queries.query_by_owner(args[0])

    def query_by_range(self, args: Sequence[str], transient: Mapping[str, bytes]) -> bytes:
        _expect_at_least(args, 2)
        return self.queries.range_query(args[0], args[1])

    def query_by_predicate(
        self, args: Sequence[str], transient: Mapping[str, bytes]
    ) -> bytes:
        _expect_at_least(args, 1)
        return self.queries.predicate_query(args[0])
