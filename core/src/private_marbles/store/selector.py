"""Mango-style selector queries over JSON documents.

Query strings have the shape used by document state databases:

    {"selector": {"docType": "marble", "owner": "bob"},
     "sort": [{"size": "desc"}], "limit": 10}

Supported inside `selector`:
- implicit equality (`{"owner": "bob"}`) and dotted/nested field paths,
- `$eq`, `$ne`, `$gt`, `$gte`, `$lt`, `$lte`, `$in`, `$nin`, `$exists`,
- `$and`, `$or` (lists of sub-selectors).

Values that are not JSON objects (e.g. index sentinels) never match.
Ordering comparisons only hold between two numbers or two strings.
Malformed queries raise `MalformedInput` (also a `ValueError`).
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Final

from private_marbles.errors import MalformedInput

_MISSING: Final = object()

_CMP: Final[dict[str, Callable[[Any, Any], bool]]] = {
    "$gt": lambda a, b: a > b,
    "$gte": lambda a, b: a >= b,
    "$lt": lambda a, b: a < b,
    "$lte": lambda a, b: a <= b,
}


@dataclass(frozen=True, slots=True)
class SelectorQuery:
    selector: dict[str, Any]
    sort: list[tuple[str, bool]] = field(default_factory=list)
    limit: int | None = None
    skip: int = 0


def parse_query(query: str) -> SelectorQuery:
    """Parse a query string into a :class:`SelectorQuery`."""

    try:
        decoded = json.loads(query)
    except ValueError as e:
        raise MalformedInput(f"Invalid query JSON: {e}") from e
    if not isinstance(decoded, dict):
        raise MalformedInput("query must be a JSON object")

    selector = decoded.get("selector")
    if not isinstance(selector, dict):
        raise MalformedInput("query must contain a 'selector' object")
    _check_selector(selector)

    sort: list[tuple[str, bool]] = []
    raw_sort = decoded.get("sort", [])
    if not isinstance(raw_sort, list):
        raise MalformedInput("'sort' must be a list")
    for item in raw_sort:
        if isinstance(item, str):
            sort.append((item, False))
        elif isinstance(item, dict) and len(item) == 1:
            ((name, direction),) = item.items()
            if direction not in ("asc", "desc"):
                raise MalformedInput(f"invalid sort direction for {name!r}: {direction!r}")
            sort.append((name, direction == "desc"))
        else:
            raise MalformedInput(f"invalid sort entry: {item!r}")

    limit = decoded.get("limit")
    if limit is not None and (
        isinstance(limit, bool) or not isinstance(limit, int) or limit < 0
    ):
        raise MalformedInput(f"'limit' must be a non-negative integer: {limit!r}")
    skip = decoded.get("skip", 0)
    if isinstance(skip, bool) or not isinstance(skip, int) or skip < 0:
        raise MalformedInput(f"'skip' must be a non-negative integer: {skip!r}")

    return SelectorQuery(selector=selector, sort=sort, limit=limit, skip=skip)


def _check_selector(selector: dict[str, Any]) -> None:
    for name, condition in selector.items():
        if name in ("$and", "$or"):
            if not isinstance(condition, list) or not all(
                isinstance(sub, dict) for sub in condition
            ):
                raise MalformedInput(f"{name} expects a list of selectors")
            for sub in condition:
                _check_selector(sub)
        elif name.startswith("$"):
            raise MalformedInput(f"unsupported operator at selector top level: {name}")
        elif isinstance(condition, dict):
            _check_condition(name, condition)


def _check_condition(name: str, condition: dict[str, Any]) -> None:
    for op, operand in condition.items():
        if not op.startswith("$"):
            if isinstance(operand, dict):
                _check_condition(f"{name}.{op}", operand)
            continue
        if op in ("$in", "$nin") and not isinstance(operand, list):
            raise MalformedInput(f"{op} on {name!r} expects a list")
        if op == "$exists" and not isinstance(operand, bool):
            raise MalformedInput(f"$exists on {name!r} expects a boolean")
        if op not in _CMP and op not in ("$eq", "$ne", "$in", "$nin", "$exists"):
            raise MalformedInput(f"unsupported operator {op!r} on {name!r}")


def _lookup(doc: Any, path: str) -> Any:
    current = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _comparable(a: Any, b: Any) -> bool:
    numbers = (int, float)
    if isinstance(a, bool) or isinstance(b, bool):
        return False
    if isinstance(a, numbers) and isinstance(b, numbers):
        return True
    return isinstance(a, str) and isinstance(b, str)


def _eq(a: Any, b: Any) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def _match_condition(value: Any, condition: Any) -> bool:
    if not isinstance(condition, dict):
        return value is not _MISSING and _eq(value, condition)

    for op, operand in condition.items():
        if not op.startswith("$"):
            nested = _lookup(value, op) if value is not _MISSING else _MISSING
            if not _match_condition(nested, operand):
                return False
            continue
        if op == "$exists":
            if (value is not _MISSING) != operand:
                return False
        elif op == "$eq":
            if value is _MISSING or not _eq(value, operand):
                return False
        elif op == "$ne":
            if value is not _MISSING and _eq(value, operand):
                return False
        elif op == "$in":
            if value is _MISSING or not any(_eq(value, item) for item in operand):
                return False
        elif op == "$nin":
            if value is not _MISSING and any(_eq(value, item) for item in operand):
                return False
        else:
            if value is _MISSING or not _comparable(value, operand):
                return False
            if not _CMP[op](value, operand):
                return False
    return True


def matches(selector: dict[str, Any], doc: Any) -> bool:
    """Return true if `doc` (a decoded JSON value) satisfies `selector`."""

    if not isinstance(doc, dict):
        return False
    for name, condition in selector.items():
        if name == "$and":
            if not all(matches(sub, doc) for sub in condition):
                return False
        elif name == "$or":
            if not any(matches(sub, doc) for sub in condition):
                return False
        elif not _match_condition(_lookup(doc, name), condition):
            return False
    return True


def _sort_key(value: Any) -> tuple[int, Any]:
    if value is _MISSING or value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, int | float):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    return (4, json.dumps(value, sort_keys=True))


def decode_document(value: bytes) -> Any:
    """Decode a stored value, returning `None` when it is not JSON."""

    try:
        return json.loads(value)
    except ValueError:
        return None


def run_query[T](
    query: SelectorQuery,
    entries: Iterable[T],
    *,
    document_of: Callable[[T], Any],
) -> list[T]:
    """Filter, sort and page `entries` according to `query`.

    Entries that pass the selector keep their input order unless `sort` is
    given. Sorting is stable and applied from the last sort field to the first.
    """

    hits = [entry for entry in entries if matches(query.selector, document_of(entry))]
    for name, descending in reversed(query.sort):
        hits.sort(
            key=lambda entry: _sort_key(_lookup(document_of(entry), name)),
            reverse=descending,
        )
    hits = hits[query.skip :]
    if query.limit is not None:
        hits = hits[: query.limit]
    return hits
