"""Composite keys for index entries.

Key layout
----------
A composite key is a single string built from an index name and an ordered
list of string segments:

    \\x00 <index_name> \\x00 <segment_1> \\x00 ... <segment_n> \\x00

- The leading `\\x00` namespaces composite keys away from plain record keys
  (record names never start with `\\x00`).
- Every component is terminated by `\\x00`.
- Inside a component, `\\x01` is written as `\\x01\\x02` and `\\x00` as
  `\\x01\\x01`. Both escapes sort above the terminator, so comparing two
  encoded keys lexicographically gives the same answer as comparing their
  `(index_name, *segments)` tuples, and decoding is never ambiguous.

`U+10FFFF` is reserved as the exclusive upper bound of prefix ranges and is
rejected inside components, together with lone surrogates (which cannot be
stored as UTF-8).

The plain `\\x00` layout matches what other readers of `color~name` index keys
expect whenever no component contains `\\x00` or `\\x01`; only keys holding
those characters differ from the unescaped form.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from private_marbles.errors import EncodingError

NAMESPACE: Final[str] = "\x00"
TERMINATOR: Final[str] = "\x00"
ESCAPE: Final[str] = "\x01"
MAX_UNICODE_RUNE: Final[str] = "\U0010ffff"

_ESCAPES: Final[dict[str, str]] = {"\x00": "\x01\x01", "\x01": "\x01\x02"}
_UNESCAPES: Final[dict[str, str]] = {"\x01": "\x00", "\x02": "\x01"}


def _check_component(value: object, *, what: str) -> str:
    if not isinstance(value, str):
        raise EncodingError(f"{what} must be a string, got {type(value).__name__}")
    if MAX_UNICODE_RUNE in value:
        raise EncodingError(f"{what} must not contain U+10FFFF: {value!r}")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncodingError(f"{what} is not valid UTF-8: {value!r}") from e
    return value


def _escape(value: str) -> str:
    if ESCAPE not in value and TERMINATOR not in value:
        return value
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def encode_composite_key(index_name: str, segments: Sequence[str]) -> str:
    """Return the composite key for `index_name` and `segments`.

    Raises:
        EncodingError: If `index_name` is empty or any component is not an
            encodable string.
    """

    _check_component(index_name, what="index name")
    if not index_name:
        raise EncodingError("index name must be a non-empty string")
    if isinstance(segments, str):
        raise EncodingError("segments must be a sequence of strings, not a string")

    parts = [NAMESPACE, _escape(index_name), TERMINATOR]
    for idx, segment in enumerate(segments):
        _check_component(segment, what=f"segment[{idx}]")
        parts.append(_escape(segment))
        parts.append(TERMINATOR)
    return "".join(parts)


def decode_composite_key(key: str) -> tuple[str, list[str]]:
    """Split a composite key back into `(index_name, segments)`.

    Raises:
        EncodingError: If `key` was not produced by `encode_composite_key`.
    """

    if not isinstance(key, str) or not key.startswith(NAMESPACE):
        raise EncodingError(f"not a composite key: {key!r}")

    components: list[str] = []
    current: list[str] = []
    pos = len(NAMESPACE)
    while pos < len(key):
        ch = key[pos]
        if ch == TERMINATOR:
            components.append("".join(current))
            current = []
        elif ch == ESCAPE:
            pos += 1
            if pos >= len(key) or key[pos] not in _UNESCAPES:
                raise EncodingError(f"invalid escape at offset {pos - 1} in {key!r}")
            current.append(_UNESCAPES[key[pos]])
        else:
            current.append(ch)
        pos += 1

    if current:
        raise EncodingError(f"unterminated component in composite key: {key!r}")
    if not components or not components[0]:
        raise EncodingError(f"composite key has no index name: {key!r}")
    return components[0], components[1:]


def composite_prefix_range(index_name: str, segments: Sequence[str]) -> tuple[str, str]:
    """Return half-open `(start, end)` bounds for all keys under a prefix.

    Every key produced by `encode_composite_key(index_name, segments + more)`
    sorts in `[start, end)`, and no other key does.
    """

    start = encode_composite_key(index_name, segments)
    return start, start + MAX_UNICODE_RUNE
