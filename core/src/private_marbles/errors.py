"""Failure taxonomy for private marble operations.

Every failure the core reports is a :class:`PrivateDataError`. The operation
surface turns these into error responses; anything else is a bug or a host
problem and propagates unchanged.

- input stage: :class:`MissingField`, :class:`MalformedInput`
- state conflicts (detected by point reads): :class:`AlreadyExists`,
  :class:`NotFound`
- data integrity: :class:`DecodeError`, :class:`EncodingError`
- infrastructure: :class:`StoreError`
"""

from __future__ import annotations


class PrivateDataError(RuntimeError):
    """Base class for failures surfaced to the caller as a message."""

    @property
    def message(self) -> str:
        return str(self)


class MissingField(PrivateDataError):
    pass


class MalformedInput(PrivateDataError, ValueError):
    """Input that is present but unusable: a bad field or a bad query string."""


class AlreadyExists(PrivateDataError):
    pass


class NotFound(PrivateDataError):
    pass


class DecodeError(PrivateDataError):
    """Stored bytes do not have the expected shape."""


class EncodingError(PrivateDataError):
    """A composite key cannot be built from (or split back into) its parts."""


class StoreError(PrivateDataError):
    """The state store failed for reasons unrelated to the request."""
