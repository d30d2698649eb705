"""Extract and validate structured inputs from the transient map.

Mutating operations never take their data as positional arguments (those end
up in the durable call record); the caller sends one JSON payload per
operation under a fixed transient key instead. Everything here is pure: it
only looks at the inputs it is given, and it finishes before the repository
touches the store.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Final

from pydantic import BaseModel, ValidationError

from private_marbles.entities import MarbleDeleteInput, MarbleInput, MarbleTransferInput
from private_marbles.errors import MalformedInput, MissingField

CREATE_KEY: Final[str] = "marble"
DELETE_KEY: Final[str] = "marble_delete"
TRANSFER_KEY: Final[str] = "marble_owner"

_CONSTRAINT_MESSAGES: Final[dict[str, str]] = {
    "string_too_short": "{field} field must be a non-empty string",
    "greater_than": "{field} field must be a positive integer",
}


def require_no_args(args: Sequence[str]) -> None:
    """Reject positional arguments for operations fed by the transient map."""

    if len(args) != 0:
        raise MalformedInput(
            "Incorrect number of arguments. "
            "Private marble data must be passed in transient map."
        )


def extract_payload(transient: Mapping[str, bytes], key: str) -> bytes:
    """Return the raw payload stored under `key`.

    Raises:
        MissingField: If `key` is absent or its value is empty.
    """

    if key not in transient:
        raise MissingField(f"{key} must be a key in the transient map")
    payload = transient[key]
    if not payload:
        raise MissingField(
            f"{key} value in the transient map must be a non-empty JSON string"
        )
    return payload


def _translate(error: ValidationError, payload: bytes) -> MissingField | MalformedInput:
    details: dict[str, Any] = error.errors(include_url=False)[0]
    loc = details.get("loc") or ()
    kind = details.get("type", "")
    field = str(loc[0]) if len(loc) == 1 else None

    if field is not None:
        if kind == "missing":
            return MissingField(f"{field} field is required")
        template = _CONSTRAINT_MESSAGES.get(kind)
        if template is not None:
            return MalformedInput(template.format(field=field))
        if kind == "value_error":
            return MalformedInput(str(details["ctx"]["error"]))
    return MalformedInput(
        "Failed to decode JSON of: " + payload.decode("utf-8", errors="replace")
    )


def parse_input[M: BaseModel](
    transient: Mapping[str, bytes], key: str, model: type[M]
) -> M:
    """Decode the payload under `key` into `model`.

    Raises:
        MissingField: If the key is absent/empty or a required field is missing.
        MalformedInput: If the payload is not JSON of the expected shape, or a
            field violates its constraint.
    """

    payload = extract_payload(transient, key)
    try:
        return model.model_validate_json(payload)
    except ValidationError as e:
        raise _translate(e, payload) from e


def parse_create_input(transient: Mapping[str, bytes]) -> MarbleInput:
    return parse_input(transient, CREATE_KEY, MarbleInput)


def parse_delete_input(transient: Mapping[str, bytes]) -> MarbleDeleteInput:
    return parse_input(transient, DELETE_KEY, MarbleDeleteInput)


def parse_transfer_input(transient: Mapping[str, bytes]) -> MarbleTransferInput:
    return parse_input(transient, TRANSFER_KEY, MarbleTransferInput)
