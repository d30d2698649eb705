"""Pydantic entities for stored marbles and transient operation inputs.

Stored documents
----------------
Both stored shapes are flat JSON objects with fixed, case-sensitive field
names. `docType` discriminates record kinds that share a collection:

- :class:`Marble` (general collection, key = `name`):
  `{"docType":"marble","name":...,"color":...,"size":...,"owner":...}`
- :class:`MarblePrivateDetails` (restricted collection, key = `name`):
  `{"docType":"marblePrivateDetails","name":...,"price":...}`

`to_bytes()` emits compact JSON in declaration order, which is the exact byte
layout readers of the collections see.

Transient inputs
----------------
Each mutating operation reads one JSON payload from the transient map. The
input models are strict (no string-to-int coercion) and ignore unknown keys.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from private_marbles.keys import MAX_UNICODE_RUNE, NAMESPACE

MARBLE_DOC_TYPE = "marble"
PRIVATE_DETAILS_DOC_TYPE = "marblePrivateDetails"


def _check_key_segment(value: str, *, field: str) -> str:
    if MAX_UNICODE_RUNE in value:
        raise ValueError(f"{field} field must not contain U+10FFFF")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValueError(f"{field} field must be valid UTF-8") from e
    return value


def _check_record_name(value: str) -> str:
    if value.startswith(NAMESPACE):
        raise ValueError("name field must not start with a NUL character")
    return _check_key_segment(value, field="name")


class _StoredDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, strict=True)

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


class Marble(_StoredDocument):
    object_type: Literal["marble"] = Field(default=MARBLE_DOC_TYPE, alias="docType")
    name: str = Field(min_length=1)
    color: str = Field(min_length=1)
    size: int = Field(gt=0)
    owner: str = Field(min_length=1)


class MarblePrivateDetails(_StoredDocument):
    object_type: Literal["marblePrivateDetails"] = Field(
        default=PRIVATE_DETAILS_DOC_TYPE, alias="docType"
    )
    name: str = Field(min_length=1)
    price: int = Field(gt=0)


class _TransientInput(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")


class MarbleInput(_TransientInput):
    """Payload of the `marble` transient key (create)."""

    name: str = Field(min_length=1)
    color: str = Field(min_length=1)
    size: int = Field(gt=0)
    owner: str = Field(min_length=1)
    price: int = Field(gt=0)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        return _check_record_name(value)

    @field_validator("color")
    @classmethod
    def _validate_color(cls, value: str) -> str:
        return _check_key_segment(value, field="color")

    def to_marble(self) -> Marble:
        return Marble(name=self.name, color=self.color, size=self.size, owner=self.owner)

    def to_private_details(self) -> MarblePrivateDetails:
        return MarblePrivateDetails(name=self.name, price=self.price)


class MarbleDeleteInput(_TransientInput):
    """Payload of the `marble_delete` transient key."""

    name: str = Field(min_length=1)


class MarbleTransferInput(_TransientInput):
    """Payload of the `marble_owner` transient key."""

    name: str = Field(min_length=1)
    owner: str = Field(min_length=1)
