"""Application runtime configuration.

`store_path` is the JSONL file the CLI runs operations against. The collection
and index names must match whatever collection policy the host deploys; the
defaults are the names existing clients of these collections use.
"""

from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from private_marbles.repository import (
    COLOR_NAME_INDEX,
    DETAILS_COLLECTION,
    GENERAL_COLLECTION,
)


class Config(BaseSettings):
    """Settings loaded from constructor kwargs and `PM_*` environment variables.

    Invariant:
        `store_path` is normalized to an absolute path at init time.
        `general_collection` and `details_collection` are non-empty and
        distinct, since the two record kinds must not share a key space.
    """

    model_config = SettingsConfigDict(env_prefix="PM_")

    store_path: Path = Path("~/.private-marbles/state.jsonl")
    general_collection: str = GENERAL_COLLECTION
    details_collection: str = DETAILS_COLLECTION
    index_name: str = COLOR_NAME_INDEX

    @field_validator("store_path")
    @classmethod
    def _normalize_store_path(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @field_validator("general_collection", "details_collection", "index_name")
    @classmethod
    def _require_non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("collection and index names must not be empty")
        return value

    @model_validator(mode="after")
    def _validate_collections(self) -> "Config":
        if self.general_collection == self.details_collection:
            raise ValueError(
                "general_collection and details_collection must be different"
            )
        return self
