from pathlib import Path

import pytest

from private_marbles.config import Config


def test_config_defaults_expand_to_home_paths(tmp_path: Path, monkeypatch) -> None:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))

    config = Config()

    assert config.store_path == (home / ".private-marbles" / "state.jsonl").resolve()
    assert config.general_collection == "collectionMarbles"
    assert config.details_collection == "collectionMarblePrivateDetails"
    assert config.index_name == "color~name"


def test_config_reads_pm_environment(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PM_STORE_PATH", "data/state.jsonl")
    monkeypatch.setenv("PM_GENERAL_COLLECTION", "publicMarbles")

    config = Config()

    assert config.store_path == (tmp_path / "data" / "state.jsonl").resolve()
    assert config.general_collection == "publicMarbles"


def test_config_requires_distinct_collections(tmp_path: Path) -> None:
    with pytest.raises(
        ValueError,
        match="general_collection and details_collection must be different",
    ):
        _ = Config(
            store_path=tmp_path / "state.jsonl",
            general_collection="shared",
            details_collection="shared",
        )


@pytest.mark.parametrize("field", ["general_collection", "details_collection", "index_name"])
def test_config_rejects_blank_names(tmp_path: Path, field: str) -> None:
    with pytest.raises(ValueError, match="must not be empty"):
        _ = Config(store_path=tmp_path / "state.jsonl", **{field: "  "})
