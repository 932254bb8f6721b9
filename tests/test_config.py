"""Tests for configuration loading."""

from pathlib import Path

import pytest

from bookmark_enricher.config import Config


def write_config(tmp_path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


def test_defaults_from_empty_file(tmp_path, monkeypatch):
    monkeypatch.delenv("BOOKMARKS_DATABASE_PATH", raising=False)
    config = Config.from_yaml(write_config(tmp_path, ""))

    assert config.database_path == Path("./bookmarks.db")
    assert config.batch_size == 50
    assert config.concurrency == 5
    assert config.freshness_days == 30
    assert config.enrichment_enabled is True


def test_yaml_values_are_used(tmp_path, monkeypatch):
    monkeypatch.delenv("BOOKMARKS_DATABASE_PATH", raising=False)
    path = write_config(
        tmp_path,
        "database_path: ./data/b.db\nconcurrency: 3\nfreshness_days: 0\nrate_limit_ms: 25\n",
    )

    config = Config.from_yaml(path)

    assert config.database_path == Path("./data/b.db")
    assert config.concurrency == 3
    assert config.freshness_days == 0
    assert config.rate_limit_ms == 25


def test_environment_overrides_database_path(tmp_path, monkeypatch):
    monkeypatch.setenv("BOOKMARKS_DATABASE_PATH", str(tmp_path / "env.db"))
    config = Config.from_yaml(write_config(tmp_path, "database_path: ./yaml.db\n"))
    assert config.database_path == tmp_path / "env.db"


@pytest.mark.parametrize(
    "text",
    ["concurrency: 0\n", "concurrency: 21\n", "batch_size: 0\n", "freshness_days: -1\n"],
)
def test_invalid_values_raise(tmp_path, text):
    with pytest.raises(ValueError):
        Config.from_yaml(write_config(tmp_path, text))


def test_missing_file_raises(tmp_path):
    with pytest.raises(OSError):
        Config.from_yaml(tmp_path / "nope.yaml")
