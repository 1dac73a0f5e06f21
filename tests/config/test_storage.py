from __future__ import annotations

import os
from pathlib import Path  # noqa: TC003

import pytest

from miniorm.config import storage
from miniorm.config.errors import ConfigurationError, MissingConfigurationError


def test_data_dir_prefers_explicit_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    custom = tmp_path / "custom-data"
    monkeypatch.setenv("MINIORM_DATA_DIR", str(custom))

    assert storage.data_dir() == custom.resolve()


@pytest.mark.skipif(os.name == "nt", reason="uses LOCALAPPDATA on Windows")
def test_data_dir_defaults_below_xdg_data_home(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("MINIORM_DATA_DIR", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    assert storage.data_dir() == (tmp_path / "miniorm").resolve()


def test_get_database_config_uses_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite:///override.db")

    config = storage.get_database_config()

    assert config.uri == "sqlite:///override.db"
    assert config.url.database == "override.db"


def test_get_database_config_falls_back_to_sqlite_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("DATABASE_URI", raising=False)
    monkeypatch.setenv("MINIORM_DATA_DIR", str(tmp_path / "data-dir"))

    config = storage.get_database_config()

    expected_path = (tmp_path / "data-dir" / storage.DEFAULT_DB_FILENAME).resolve()
    assert config.url.drivername == "sqlite+pysqlite"
    assert config.url.database == str(expected_path)
    assert expected_path.parent.is_dir()


def test_sqlite_file_accepts_custom_filename(tmp_path: Path) -> None:
    config = storage.DatabaseConfig.sqlite_file(tmp_path / "nested", "scratch.db")

    assert config.url.database == str(tmp_path / "nested" / "scratch.db")
    assert (tmp_path / "nested").is_dir()


def test_blank_database_uri_is_missing_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "  ")

    with pytest.raises(MissingConfigurationError, match="DATABASE_URI"):
        storage.get_database_config()


def test_malformed_database_uri_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Invalid database URI"):
        storage.DatabaseConfig.from_uri("not a database uri")
