"""Tests for environment loading and settings."""

import os
from pathlib import Path

import pytest

from comaint.env import load_env, load_settings


class TestLoadSettings:
    """Test COMAINT_* settings."""

    def test_defaults(self):
        settings = load_settings({})

        assert settings.db_path == Path("data/comaint.db")
        assert settings.log_level == "INFO"
        assert settings.log_dir == Path("logs")
        assert settings.max_workers == 1
        assert settings.resolve_timeout is None
        assert settings.db_max_retries == 3

    def test_values(self):
        settings = load_settings({
            "COMAINT_DB_PATH": "/srv/comaint.db",
            "COMAINT_LOG_LEVEL": "debug",
            "COMAINT_MAX_WORKERS": "8",
            "COMAINT_RESOLVE_TIMEOUT": "2.5",
            "COMAINT_DB_MAX_RETRIES": "0",
        })

        assert settings.db_path == Path("/srv/comaint.db")
        assert settings.log_level == "DEBUG"
        assert settings.max_workers == 8
        assert settings.resolve_timeout == 2.5
        assert settings.db_max_retries == 0

    def test_malformed_integer_names_variable(self):
        with pytest.raises(ValueError, match="COMAINT_MAX_WORKERS"):
            load_settings({"COMAINT_MAX_WORKERS": "many"})

    def test_integer_below_minimum(self):
        with pytest.raises(ValueError, match="at least 1"):
            load_settings({"COMAINT_MAX_WORKERS": "0"})

    def test_bad_timeout(self):
        with pytest.raises(ValueError, match="COMAINT_RESOLVE_TIMEOUT"):
            load_settings({"COMAINT_RESOLVE_TIMEOUT": "soon"})
        with pytest.raises(ValueError, match="positive"):
            load_settings({"COMAINT_RESOLVE_TIMEOUT": "-1"})

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("COMAINT_MAX_WORKERS", "3")

        assert load_settings().max_workers == 3


class TestLoadEnv:
    """Test .env loading."""

    def test_loads_dotenv_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("COMAINT_DOTENV_PROBE", raising=False)
        (tmp_path / ".env").write_text("# settings\nCOMAINT_DOTENV_PROBE=from-file\n")

        try:
            load_env()
            assert os.environ["COMAINT_DOTENV_PROBE"] == "from-file"
        finally:
            os.environ.pop("COMAINT_DOTENV_PROBE", None)

    def test_environment_wins(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("COMAINT_DOTENV_PROBE", "from-env")
        (tmp_path / ".env").write_text("COMAINT_DOTENV_PROBE=from-file\n")

        load_env()

        assert os.environ["COMAINT_DOTENV_PROBE"] == "from-env"

    def test_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        load_env()
