"""Tests for kvspine.core.settings."""

import pytest
from pydantic import ValidationError

from kvspine.core.settings import TIMEOUT_TABLE, KVSettings, with_timeout_table


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in ("BACKEND", "PATH", "EXTNAME", "TABLES", "URL", "DATABASE", "PROJECT", "LOGGING"):
        monkeypatch.delenv(f"KVSPINE_{name}", raising=False)
    # Keep a stray .env in the working directory out of these tests.
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self):
        settings = KVSettings()
        assert settings.backend == "file"
        assert settings.path == "database"
        assert settings.extname == ".json"
        assert settings.tables == ["main"]
        assert settings.logging is True

    def test_declared_tables_appends_timeout(self):
        settings = KVSettings(tables=["main", "users"])
        assert settings.declared_tables() == ["main", "users", "timeout"]


class TestValidation:
    def test_extname_gets_a_dot(self):
        assert KVSettings(extname="sql").extname == ".sql"

    def test_duplicate_tables_collapse(self):
        assert KVSettings(tables=["main", "users", "main"]).tables == ["main", "users"]

    def test_empty_tables_rejected(self):
        with pytest.raises(ValidationError):
            KVSettings(tables=[])

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            KVSettings(backend="redis")


class TestEnvironment:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("KVSPINE_BACKEND", "sql")
        monkeypatch.setenv("KVSPINE_URL", "sqlite:///kv.sqlite")
        monkeypatch.setenv("KVSPINE_TABLES", '["main","users"]')

        settings = KVSettings()
        assert settings.backend == "sql"
        assert settings.url == "sqlite:///kv.sqlite"
        assert settings.tables == ["main", "users"]

    def test_arguments_override_env(self, monkeypatch):
        monkeypatch.setenv("KVSPINE_PATH", "/from/env")
        assert KVSettings(path="./explicit").path == "./explicit"


class TestWithTimeoutTable:
    def test_appends_once(self):
        assert with_timeout_table(["main"]) == ["main", TIMEOUT_TABLE]
        assert with_timeout_table(["timeout", "main"]) == ["timeout", "main"]

    def test_empty_means_main(self):
        assert with_timeout_table(None) == ["main", "timeout"]
