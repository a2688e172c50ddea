"""
Unit tests for run configuration and the YAML settings loader
"""

import pytest
from pydantic import ValidationError

from mandate_sync.config import (
    DatabaseSettings,
    ExitPolicy,
    ReconciliationConfig,
    default_actor,
    load_settings_file,
)


@pytest.mark.unit
class TestReconciliationConfig:
    """Tests for ReconciliationConfig"""

    def test_defaults(self):
        config = ReconciliationConfig()
        assert config.batch_size == 200
        assert config.delimiter == "|"
        assert config.exit_policy == ExitPolicy.SOFT
        assert config.actor

    def test_exit_policy_from_string(self):
        assert ReconciliationConfig(exit_policy="strict").exit_policy is ExitPolicy.STRICT

    @pytest.mark.parametrize(
        "values",
        [
            {"batch_size": 0},
            {"delimiter": "||"},
            {"delimiter": " "},
            {"delimiter": "\t"},
            {"exit_policy": "lenient"},
            {"actor": ""},
        ],
    )
    def test_invalid_values(self, values):
        with pytest.raises(ValidationError):
            ReconciliationConfig(**values)

    def test_default_actor_falls_back_to_system(self, monkeypatch):
        """Test the actor when the OS user cannot be determined"""
        def no_user():
            raise KeyError("uid not found")

        monkeypatch.setattr("mandate_sync.config.getpass.getuser", no_user)
        assert default_actor() == "system"


@pytest.mark.unit
class TestDatabaseSettings:
    """Tests for DatabaseSettings.from_env"""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "db.internal")
        monkeypatch.setenv("DB_PORT", "6543")
        monkeypatch.setenv("DB_PASSWORD", "secret")

        settings = DatabaseSettings.from_env()

        assert settings.host == "db.internal"
        assert settings.port == 6543
        assert settings.password == "secret"

    def test_overrides_win_over_environment(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "db.internal")
        settings = DatabaseSettings.from_env(host="localhost", user=None)
        assert settings.host == "localhost"

    def test_defaults_without_environment(self, monkeypatch):
        for name in ("DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD"):
            monkeypatch.delenv(name, raising=False)

        settings = DatabaseSettings.from_env()

        assert settings.host == "localhost"
        assert settings.port == 5432
        assert settings.password is None


@pytest.mark.unit
class TestLoadSettingsFile:
    """Tests for load_settings_file"""

    def test_loads_sections(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "reconciliation:\n"
            "  batch_size: 500\n"
            "  exit_policy: strict\n"
            "database:\n"
            "  host: db.internal\n"
        )

        settings = load_settings_file(path)

        assert settings["reconciliation"] == {"batch_size": 500, "exit_policy": "strict"}
        assert settings["database"] == {"host": "db.internal"}
        assert ReconciliationConfig(**settings["reconciliation"]).batch_size == 500

    def test_missing_sections_are_empty(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("database:\n  port: 5433\n")

        settings = load_settings_file(path)

        assert settings["reconciliation"] == {}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("")
        assert load_settings_file(path) == {"reconciliation": {}, "database": {}}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings_file(tmp_path / "missing.yaml")

    def test_unknown_section(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("rules:\n  - name: x\n")

        with pytest.raises(ValueError) as exc_info:
            load_settings_file(path)
        assert "rules" in str(exc_info.value)

    @pytest.mark.parametrize("content", ["- a\n- b\n", "database: localhost\n"])
    def test_not_a_mapping(self, tmp_path, content):
        path = tmp_path / "settings.yaml"
        path.write_text(content)

        with pytest.raises(ValueError):
            load_settings_file(path)
