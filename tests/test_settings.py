"""Tests for YAML settings loading."""

import logging

import pytest

from depsync.constants import Constants
from depsync.settings import Settings, load_settings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Isolate tests from the caller's settings files and DEPSYNC_* variables."""
    for var in (
        Constants.CONFIG_ENV_VAR,
        Constants.LOG_LEVEL_ENV_VAR,
        "DEPSYNC_LOCKFILE",
        "DEPSYNC_CACHE_DIR",
        "DEPSYNC_MAX_WORKERS",
        "DEPSYNC_FETCH_WORKERS",
        "DEPSYNC_HTTP_TIMEOUT",
        "DEPSYNC_HTTP_RETRIES",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


class TestLoadSettings:
    """Test settings file discovery and overrides."""

    def test_defaults(self):
        """Without files or variables the defaults apply."""
        settings = load_settings()
        assert settings == Settings()
        assert settings.source is None
        assert settings.max_workers == Constants.DEFAULT_MAX_WORKERS

    def test_explicit_file(self, tmp_path):
        """Values from an explicit file are applied."""
        path = tmp_path / "custom.yml"
        path.write_text("max_workers: 8\ncache_dir: /tmp/depsync-cache\n", encoding="utf-8")
        settings = load_settings(path)
        assert settings.max_workers == 8
        assert str(settings.cache_path) == "/tmp/depsync-cache"
        assert settings.source == str(path)

    def test_working_directory_file_with_section(self, tmp_path):
        """./depsync.yml is found and a top-level depsync section is honoured."""
        (tmp_path / "depsync.yml").write_text("depsync:\n  fetch_workers: 2\n", encoding="utf-8")
        assert load_settings().fetch_workers == 2

    def test_env_var_points_at_file(self, tmp_path, monkeypatch):
        """$DEPSYNC_CONFIG takes precedence over the working directory."""
        (tmp_path / "depsync.yml").write_text("max_workers: 2\n", encoding="utf-8")
        other = tmp_path / "other.yml"
        other.write_text("max_workers: 6\n", encoding="utf-8")
        monkeypatch.setenv(Constants.CONFIG_ENV_VAR, str(other))
        assert load_settings().max_workers == 6

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        """DEPSYNC_* variables win over the file."""
        (tmp_path / "depsync.yml").write_text("max_workers: 2\nhttp_timeout: 10\n", encoding="utf-8")
        monkeypatch.setenv("DEPSYNC_MAX_WORKERS", "12")
        settings = load_settings()
        assert settings.max_workers == 12
        assert settings.http_timeout == 10.0

    def test_invalid_values_ignored(self, tmp_path, caplog):
        """Bad values and unknown keys are logged and skipped."""
        (tmp_path / "depsync.yml").write_text(
            "max_workers: lots\nhttp_retries: 0\ncolour: blue\nlockfile_name: my.lock\n", encoding="utf-8"
        )
        with caplog.at_level(logging.WARNING):
            settings = load_settings()
        assert settings.max_workers == Constants.DEFAULT_MAX_WORKERS
        assert settings.http_retries == Constants.HTTP_RETRY_MAX
        assert settings.lockfile_name == "my.lock"
        assert "colour" in caplog.text

    def test_broken_yaml_falls_back_to_defaults(self, tmp_path, caplog):
        """Unparseable YAML is reported and the defaults are used."""
        (tmp_path / "depsync.yml").write_text("max_workers: [unclosed\n", encoding="utf-8")
        with caplog.at_level(logging.ERROR):
            settings = load_settings()
        assert settings.max_workers == Constants.DEFAULT_MAX_WORKERS
        assert "Failed to load settings" in caplog.text

    def test_missing_explicit_file(self, tmp_path):
        """A missing explicit file leaves the defaults in place."""
        assert load_settings(tmp_path / "absent.yml") == Settings()


class TestSettingsAccessors:
    """Test values derived from settings."""

    def test_lockfile_path_and_http_options(self, tmp_path):
        """Lockfile name and HTTP tunables are exposed for their consumers."""
        settings = Settings(lockfile_name="deps.lock", http_timeout=4.0, http_retries=2)
        assert settings.lockfile_path(tmp_path) == tmp_path / "deps.lock"
        assert settings.http_options() == {"timeout": 4.0, "retries": 2}
