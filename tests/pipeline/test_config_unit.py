"""Tests for settings loading and validation."""

import os

import pytest
from pydantic import ValidationError

from steward.config import StewardSettings, get_settings
from steward.updates.ignore import IgnoreRule


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Remove STEWARD_* variables leaking in from the host environment."""
    for name in list(os.environ):
        if name.startswith("STEWARD_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("STEWARD_GITHUB_TOKEN", "ghp_test_token")


class TestDefaults:
    def test_defaults_are_loaded(self):
        settings = get_settings()

        assert settings.github_base_url == "https://api.github.com"
        assert settings.workspace_base_path == "/var/lib/steward/workspace"
        assert settings.git_author_name == "scala-steward"
        assert settings.git_author_email == "me@scala-steward.org"
        assert settings.max_concurrency == 1
        assert settings.repo_timeout_seconds == 3600
        assert settings.metrics_gateway_url is None
        assert settings.log_level == "INFO"

    def test_default_ignore_rules(self):
        rules = get_settings().parsed_ignore_rules()
        assert IgnoreRule(group_id="org.scala-lang", artifact_id="scala-library") in rules
        assert IgnoreRule(group_id="org.scala-lang", artifact_id="scala-compiler") in rules


class TestEnvironment:
    def test_values_come_from_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("STEWARD_MAX_CONCURRENCY", "4")
        monkeypatch.setenv("STEWARD_REPOS_FILE", "/etc/steward/repos.md")
        monkeypatch.setenv("STEWARD_IGNORE_RULES", '["org.http4s:*:1.*"]')

        settings = get_settings()

        assert settings.max_concurrency == 4
        assert settings.repos_file == "/etc/steward/repos.md"
        assert settings.parsed_ignore_rules() == [IgnoreRule.parse("org.http4s:*:1.*")]

    def test_overrides_win_over_environment(self, monkeypatch):
        monkeypatch.setenv("STEWARD_MAX_CONCURRENCY", "4")
        assert get_settings(max_concurrency=2).max_concurrency == 2

    def test_missing_token_fails(self, monkeypatch):
        monkeypatch.delenv("STEWARD_GITHUB_TOKEN")
        with pytest.raises(ValidationError):
            StewardSettings()


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"github_token": "   "},
            {"github_base_url": "api.github.com"},
            {"workspace_base_path": "relative/workspace"},
            {"git_timeout_seconds": 0},
            {"build_timeout_seconds": -1},
            {"repo_timeout_seconds": 0},
            {"max_concurrency": 0},
            {"ignore_rules": ["g::1"]},
            {"log_level": "chatty"},
        ],
    )
    def test_invalid_values_are_rejected(self, overrides):
        with pytest.raises(ValidationError):
            get_settings(**overrides)

    def test_log_level_is_normalised(self):
        assert get_settings(log_level="debug").log_level == "DEBUG"
