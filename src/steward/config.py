"""Steward configuration using pydantic-settings.

This module defines the StewardSettings class that reads configuration
from environment variables with the STEWARD_ prefix. The GitHub token is
the only required value; everything else has a default suited to running
the steward as a scheduled job.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from steward.updates.ignore import DEFAULT_IGNORE_RULES, IgnoreRule


class StewardSettings(BaseSettings):
    """Steward configuration from environment variables.

    All environment variables are prefixed with STEWARD_ (e.g.,
    STEWARD_GITHUB_TOKEN). List values such as STEWARD_IGNORE_RULES are
    given as JSON arrays.

    Required fields (must be set via environment variables):
    - github_token: GitHub API token used for forks, clones and PRs
    """

    model_config = SettingsConfigDict(
        env_prefix="STEWARD_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    # GitHub API token for forks, pushes and pull requests
    github_token: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # -------------------------------------------------------------------------
    # Workspace Configuration
    # -------------------------------------------------------------------------
    # Root directory holding one working directory per repository run
    workspace_base_path: str = "/var/lib/steward/workspace"

    # Line-oriented catalog of repositories ("- owner/repo" per line)
    repos_file: str = "/var/lib/steward/repos.md"

    # -------------------------------------------------------------------------
    # Git Configuration
    # -------------------------------------------------------------------------
    # Identity used for every commit the steward makes
    git_author_name: str = "scala-steward"
    git_author_email: str = "me@scala-steward.org"

    # Timeout in seconds for a single git invocation
    git_timeout_seconds: int = 600

    # -------------------------------------------------------------------------
    # Build Tool Configuration
    # -------------------------------------------------------------------------
    # Path to the sbt launcher
    sbt_path: str = "sbt"

    # Timeout in seconds for a single sbt invocation
    build_timeout_seconds: int = 1800

    # Updates matching any of these rules are never applied
    ignore_rules: List[str] = [str(rule) for rule in DEFAULT_IGNORE_RULES]

    # -------------------------------------------------------------------------
    # Run Configuration
    # -------------------------------------------------------------------------
    # Number of repositories processed at the same time
    max_concurrency: int = 1

    # Upper bound in seconds for one repository's pipeline
    repo_timeout_seconds: int = 3600

    # Prometheus Pushgateway receiving the run's metrics (optional)
    metrics_gateway_url: Optional[str] = None

    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_token")
    @classmethod
    def validate_github_token(cls, v: str) -> str:
        """Validate that GitHub token is not empty."""
        if not v or not v.strip():
            raise ValueError("github_token cannot be empty")
        return v

    @field_validator("github_base_url")
    @classmethod
    def validate_github_base_url(cls, v: str) -> str:
        """Validate that the GitHub API URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_base_url must start with http:// or https://")
        return v

    @field_validator("workspace_base_path")
    @classmethod
    def validate_workspace_path(cls, v: str) -> str:
        """Validate that workspace base path is an absolute path."""
        if not Path(v).is_absolute():
            raise ValueError("workspace_base_path must be an absolute path")
        return v

    @field_validator(
        "git_timeout_seconds",
        "build_timeout_seconds",
        "repo_timeout_seconds",
    )
    @classmethod
    def validate_timeouts(cls, v: int) -> int:
        """Validate that timeouts are positive."""
        if v < 1:
            raise ValueError("timeouts must be at least 1 second")
        return v

    @field_validator("max_concurrency")
    @classmethod
    def validate_max_concurrency(cls, v: int) -> int:
        """Validate that at least one repository can run."""
        if v < 1:
            raise ValueError("max_concurrency must be at least 1")
        return v

    @field_validator("ignore_rules")
    @classmethod
    def validate_ignore_rules(cls, v: List[str]) -> List[str]:
        """Validate that every ignore rule parses."""
        for rule in v:
            IgnoreRule.parse(rule)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return level

    def parsed_ignore_rules(self) -> List[IgnoreRule]:
        return [IgnoreRule.parse(rule) for rule in self.ignore_rules]


def get_settings(**overrides) -> StewardSettings:
    """Create and return a StewardSettings instance.

    Reads configuration from environment variables; keyword arguments
    take precedence over the environment (used for CLI flags).

    Returns:
        StewardSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return StewardSettings(**overrides)
