"""Configuration for a recurring-issues run.

Configuration is loaded from:
- environment variables (GitLab CI provides the `CI_*` ones)
- and a local `.env` file (if present)

The API token is deliberately not `CI_JOB_TOKEN`: job tokens cannot create issues,
so a project or personal access token must be stored as `GITLAB_API_TOKEN` under
the project CI/CD variables.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TEMPLATES_PATH = ".gitlab/recurring_issue_templates/"

_PIPELINE_HINT = "This tool must be run as part of a GitLab pipeline."


class LoggingSettings(BaseSettings):
    """Logging settings; the only configuration commands without GitLab access need."""

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        validation_alias="LOG_FORMAT",
        description="Log output format",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


class RecurringIssuesSettings(LoggingSettings):
    """Settings for a single run.

    Environment variables:
    - GITLAB_API_TOKEN
    - CI_API_V4_URL
    - CI_PROJECT_ID
    - CI_PROJECT_DIR
    - CI_JOB_NAME
    - RECURRING_ISSUES_TEMPLATES_PATH (optional)
    - GITLAB_SSL_VERIFY               (optional)
    - GITLAB_REQUEST_TIMEOUT          (optional)
    - LOG_LEVEL                       (optional)
    - LOG_FORMAT                      (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `RecurringIssuesSettings(_env_file=path_to_env)`.
    """

    # Required values default to empty so that every missing variable can be reported
    # at once by the validator below.
    gitlab_api_token: str = Field(
        default="",
        validation_alias="GITLAB_API_TOKEN",
        description="Access token with api scope used to create issues",
    )
    api_v4_url: str = Field(
        default="",
        validation_alias="CI_API_V4_URL",
        description="GitLab API v4 root URL, e.g. https://gitlab.example.com/api/v4",
    )
    project_id: str = Field(
        default="",
        validation_alias="CI_PROJECT_ID",
        description="Project whose pipelines are inspected and where issues are created",
    )
    project_dir: str = Field(
        default="",
        validation_alias="CI_PROJECT_DIR",
        description="Checkout directory of the project",
    )
    job_name: str = Field(
        default="",
        validation_alias="CI_JOB_NAME",
        description="Name of the job running this tool; used to find the last run",
    )

    templates_relative_path: str = Field(
        default=DEFAULT_TEMPLATES_PATH,
        validation_alias="RECURRING_ISSUES_TEMPLATES_PATH",
        description="Template directory, relative to CI_PROJECT_DIR unless absolute",
    )
    ssl_verify: bool = Field(
        default=True,
        validation_alias="GITLAB_SSL_VERIFY",
        description="Verify TLS certificates of the GitLab instance",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias="GITLAB_REQUEST_TIMEOUT",
        description="Timeout applied to each GitLab API request",
    )

    @field_validator("api_v4_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @model_validator(mode="after")
    def _require_pipeline_environment(self) -> RecurringIssuesSettings:
        problems: list[str] = []
        if not self.gitlab_api_token.strip():
            problems.append(
                "Environment variable 'GITLAB_API_TOKEN' not found. "
                "Ensure this is set under the project CI/CD settings."
            )
        required = (
            ("CI_API_V4_URL", self.api_v4_url),
            ("CI_PROJECT_ID", self.project_id),
            ("CI_PROJECT_DIR", self.project_dir),
            ("CI_JOB_NAME", self.job_name),
        )
        for name, value in required:
            if not value.strip():
                problems.append(f"Environment variable '{name}' not found. {_PIPELINE_HINT}")
        if problems:
            raise ValueError("\n".join(problems))
        return self

    @property
    def templates_dir(self) -> Path:
        """Directory scanned for issue templates."""

        relative = Path(self.templates_relative_path)
        if relative.is_absolute():
            return relative
        return Path(self.project_dir) / relative
