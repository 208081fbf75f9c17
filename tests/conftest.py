"""Test configuration and fixtures."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import requests

from gitlab_recurring_issues.logging import JsonFormatter, TextFormatter

PIPELINE_ENV_VARS = (
    "GITLAB_API_TOKEN",
    "CI_API_V4_URL",
    "CI_PROJECT_ID",
    "CI_PROJECT_DIR",
    "CI_JOB_NAME",
    "RECURRING_ISSUES_TEMPLATES_PATH",
    "GITLAB_SSL_VERIFY",
    "GITLAB_REQUEST_TIMEOUT",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def _reset_root_logging() -> Iterator[None]:
    """Drop handlers installed by `configure_logging` in the code under test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler.formatter, (JsonFormatter, TextFormatter)):
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run in an empty directory with no pipeline variables set."""
    for name in PIPELINE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def pipeline_env(clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Provide the variables GitLab CI sets for a job."""
    monkeypatch.setenv("GITLAB_API_TOKEN", "test-token")
    monkeypatch.setenv("CI_API_V4_URL", "https://gitlab.example.com/api/v4")
    monkeypatch.setenv("CI_PROJECT_ID", "42")
    monkeypatch.setenv("CI_PROJECT_DIR", str(clean_env))
    monkeypatch.setenv("CI_JOB_NAME", "recurring-issues")
    return clean_env


@pytest.fixture
def write_template(tmp_path: Path) -> Callable[..., Path]:
    """Write a template file below `tmp_path/templates`."""

    def _write(name: str, frontmatter: str, body: str = "") -> Path:
        path = tmp_path / "templates" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"---\n{frontmatter.strip()}\n---\n{body}", encoding="utf-8")
        return path

    return _write


def make_response(
    payload: Any = None,
    *,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
    url: str = "https://gitlab.example.com/api/v4/",
) -> requests.Response:
    """Build a real `requests.Response` without touching the network."""
    resp = requests.Response()
    resp.status_code = status_code
    resp._content = json.dumps(payload).encode("utf-8")
    resp.encoding = "utf-8"
    resp.url = url
    resp.headers.update(headers or {})
    return resp


@pytest.fixture
def response() -> Callable[..., requests.Response]:
    return make_response
