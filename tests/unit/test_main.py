"""Unit tests for the CLI entrypoint."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import Mock

import pytest

from gitlab_recurring_issues import main as cli
from gitlab_recurring_issues.errors import GitLabAPIError
from gitlab_recurring_issues.gitlab.client import CreatedIssue, GitLabClient, Project


@pytest.fixture
def gitlab(monkeypatch: pytest.MonkeyPatch) -> Mock:
    mock = Mock(spec=GitLabClient)
    mock.iter_successful_pipelines.return_value = iter([])
    mock.get_project.return_value = Project(
        id=42,
        path_with_namespace="group/project",
        namespace_id=3,
        namespace_kind="group",
        namespace_full_path="group",
    )
    mock.create_issue.return_value = CreatedIssue(
        id=501,
        iid=12,
        project_id=42,
        title="Daily",
        web_url=None,
        created_at=None,
    )
    monkeypatch.setattr(cli, "GitLabClient", Mock(return_value=mock))
    return mock


def test_missing_configuration_exits_with_config_error(
    clean_env: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli.main(["run"]) == cli.EXIT_CONFIG

    err = capsys.readouterr().err
    assert "Configuration error" in err
    assert "GITLAB_API_TOKEN" in err


def test_run_creates_due_issues(
    pipeline_env: Path,
    gitlab: Mock,
    write_template: Callable[..., Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    write_template("daily.md", "title: Daily\ncrontab: '0 9 * * *'")

    code = cli.main(
        ["run", "--templates-dir", str(pipeline_env / "templates"), "--now", "1970-01-02T12:00Z"]
    )

    assert code == cli.EXIT_OK
    gitlab.create_issue.assert_called_once()
    request = gitlab.create_issue.call_args.args[1]
    assert request.created_at == datetime(1970, 1, 1, 9, 0, tzinfo=UTC)
    assert "Created issue #12: Daily" in capsys.readouterr().out
    gitlab.close.assert_called_once()


def test_dry_run_does_not_create(
    pipeline_env: Path, gitlab: Mock, write_template: Callable[..., Path]
) -> None:
    write_template("daily.md", "title: Daily\ncrontab: '0 9 * * *'")

    code = cli.main(["run", "--dry-run", "--templates-dir", str(pipeline_env / "templates")])

    assert code == cli.EXIT_OK
    gitlab.create_issue.assert_not_called()


def test_template_error_exit_code(
    pipeline_env: Path, gitlab: Mock, write_template: Callable[..., Path]
) -> None:
    write_template("broken.md", "title: Broken\ncrontab: 'whenever'")

    code = cli.main(["run", "--templates-dir", str(pipeline_env / "templates")])

    assert code == cli.EXIT_TEMPLATE
    gitlab.close.assert_called_once()


def test_gitlab_error_exit_code(pipeline_env: Path, gitlab: Mock) -> None:
    gitlab.iter_successful_pipelines.side_effect = GitLabAPIError(
        "GET", "https://gitlab.example.com/api/v4/projects/42/pipelines", 401, "401 Unauthorized"
    )

    assert cli.main(["run"]) == cli.EXIT_GITLAB


def test_next_prints_occurrence_without_pipeline_env(
    clean_env: Path,
    write_template: Callable[..., Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    path = write_template("weekly.md", "title: Weekly\ncrontab: '0 9 * * 1'\nduein: 48h")

    code = cli.main(["next", str(path), "--after", "2024-01-01T00:00:00+00:00"])

    assert code == cli.EXIT_OK
    out = capsys.readouterr().out
    assert "Weekly: next due 2024-01-01T09:00:00+00:00" in out
    assert "Issue due date: 2024-01-03" in out


def test_next_reports_template_error(clean_env: Path, write_template: Callable[..., Path]) -> None:
    path = write_template("bad.md", "crontab: '* *'")

    assert cli.main(["next", str(path)]) == cli.EXIT_TEMPLATE


def test_invalid_now_is_rejected(pipeline_env: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["run", "--now", "yesterday"])

    assert excinfo.value.code == 2
