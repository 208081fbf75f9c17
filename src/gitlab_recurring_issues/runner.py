"""A single pass over the template directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from gitlab_recurring_issues.errors import TemplateError
from gitlab_recurring_issues.gitlab.client import CreatedIssue
from gitlab_recurring_issues.gitlab.issue_service import IssueService
from gitlab_recurring_issues.schedule import is_due, parse_schedule
from gitlab_recurring_issues.templates import IssueTemplate, discover_templates, load_template

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunSummary:
    """Outcome of a run."""

    last_run: datetime
    created: list[CreatedIssue] = field(default_factory=list)
    due: list[Path] = field(default_factory=list)
    not_due: list[Path] = field(default_factory=list)


def schedule_template(template: IssueTemplate, last_run: datetime) -> datetime:
    """Set and return the template's next occurrence after `last_run`.

    Raises:
        TemplateError: If the cron expression or `duein` is invalid.
    """

    try:
        schedule = parse_schedule(template.crontab)
        next_time = schedule.next_after(last_run)
        # Surface a bad `duein` before anything is created.
        template.due_date(next_time)
    except ValueError as e:
        raise TemplateError(template.path, str(e)) from e

    template.next_time = next_time
    return next_time


class RecurringIssueRunner:
    """Creates an issue for every template that came due since the last run."""

    def __init__(
        self,
        *,
        service: IssueService,
        templates_dir: Path,
        project_id: str,
        job_name: str,
    ) -> None:
        self._service = service
        self._templates_dir = templates_dir
        self._project_id = project_id
        self._job_name = job_name

    def run(self, *, now: datetime | None = None, dry_run: bool = False) -> RunSummary:
        """Process all templates.

        Processing stops at the first template or API error; issues created before
        that point are kept.
        """

        current = now or datetime.now(tz=UTC)
        if current.tzinfo is None:
            current = current.replace(tzinfo=UTC)

        last_run = self._service.last_run_time(self._project_id, self._job_name)
        logger.info(f"Last run: {last_run.isoformat()}", extra={"job_name": self._job_name})

        summary = RunSummary(last_run=last_run)
        for path in discover_templates(self._templates_dir):
            template = load_template(path)
            next_time = schedule_template(template, last_run)

            if not is_due(next_time, current):
                logger.info(f"{path} is due {next_time.isoformat()}")
                summary.not_due.append(path)
                continue

            summary.due.append(path)
            if dry_run:
                logger.info(f"{path} was due {next_time.isoformat()} - would create new issue")
                continue

            logger.info(f"{path} was due {next_time.isoformat()} - creating new issue")
            created = self._service.create_issue(template, default_project_id=self._project_id)
            summary.created.append(created)

        logger.info(
            "Run complete",
            extra={
                "created_count": len(summary.created),
                "due_count": len(summary.due),
                "not_due_count": len(summary.not_due),
                "dry_run": dry_run,
            },
        )
        return summary
