"""CLI entrypoint, meant to run as a scheduled GitLab CI job.

Example `.gitlab-ci.yml` job:

    recurring-issues:
      rules:
        - if: $CI_PIPELINE_SOURCE == "schedule"
      script:
        - gitlab-recurring-issues run
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from gitlab_recurring_issues import __version__
from gitlab_recurring_issues.config import LoggingSettings, RecurringIssuesSettings
from gitlab_recurring_issues.errors import GitLabAPIError, TemplateError
from gitlab_recurring_issues.gitlab.client import GitLabClient
from gitlab_recurring_issues.gitlab.issue_service import IssueService
from gitlab_recurring_issues.logging import configure_logging
from gitlab_recurring_issues.runner import RecurringIssueRunner, schedule_template
from gitlab_recurring_issues.templates import load_template

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_TEMPLATE = 3
EXIT_GITLAB = 4


def _parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gitlab-recurring-issues",
        description="Create GitLab issues from scheduled Markdown templates",
    )
    parser.add_argument(
        "--version", action="version", version=f"gitlab-recurring-issues {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser(
        "run", help="Create issues for all templates that came due since the last run"
    )
    run.add_argument(
        "--dry-run",
        action="store_true",
        help="Report due templates without creating issues",
    )
    run.add_argument(
        "--templates-dir",
        type=Path,
        default=None,
        help="Template directory (overrides RECURRING_ISSUES_TEMPLATES_PATH)",
    )
    run.add_argument(
        "--now",
        type=_parse_timestamp,
        default=None,
        help="Evaluate schedules as if it were this time (ISO-8601, default: now)",
    )

    next_ = subparsers.add_parser(
        "next", help="Show when a template is next due (no GitLab access needed)"
    )
    next_.add_argument("template", type=Path, help="Path to a template file")
    next_.add_argument(
        "--after",
        type=_parse_timestamp,
        default=None,
        help="Compute the occurrence after this time (ISO-8601, default: now)",
    )

    return parser


def _show_next(args: argparse.Namespace) -> int:
    try:
        log_settings = LoggingSettings()
    except ValidationError as e:
        print("Configuration error:", file=sys.stderr)
        print(e, file=sys.stderr)
        return EXIT_CONFIG

    configure_logging(log_settings.log_level, log_settings.log_format)

    try:
        template = load_template(args.template)
        after = args.after or datetime.now(tz=UTC)
        next_time = schedule_template(template, after)
    except TemplateError as e:
        logger.error(str(e), extra={"path": str(e.path)})
        print(str(e), file=sys.stderr)
        return EXIT_TEMPLATE

    print(f"{template.title or args.template.name}: next due {next_time.isoformat()}")
    due_date = template.due_date(next_time)
    if due_date is not None:
        print(f"Issue due date: {due_date.isoformat()}")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "next":
        return _show_next(args)

    try:
        settings = RecurringIssuesSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error:", file=sys.stderr)
        print(e, file=sys.stderr)
        return EXIT_CONFIG

    configure_logging(settings.log_level, settings.log_format)

    gitlab = GitLabClient(
        token=settings.gitlab_api_token,
        api_url=settings.api_v4_url,
        ssl_verify=settings.ssl_verify,
        timeout=settings.request_timeout_seconds,
    )
    try:
        runner = RecurringIssueRunner(
            service=IssueService(gitlab=gitlab),
            templates_dir=args.templates_dir or settings.templates_dir,
            project_id=settings.project_id,
            job_name=settings.job_name,
        )
        summary = runner.run(now=args.now, dry_run=args.dry_run)
        for issue in summary.created:
            print(f"Created issue #{issue.iid}: {issue.title}")
        return EXIT_OK

    except TemplateError as e:
        logger.error(str(e), extra={"path": str(e.path)})
        return EXIT_TEMPLATE

    except GitLabAPIError as e:
        logger.error(str(e), extra={"status_code": e.status_code, "url": e.url})
        return EXIT_GITLAB

    except Exception:
        logger.exception("Run failed")
        return EXIT_FAILURE

    finally:
        gitlab.close()


if __name__ == "__main__":
    raise SystemExit(main())
