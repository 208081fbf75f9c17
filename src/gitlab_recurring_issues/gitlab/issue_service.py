"""Issue creation and last-run lookup on top of the GitLab client.

The tool keeps no state of its own: the time of the previous run is read back from
GitLab as the finish time of the same job in the latest successful pipeline.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from gitlab_recurring_issues.gitlab.client import CreatedIssue, GitLabClient, IssueCreate, Project
from gitlab_recurring_issues.templates import IssueTemplate

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

GROUP_NAMESPACE = "group"


class IssueService:
    """High-level, testable recurring-issue operations."""

    def __init__(self, *, gitlab: GitLabClient) -> None:
        self._gitlab = gitlab
        self._projects: dict[str, Project] = {}

    def _project(self, project_id: str) -> Project:
        key = project_id.strip()
        if key not in self._projects:
            self._projects[key] = self._gitlab.get_project(key)
        return self._projects[key]

    def last_run_time(self, project_id: str, job_name: str) -> datetime:
        """Return when `job_name` last finished in a successful pipeline.

        Returns the Unix epoch when the job never ran successfully, which makes
        every template due on the first run.
        """

        for pipeline in self._gitlab.iter_successful_pipelines(project_id):
            for job in self._gitlab.list_pipeline_jobs(project_id, pipeline.id):
                if job.name != job_name:
                    continue
                if job.finished_at is None:
                    logger.debug(
                        "Job has no finish time, continuing search",
                        extra={"pipeline_id": pipeline.id, "job_id": job.id},
                    )
                    continue
                logger.debug(
                    "Found last run",
                    extra={"pipeline_id": pipeline.id, "job_id": job.id},
                )
                return job.finished_at
        return EPOCH

    def create_issue(self, template: IssueTemplate, *, default_project_id: str) -> CreatedIssue:
        """Create the issue for a due template and link it to its epic (if any).

        `template.next_time` must already be set; it becomes the issue creation time.

        Raises:
            ValueError: If `next_time` is missing or `duein` is invalid.
        """

        if template.next_time is None:
            raise ValueError(f"Template has not been scheduled: {template.path}")

        project = self._project(template.project_id or default_project_id)

        assignee_ids: list[int] = []
        if template.assignees:
            assignee_ids = self._gitlab.find_user_ids(template.assignees)

        request = IssueCreate(
            title=template.title,
            description=template.issue_description,
            confidential=template.confidential,
            created_at=template.next_time,
            due_date=template.due_date(template.next_time),
            labels=list(template.labels),
            assignee_ids=assignee_ids,
        )
        created = self._gitlab.create_issue(project.id, request)

        if template.epic and template.epic.strip():
            self._link_epic(created, project=project, epic_title=template.epic)

        return created

    def _link_epic(self, issue: CreatedIssue, *, project: Project, epic_title: str) -> None:
        # Lookup failures only warn; the issue stays created.
        if project.namespace_kind != GROUP_NAMESPACE:
            logger.warning(
                "Epics require a group namespace, not linking",
                extra={"project": project.path_with_namespace, "epic": epic_title},
            )
            return

        epic = self._gitlab.find_group_epic(project.namespace_id, epic_title)
        if epic is None:
            logger.warning(
                "Epic not found, not linking",
                extra={"group": project.namespace_full_path, "epic": epic_title},
            )
            return

        self._gitlab.assign_issue_to_epic(epic.group_id or project.namespace_id, epic.iid, issue.id)
