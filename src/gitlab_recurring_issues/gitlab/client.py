"""GitLab REST (v4) client wrapper.

This intentionally wraps a `requests.Session` to keep HTTP calls out of the runner
and make tests easy: inject a session and no network is touched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from urllib.parse import quote

import requests

from gitlab_recurring_issues import __version__
from gitlab_recurring_issues.errors import GitLabAPIError

logger = logging.getLogger(__name__)

PER_PAGE = 100


@dataclass(frozen=True, slots=True)
class Project:
    """Minimal project metadata."""

    id: int
    path_with_namespace: str
    namespace_id: int
    namespace_kind: str
    namespace_full_path: str


@dataclass(frozen=True, slots=True)
class Pipeline:
    id: int
    status: str
    updated_at: datetime | None


@dataclass(frozen=True, slots=True)
class Job:
    id: int
    name: str
    status: str
    finished_at: datetime | None


@dataclass(frozen=True, slots=True)
class Epic:
    id: int
    iid: int
    group_id: int
    title: str


@dataclass(frozen=True, slots=True)
class IssueCreate:
    """Attributes of an issue to be created."""

    title: str
    description: str
    confidential: bool = False
    created_at: datetime | None = None
    due_date: date | None = None
    labels: list[str] = field(default_factory=list)
    assignee_ids: list[int] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "confidential": self.confidential,
        }
        if self.created_at is not None:
            payload["created_at"] = self.created_at.isoformat()
        if self.due_date is not None:
            payload["due_date"] = self.due_date.isoformat()
        if self.labels:
            payload["labels"] = ",".join(self.labels)
        if self.assignee_ids:
            payload["assignee_ids"] = list(self.assignee_ids)
        return payload


@dataclass(frozen=True, slots=True)
class CreatedIssue:
    """Minimal issue metadata returned from GitLab."""

    id: int
    iid: int
    project_id: int
    title: str
    web_url: str | None
    created_at: datetime | None


class GitLabClient:
    """Small wrapper around the GitLab REST API for the calls a run needs."""

    def __init__(
        self,
        *,
        token: str,
        api_url: str,
        ssl_verify: bool = True,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise ValueError("GitLab token is required")
        if not api_url:
            raise ValueError("GitLab API URL is required")

        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.verify = ssl_verify
        self._session.headers.update(
            {
                "PRIVATE-TOKEN": token,
                "Accept": "application/json",
                "User-Agent": f"gitlab-recurring-issues/{__version__}",
            }
        )
        if not ssl_verify:
            logger.warning("TLS certificate verification is disabled for GitLab requests")

    @property
    def api_url(self) -> str:
        return self._api_url

    def _url(self, path: str) -> str:
        return f"{self._api_url}/{path.lstrip('/')}"

    @staticmethod
    def _encode_id(value: int | str) -> str:
        # Projects and groups may be addressed by their full path ("group/project").
        return quote(str(value).strip(), safe="")

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text.strip() or (resp.reason or "")
        if isinstance(data, dict):
            for key in ("message", "error"):
                value = data.get(key)
                if value:
                    return str(value)
        return str(data)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> requests.Response:
        url = self._url(path)
        logger.debug("GitLab request", extra={"method": method, "url": url})
        resp = self._session.request(method, url, params=params, json=json, timeout=self._timeout)
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise GitLabAPIError(method, url, resp.status_code, self._error_message(resp)) from e
        return resp

    def _get_json(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return self._request("GET", path, params=params).json()

    def _paginate(
        self, path: str, *, params: dict[str, Any] | None = None
    ) -> Iterator[dict[str, Any]]:
        """Yield items of a list endpoint, following the `X-Next-Page` header."""

        query: dict[str, Any] = dict(params or {})
        query["per_page"] = PER_PAGE
        page = 1
        while True:
            query["page"] = page
            resp = self._request("GET", path, params=dict(query))
            payload = resp.json()
            if not isinstance(payload, list):
                return
            for item in payload:
                if isinstance(item, dict):
                    yield item

            next_page = (resp.headers.get("X-Next-Page") or "").strip()
            if not next_page:
                return
            page = int(next_page)

    @staticmethod
    def _parse_datetime(value: object) -> datetime | None:
        if not isinstance(value, str) or not value.strip():
            return None
        # GitLab returns timestamps like "2016-08-11T11:28:34.085Z".
        iso = value.replace("Z", "+00:00")
        return datetime.fromisoformat(iso)

    def get_project(self, project_id: int | str) -> Project:
        data: dict[str, Any] = self._get_json(f"projects/{self._encode_id(project_id)}")
        namespace = data.get("namespace")
        if not isinstance(namespace, dict):
            namespace = {}
        return Project(
            id=int(data["id"]),
            path_with_namespace=str(data.get("path_with_namespace") or ""),
            namespace_id=int(namespace.get("id") or 0),
            namespace_kind=str(namespace.get("kind") or ""),
            namespace_full_path=str(namespace.get("full_path") or ""),
        )

    def iter_successful_pipelines(self, project_id: int | str) -> Iterator[Pipeline]:
        """Yield finished, successful pipelines, most recently updated first."""

        params = {
            "scope": "finished",
            "status": "success",
            "order_by": "updated_at",
            "sort": "desc",
        }
        path = f"projects/{self._encode_id(project_id)}/pipelines"
        for item in self._paginate(path, params=params):
            yield Pipeline(
                id=int(item["id"]),
                status=str(item.get("status") or ""),
                updated_at=self._parse_datetime(item.get("updated_at")),
            )

    def list_pipeline_jobs(self, project_id: int | str, pipeline_id: int) -> list[Job]:
        path = f"projects/{self._encode_id(project_id)}/pipelines/{pipeline_id}/jobs"
        return [
            Job(
                id=int(item["id"]),
                name=str(item.get("name") or ""),
                status=str(item.get("status") or ""),
                finished_at=self._parse_datetime(item.get("finished_at")),
            )
            for item in self._paginate(path)
        ]

    def find_user_ids(self, usernames: list[str]) -> list[int]:
        """Resolve usernames to user ids; unknown usernames are skipped."""

        ids: list[int] = []
        for username in usernames:
            name = username.strip().lstrip("@")
            if not name:
                continue
            users = self._get_json("users", params={"username": name})
            if not isinstance(users, list) or not users:
                logger.warning("Unknown GitLab user, not assigning", extra={"username": name})
                continue
            ids.append(int(users[0]["id"]))
        return ids

    def create_issue(self, project_id: int | str, issue: IssueCreate) -> CreatedIssue:
        logger.info("Creating issue", extra={"project_id": str(project_id), "title": issue.title})
        path = f"projects/{self._encode_id(project_id)}/issues"
        data: dict[str, Any] = self._request("POST", path, json=issue.to_payload()).json()
        created = CreatedIssue(
            id=int(data["id"]),
            iid=int(data["iid"]),
            project_id=int(data.get("project_id") or 0),
            title=str(data.get("title") or issue.title),
            web_url=data.get("web_url") or None,
            created_at=self._parse_datetime(data.get("created_at")),
        )
        logger.info("Issue created", extra={"iid": created.iid, "web_url": created.web_url})
        return created

    def find_group_epic(self, group_id: int | str, title: str) -> Epic | None:
        """Return the epic of a group whose title matches exactly, if any."""

        wanted = title.strip()
        path = f"groups/{self._encode_id(group_id)}/epics"
        for item in self._paginate(path, params={"search": wanted}):
            if str(item.get("title") or "").strip() == wanted:
                return Epic(
                    id=int(item["id"]),
                    iid=int(item["iid"]),
                    group_id=int(item.get("group_id") or 0),
                    title=str(item["title"]),
                )
        return None

    def assign_issue_to_epic(self, group_id: int | str, epic_iid: int, issue_id: int) -> None:
        path = f"groups/{self._encode_id(group_id)}/epics/{epic_iid}/issues/{issue_id}"
        self._request("POST", path)
        logger.info(
            "Issue linked to epic",
            extra={"group_id": str(group_id), "epic_iid": epic_iid, "issue_id": issue_id},
        )

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()
