"""Exceptions raised while processing recurring issue templates."""

from __future__ import annotations

from pathlib import Path


class RecurringIssuesError(Exception):
    """Base class for all errors raised by this package."""


class TemplateError(RecurringIssuesError):
    """A template could not be read, parsed or scheduled."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class GitLabAPIError(RecurringIssuesError):
    """The GitLab API answered with a non-success status."""

    def __init__(self, method: str, url: str, status_code: int, message: str) -> None:
        super().__init__(f"{method} {url} failed with HTTP {status_code}: {message}")
        self.method = method
        self.url = url
        self.status_code = status_code
        self.message = message
