"""Recurring issue templates.

A template is a Markdown file whose YAML frontmatter describes the issue and its
schedule; the Markdown below the frontmatter becomes the issue description:

    ---
    title: "Weekly dependency review"
    confidential: false
    assignees: ["alice"]
    labels: ["maintenance"]
    duein: "48h"
    crontab: "0 9 * * 1"
    epic: "Housekeeping"
    ---
    Check for outdated dependencies and open merge requests for them.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gitlab_recurring_issues.errors import TemplateError
from gitlab_recurring_issues.schedule import parse_duration

logger = logging.getLogger(__name__)

FRONTMATTER_DELIMITER = "---"
TEMPLATE_SUFFIX = ".md"


def _scalar_to_str(value: Any) -> Any:
    # YAML reads `title: 2024`, `labels: [2024]` or `project_id: 42` as numbers.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class IssueTemplate(BaseModel):
    """A single recurring issue, as described by a template file."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(default="")
    description: str | None = Field(default=None)
    confidential: bool = Field(default=False)
    assignees: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    duein: str | None = Field(default=None, description="Due date offset, e.g. '24h'")
    crontab: str = Field(default="")
    epic: str | None = Field(default=None, description="Title of the group epic to link to")
    project_id: str | None = Field(
        default=None, description="Target project; defaults to the pipeline project"
    )

    content: str = Field(default="")
    path: Path = Field(default=Path())

    # Set once the schedule has been evaluated against the last run.
    next_time: datetime | None = Field(default=None)

    @field_validator("assignees", "labels", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [_scalar_to_str(item) for item in value]
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            return [_scalar_to_str(value)]
        return value

    @field_validator("title", "description", "duein", "epic", "project_id", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _scalar_to_str(value)

    @property
    def issue_description(self) -> str:
        """Description sent to GitLab: the explicit one, else the Markdown body."""

        if self.description is not None and self.description.strip():
            return self.description
        return self.content

    def due_date(self, next_time: datetime) -> date | None:
        """Return the issue due date for an occurrence, or None without `duein`.

        Raises:
            ValueError: If `duein` is not a valid duration.
        """

        if self.duein is None or not str(self.duein).strip():
            return None
        try:
            due = next_time + parse_duration(str(self.duein))
        except OverflowError as e:
            raise ValueError(f"Invalid duration {self.duein!r}: out of range") from e
        if due.tzinfo is not None:
            due = due.astimezone(UTC)
        return due.date()


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a document into its YAML frontmatter mapping and the body.

    Raises:
        ValueError: If the frontmatter block is missing, unterminated or not a mapping.
    """

    # Tolerate a UTF-8 BOM written by some editors.
    text = text.removeprefix("\ufeff")
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != FRONTMATTER_DELIMITER:
        raise ValueError("File must start with YAML frontmatter (---)")

    for idx in range(1, len(lines)):
        if lines[idx].rstrip() == FRONTMATTER_DELIMITER:
            break
    else:
        raise ValueError("Frontmatter is not terminated by a closing '---' line")

    block = "".join(lines[1:idx])
    body = "".join(lines[idx + 1 :])

    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML frontmatter: {e}") from e

    if data is None:
        return {}, body
    if not isinstance(data, dict):
        raise ValueError("Frontmatter must be a YAML mapping")
    return data, body


def load_template(path: Path) -> IssueTemplate:
    """Read and parse a template file.

    Raises:
        TemplateError: If the file cannot be read or its frontmatter is invalid.
    """

    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TemplateError(path, f"cannot read file: {e}") from e

    try:
        data, body = split_frontmatter(raw)
    except ValueError as e:
        raise TemplateError(path, str(e)) from e

    try:
        return IssueTemplate.model_validate({**data, "content": body, "path": path})
    except ValidationError as e:
        raise TemplateError(path, f"invalid frontmatter: {e}") from e


def discover_templates(root: Path) -> list[Path]:
    """Return template files below `root` (recursively) in a stable order.

    Raises:
        TemplateError: If `root` is not a directory.
    """

    if not root.is_dir():
        raise TemplateError(root, "template directory does not exist")

    templates: list[Path] = []
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        if path.suffix != TEMPLATE_SUFFIX:
            logger.debug("Not a Markdown file, skipping", extra={"path": str(path)})
            continue
        templates.append(path)
    return templates
