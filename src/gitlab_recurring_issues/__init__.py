"""GitLab recurring issues.

Creates GitLab issues on a schedule from Markdown templates:
- configuration loaded from the CI environment (or `.env`)
- structured logging
- cron-based due-ness relative to the last successful run of the job
"""

__version__ = "0.1.0"

from gitlab_recurring_issues.config import RecurringIssuesSettings

__all__ = ["__version__", "RecurringIssuesSettings"]
