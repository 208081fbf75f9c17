"""GitLab API access: a thin REST client and the issue operations built on it."""
