"""GitHub PR review and CI automation driven through the ``gh`` CLI."""
