"""GitHub API access."""

from issue_investigator.github.client import GitHubIssuesClient, OpenIssuesResult

__all__ = ["GitHubIssuesClient", "OpenIssuesResult"]
