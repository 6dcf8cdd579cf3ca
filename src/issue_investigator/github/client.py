"""GitHub REST client used for catchup reconciliation."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from issue_investigator import __version__

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
PER_PAGE = 100
DEFAULT_USER_AGENT = f"issue-investigator/{__version__}"


@dataclass(slots=True)
class OpenIssuesResult:
    """Open issue numbers, or the reason they could not be listed."""

    repo: str
    numbers: tuple[int, ...]
    ok: bool
    error: str | None = None


class GitHubIssuesClient:
    """Lists open issues of a repository; pull requests are excluded."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        api_url: str = DEFAULT_API_URL,
        token: str = "",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_pages: int = 10,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": DEFAULT_USER_AGENT,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._max_pages = max_pages
        self._client = httpx.Client(
            base_url=api_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers=headers,
            transport=transport or httpx.HTTPTransport(retries=max_retries),
            follow_redirects=True,
        )

    def list_open_issues(self, repo: str) -> OpenIssuesResult:
        """Return every open issue number, walking pages until a short page."""

        numbers: list[int] = []
        try:
            for page in range(1, self._max_pages + 1):
                response = self._client.get(
                    f"/repos/{repo}/issues",
                    params={"state": "open", "per_page": PER_PAGE, "page": page},
                )
                if not response.is_success:
                    logger.warning(
                        "GitHub returned HTTP %d listing issues for %s",
                        response.status_code,
                        repo,
                    )
                    return OpenIssuesResult(
                        repo=repo,
                        numbers=(),
                        ok=False,
                        error=f"HTTP {response.status_code}",
                    )
                entries = response.json()
                if not isinstance(entries, list):
                    return OpenIssuesResult(
                        repo=repo,
                        numbers=(),
                        ok=False,
                        error="unexpected response payload",
                    )
                numbers.extend(_issue_numbers(entries))
                if len(entries) < PER_PAGE:
                    break
            else:
                logger.warning("Stopped listing %s issues after %d pages", repo, self._max_pages)
        except httpx.TimeoutException:
            logger.warning("Timeout listing open issues for %s", repo)
            return OpenIssuesResult(repo=repo, numbers=(), ok=False, error="timeout")
        except httpx.HTTPError as exc:
            logger.warning("HTTP error listing open issues for %s: %s", repo, exc)
            return OpenIssuesResult(repo=repo, numbers=(), ok=False, error=str(exc))
        except ValueError as exc:
            logger.warning("Invalid JSON listing open issues for %s: %s", repo, exc)
            return OpenIssuesResult(repo=repo, numbers=(), ok=False, error="invalid JSON")
        return OpenIssuesResult(repo=repo, numbers=tuple(numbers), ok=True)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GitHubIssuesClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _issue_numbers(entries: list[object]) -> list[int]:
    numbers: list[int] = []
    for entry in entries:
        if not isinstance(entry, dict) or "pull_request" in entry:
            continue
        number = entry.get("number")
        if isinstance(number, int) and not isinstance(number, bool) and number > 0:
            numbers.append(number)
    return numbers
