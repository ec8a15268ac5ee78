"""GitHub REST API client for repository metadata.

Provides async, fail-soft access to the endpoints the enrichment pipeline
consumes:
- Repository list and single repository
- README and arbitrary file content (raw)
- Recent commits, language byte histogram
- Weekly commit activity and code frequency (statistics endpoints)
- Git tree listing
- Open issues, open pull requests, releases

Every method returns a safe default (empty list, empty dict or None) on
failure and logs the condition. Nothing raises into the caller.

The statistics endpoints answer 202 Accepted while GitHub computes them in
the background; those two calls retry a bounded number of times with a fixed
delay. This is the only retry policy of the client.

API Documentation: https://docs.github.com/en/rest

Usage:
    from repointel.config import settings
    from repointel.clients.github import GitHubClient

    async with GitHubClient.from_settings(settings) as client:
        repos = await client.get_repos("octocat")
        activity = await client.get_commit_activity("octocat", "hello-world")
"""

import asyncio
import logging
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from repointel.clients.base import APIProviderError, BaseAsyncClient
from repointel.config import Settings
from repointel.models import (
    CodeFrequencySample,
    CommitActivitySample,
    CommitInfo,
    Issue,
    Release,
    RepositoryRecord,
    RepoTree,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

GITHUB_API_URL = "https://api.github.com"
RAW_ACCEPT = "application/vnd.github.v3.raw"


class GitHubClient(BaseAsyncClient):
    """Async client for the GitHub REST API.

    Args:
        token: Bearer token; None means anonymous access
        base_url: API root (default: https://api.github.com)
        timeout: Request timeout in seconds
        max_concurrency: Max in-flight requests
        stats_retries: Retries when a statistics endpoint answers 202
        stats_retry_delay: Seconds to wait between those retries
    """

    def __init__(
        self,
        token: str | None = None,
        base_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        max_concurrency: int = 10,
        stats_retries: int = 3,
        stats_retry_delay: float = 1.0,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "repointel",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        super().__init__(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            max_concurrency=max_concurrency,
        )
        self.authenticated = bool(token)
        self.stats_retries = stats_retries
        self.stats_retry_delay = stats_retry_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> "GitHubClient":
        """Build a client from application settings."""
        return cls(
            token=settings.github_token,
            base_url=settings.github_api_url,
            timeout=settings.request_timeout,
            max_concurrency=settings.max_concurrency,
            stats_retries=settings.stats_retries,
            stats_retry_delay=settings.stats_retry_delay,
        )

    # --- Internal helpers ---

    @staticmethod
    def _log_failure(what: str, error: APIProviderError, single_entity: bool = False) -> None:
        if single_entity and error.is_not_found:
            logger.info("%s not found", what)
        else:
            logger.error("Failed to fetch %s: %s", what, error)

    async def _fetch_json(
        self,
        endpoint: str,
        what: str,
        params: dict[str, Any] | None = None,
        single_entity: bool = False,
    ) -> Any | None:
        try:
            return await self.get_json(endpoint, params=params)
        except APIProviderError as e:
            self._log_failure(what, e, single_entity)
            return None

    async def _fetch_raw(self, endpoint: str, what: str) -> str | None:
        try:
            response = await self.get(endpoint, headers={"Accept": RAW_ACCEPT})
        except APIProviderError as e:
            self._log_failure(what, e, single_entity=True)
            return None
        return response.text

    @staticmethod
    def _parse_list(model: type[ModelT], payload: Any, what: str) -> list[ModelT]:
        if payload is None:
            return []
        if not isinstance(payload, list):
            logger.warning("Unexpected payload for %s: %s", what, type(payload).__name__)
            return []
        try:
            return TypeAdapter(list[model]).validate_python(payload)
        except ValidationError as e:
            logger.error("Malformed payload for %s: %s", what, e)
            return []

    @staticmethod
    def _parse_one(model: type[ModelT], payload: Any, what: str) -> ModelT | None:
        if payload is None:
            return None
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            logger.error("Malformed payload for %s: %s", what, e)
            return None

    async def _get_stats(
        self,
        owner: str,
        repo: str,
        kind: str,
        model: type[ModelT],
    ) -> list[ModelT]:
        """Fetch a statistics endpoint, waiting out 202 Accepted.

        GitHub returns 202 with an empty body while it computes the stats.
        Retries up to ``stats_retries`` times, ``stats_retry_delay`` apart,
        then gives up with an empty list.
        """
        endpoint = f"/repos/{owner}/{repo}/stats/{kind}"
        what = f"{kind} for {owner}/{repo}"
        retries_left = self.stats_retries

        while True:
            try:
                response = await self.get(endpoint)
            except APIProviderError as e:
                self._log_failure(what, e)
                return []

            if response.status_code != 202:
                break

            if retries_left <= 0:
                logger.error(
                    "Failed to fetch %s: still being computed after %d retries",
                    what, self.stats_retries,
                )
                return []

            retries_left -= 1
            logger.debug(
                "%s is being computed (202), retrying in %.1fs (%d left)",
                what, self.stats_retry_delay, retries_left,
            )
            await asyncio.sleep(self.stats_retry_delay)

        # 204 No Content for empty repositories
        if response.status_code == 204 or not response.content:
            return []

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("Invalid JSON for %s: %s", what, e)
            return []

        return self._parse_list(model, payload, what)

    # --- Repositories ---

    async def get_repos(self, owner: str) -> list[RepositoryRecord]:
        """List public repositories of an account, most recently updated first.

        Returns:
            Up to 100 repositories; [] on failure.
        """
        what = f"repositories of {owner}"
        payload = await self._fetch_json(
            f"/users/{owner}/repos",
            what,
            params={"sort": "updated", "per_page": 100},
        )
        return self._parse_list(RepositoryRecord, payload, what)

    async def get_repo(self, owner: str, repo: str) -> RepositoryRecord | None:
        """Get a single repository.

        Returns:
            The repository, or None when it does not exist (404) or the
            request failed. Only the log line tells the two apart.
        """
        what = f"repository {owner}/{repo}"
        payload = await self._fetch_json(f"/repos/{owner}/{repo}", what, single_entity=True)
        return self._parse_one(RepositoryRecord, payload, what)

    async def get_readme(self, owner: str, repo: str) -> str | None:
        """Get the README as raw markdown, or None."""
        return await self._fetch_raw(f"/repos/{owner}/{repo}/readme", f"README of {owner}/{repo}")

    async def get_commits(self, owner: str, repo: str, limit: int = 5) -> list[CommitInfo]:
        """Get the most recent commits on the default branch."""
        what = f"commits of {owner}/{repo}"
        payload = await self._fetch_json(
            f"/repos/{owner}/{repo}/commits",
            what,
            params={"per_page": limit},
        )
        return self._parse_list(CommitInfo, payload, what)

    async def get_languages(self, owner: str, repo: str) -> dict[str, int]:
        """Get the language byte histogram, e.g. {"Python": 12345}."""
        what = f"languages of {owner}/{repo}"
        payload = await self._fetch_json(f"/repos/{owner}/{repo}/languages", what)
        if not isinstance(payload, dict):
            if payload is not None:
                logger.warning("Unexpected payload for %s: %s", what, type(payload).__name__)
            return {}
        try:
            return TypeAdapter(dict[str, int]).validate_python(payload)
        except ValidationError as e:
            logger.error("Malformed payload for %s: %s", what, e)
            return {}

    # --- Statistics ---

    async def get_commit_activity(self, owner: str, repo: str) -> list[CommitActivitySample]:
        """Get the last year of weekly commit counts (oldest first)."""
        return await self._get_stats(owner, repo, "commit_activity", CommitActivitySample)

    async def get_code_frequency(self, owner: str, repo: str) -> list[CodeFrequencySample]:
        """Get weekly additions/deletions (oldest first)."""
        return await self._get_stats(owner, repo, "code_frequency", CodeFrequencySample)

    # --- Files ---

    async def get_tree(
        self,
        owner: str,
        repo: str,
        sha: str = "HEAD",
        recursive: bool = False,
    ) -> RepoTree | None:
        """Get the git tree at ``sha``.

        Args:
            owner: Repository owner
            repo: Repository name
            sha: Tree-ish (branch, tag, commit SHA); default HEAD
            recursive: List the whole tree instead of the top level

        Returns:
            RepoTree, or None on failure. Large trees come back with
            ``truncated=True``.
        """
        what = f"tree {sha} of {owner}/{repo}"
        params = {"recursive": 1} if recursive else None
        payload = await self._fetch_json(f"/repos/{owner}/{repo}/git/trees/{sha}", what, params=params)
        return self._parse_one(RepoTree, payload, what)

    async def get_file_content(self, owner: str, repo: str, path: str) -> str | None:
        """Get a file's raw content, or None when missing or on failure."""
        path = path.lstrip("/")
        return await self._fetch_raw(
            f"/repos/{owner}/{repo}/contents/{path}",
            f"file {path} of {owner}/{repo}",
        )

    # --- Issues, pull requests, releases ---

    async def get_issues(self, owner: str, repo: str, state: str = "open") -> list[Issue]:
        """Get up to 30 issues, excluding pull requests.

        The issues endpoint also lists pull requests; those are dropped.
        """
        what = f"issues of {owner}/{repo}"
        payload = await self._fetch_json(
            f"/repos/{owner}/{repo}/issues",
            what,
            params={"state": state, "per_page": 30},
        )
        issues = self._parse_list(Issue, payload, what)
        return [issue for issue in issues if issue.pull_request is None]

    async def get_pull_requests(self, owner: str, repo: str, state: str = "open") -> list[Issue]:
        """Get up to 30 pull requests."""
        what = f"pull requests of {owner}/{repo}"
        payload = await self._fetch_json(
            f"/repos/{owner}/{repo}/pulls",
            what,
            params={"state": state, "per_page": 30},
        )
        return self._parse_list(Issue, payload, what)

    async def get_releases(self, owner: str, repo: str) -> list[Release]:
        """Get up to 10 releases, newest first."""
        what = f"releases of {owner}/{repo}"
        payload = await self._fetch_json(
            f"/repos/{owner}/{repo}/releases",
            what,
            params={"per_page": 10},
        )
        return self._parse_list(Release, payload, what)
