"""Aggregator — cache-backed orchestration of fetch and enrichment.

Flow for every operation:
  cache check → fan out client calls (asyncio.gather) → enrichment → cache write

Per-repository auxiliary failures never abort a batch: a failing call is
logged and replaced by its neutral default (no activity, no releases, no
issues). Only a missing primary repository is signalled, as None.

Usage:
    cache = TTLCache()
    async with cache, GitHubClient.from_settings(settings) as client:
        aggregator = Aggregator(source=client, cache=cache)
        repos = await aggregator.fetch_all_repos_enriched("octocat")
        details = await aggregator.fetch_repo_details("octocat", "hello-world")
        metrics = await aggregator.portfolio_metrics("octocat")
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import Callable, TypeVar

from repointel.cache import TTLCache, TTLCategory
from repointel.clients.source import RepositorySource
from repointel.enrichment import (
    compute_activity_graph,
    detect_project_stack,
    enrich_repository,
)
from repointel.models import (
    ActivityStatus,
    CodeFrequencySample,
    EnrichedRepository,
    LanguageCount,
    PortfolioMetrics,
    ProjectStack,
    RepoDetails,
    RepoListItem,
    RepositoryRecord,
    RepoTree,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Cache namespaces
NS_REPOS = "repos"
NS_ENRICHED = "enriched_repos"
NS_DETAILS = "repo_details"
NS_TREE = "repo_tree"
NS_FILE = "file_content"
NS_CODE_FREQUENCY = "code_frequency"

RECENT_COMMITS = 20
TOP_LANGUAGES = 5
MONTHS_PER_YEAR = 12


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Aggregator:
    """Composes the remote source, the TTL cache and the enrichment pipeline.

    Args:
        source: Remote data source (GitHubClient or a test double)
        cache: Cache instance owned by the caller
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        source: RepositorySource,
        cache: TTLCache,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.source = source
        self.cache = cache
        self._clock = clock

    @staticmethod
    async def _or_default(call: Awaitable[T], default: T, what: str) -> T:
        """Await an auxiliary call, falling back to ``default`` on error."""
        try:
            return await call
        except Exception as e:
            logger.warning("%s failed, using default: %s", what, e)
            return default

    # --- Repository listings ---

    async def list_repositories(self, owner: str, include_forks: bool = False) -> list[RepoListItem]:
        """Lightweight repository list (no enrichment).

        Args:
            owner: Account login
            include_forks: Keep forked repositories (default: False)
        """
        records: list[RepositoryRecord] | None = self.cache.get(NS_REPOS, owner)
        if records is None:
            records = await self.source.get_repos(owner)
            self.cache.set(NS_REPOS, TTLCategory.REPOS, records, owner)

        return [
            RepoListItem.from_record(record)
            for record in records
            if include_forks or not record.fork
        ]

    async def fetch_all_repos_enriched(
        self,
        owner: str,
        exclude_archived: bool = False,
        exclude_forks: bool = True,
    ) -> list[EnrichedRepository]:
        """Fetch every repository of ``owner`` with derived fields.

        For each surviving repository, commit activity, releases, open issues
        and open pull requests are fetched concurrently. The filtered and
        enriched list is cached as one unit.

        Args:
            owner: Account login
            exclude_archived: Drop archived repositories (default: False)
            exclude_forks: Drop forks (default: True)

        Returns:
            Enriched repositories in upstream order
        """
        cached = self.cache.get(NS_ENRICHED, owner, exclude_archived, exclude_forks)
        if cached is not None:
            return cached

        repos = await self.source.get_repos(owner)
        if exclude_archived:
            repos = [r for r in repos if not r.archived]
        if exclude_forks:
            repos = [r for r in repos if not r.fork]

        logger.info("Enriching %d repositories of %s", len(repos), owner)

        now = self._clock()
        enriched = list(await asyncio.gather(*(self._enrich_one(owner, r, now) for r in repos)))

        self.cache.set(NS_ENRICHED, TTLCategory.REPOS, enriched, owner, exclude_archived, exclude_forks)
        return enriched

    async def _enrich_one(
        self,
        owner: str,
        record: RepositoryRecord,
        now: datetime,
    ) -> EnrichedRepository:
        name = record.name
        activity, releases, issues, pull_requests = await asyncio.gather(
            self._or_default(self.source.get_commit_activity(owner, name), [], f"{name}: commit activity"),
            self._or_default(self.source.get_releases(owner, name), [], f"{name}: releases"),
            self._or_default(self.source.get_issues(owner, name, "open"), [], f"{name}: issues"),
            self._or_default(self.source.get_pull_requests(owner, name, "open"), [], f"{name}: pull requests"),
        )
        return enrich_repository(record, activity, releases, issues, pull_requests, now)

    # --- Single repository ---

    async def fetch_repo_details(self, owner: str, name: str) -> RepoDetails | None:
        """Fetch one repository with README, commits, languages, graph and stack.

        Returns:
            RepoDetails, or None (not cached) when the repository is absent
        """
        cached = self.cache.get(NS_DETAILS, owner, name)
        if cached is not None:
            return cached

        (
            repo, readme, commits, languages, activity, issues, pull_requests, releases,
        ) = await asyncio.gather(
            self.source.get_repo(owner, name),
            self._or_default(self.source.get_readme(owner, name), None, f"{name}: readme"),
            self._or_default(self.source.get_commits(owner, name, RECENT_COMMITS), [], f"{name}: commits"),
            self._or_default(self.source.get_languages(owner, name), {}, f"{name}: languages"),
            self._or_default(self.source.get_commit_activity(owner, name), [], f"{name}: commit activity"),
            self._or_default(self.source.get_issues(owner, name, "open"), [], f"{name}: issues"),
            self._or_default(self.source.get_pull_requests(owner, name, "open"), [], f"{name}: pull requests"),
            self._or_default(self.source.get_releases(owner, name), [], f"{name}: releases"),
        )

        if repo is None:
            logger.info("Repository %s/%s not found", owner, name)
            return None

        stack = await self._or_default(
            detect_project_stack(self.source, owner, name),
            ProjectStack(),
            f"{name}: stack detection",
        )

        now = self._clock()
        details = RepoDetails(
            repo=enrich_repository(
                repo, activity, releases, issues, pull_requests, now,
                stack=stack,
                require_published_release=True,
            ),
            readme=readme,
            commits=commits,
            languages=languages,
            activity_graph=compute_activity_graph(activity, now),
            stack=stack,
            issues=len(issues),
            pull_requests=len(pull_requests),
            releases=releases,
        )

        self.cache.set(NS_DETAILS, TTLCategory.REPO_DETAILS, details, owner, name)
        return details

    async def fetch_repo_tree(
        self,
        owner: str,
        name: str,
        path: str = "",
        recursive: bool = False,
    ) -> RepoTree | None:
        """Git tree at HEAD, optionally restricted to a path prefix.

        The full tree is cached; the prefix filter is applied per call.
        """
        tree: RepoTree | None = self.cache.get(NS_TREE, owner, name, recursive)
        if tree is None:
            tree = await self.source.get_tree(owner, name, "HEAD", recursive)
            if tree is None:
                return None
            self.cache.set(NS_TREE, TTLCategory.TREE, tree, owner, name, recursive)
        return tree.filter_prefix(path)

    async def fetch_file_content(self, owner: str, name: str, path: str) -> str | None:
        """Raw file content, or None (not cached) when unavailable."""
        content = self.cache.get(NS_FILE, owner, name, path)
        if content is None:
            content = await self.source.get_file_content(owner, name, path)
            if content is None:
                return None
            self.cache.set(NS_FILE, TTLCategory.FILE_CONTENT, content, owner, name, path)
        return content

    async def fetch_code_frequency(self, owner: str, name: str) -> list[CodeFrequencySample]:
        """Weekly additions/deletions.

        An empty answer is not cached: it may mean GitHub was still
        computing the statistics.
        """
        cached = self.cache.get(NS_CODE_FREQUENCY, owner, name)
        if cached is not None:
            return cached
        samples = await self.source.get_code_frequency(owner, name)
        if samples:
            self.cache.set(NS_CODE_FREQUENCY, TTLCategory.CODE_FREQUENCY, samples, owner, name)
        return samples

    # --- Portfolio ---

    async def portfolio_metrics(self, owner: str) -> PortfolioMetrics:
        """Portfolio-level summary across repositories.

        Always computed from the enriched list with archived repositories
        and forks excluded, so numbers are comparable across calls.
        ``total_commits`` is estimated as velocity x 12 per repository.
        """
        repos = await self.fetch_all_repos_enriched(owner, exclude_archived=True, exclude_forks=True)

        # most_common keeps first-encountered order among equal counts
        languages = Counter(r.language for r in repos if r.language)
        domains = dict.fromkeys(topic for r in repos for topic in r.topics)

        return PortfolioMetrics(
            total_repos=len(repos),
            active_projects=sum(1 for r in repos if r.activity_status is ActivityStatus.ACTIVE),
            total_stars=sum(r.stargazers_count for r in repos),
            total_commits=sum(r.commit_velocity * MONTHS_PER_YEAR for r in repos),
            primary_languages=[
                LanguageCount(lang=lang, count=count)
                for lang, count in languages.most_common(TOP_LANGUAGES)
            ],
            domains=list(domains),
            last_updated=self._clock(),
        )
