"""Tests for Aggregator — cache-backed orchestration.

The remote source is a MagicMock with AsyncMock methods, so every test
controls exactly what "GitHub" returns and can count the calls made.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from repointel.cache import TTLCache, TTLCategory
from repointel.enrichment import enrich_repository
from repointel.models import (
    ActivityStatus,
    CodeFrequencySample,
    CommitActivitySample,
    CommitDetail,
    CommitInfo,
    Issue,
    Release,
    RepositoryRecord,
    RepoTree,
    TreeNode,
)
from repointel.pipeline.aggregator import NS_ENRICHED, RECENT_COMMITS, Aggregator

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


# --- Fixtures ---


def make_record(
    repo_id: int,
    name: str,
    *,
    fork: bool = False,
    archived: bool = False,
    language: str | None = "Python",
    topics: list[str] | None = None,
    stars: int = 0,
    days_ago: float = 5,
) -> RepositoryRecord:
    return RepositoryRecord(
        id=repo_id,
        name=name,
        full_name=f"octocat/{name}",
        fork=fork,
        archived=archived,
        language=language,
        topics=topics or [],
        stargazers_count=stars,
        pushed_at=NOW - timedelta(days=days_ago),
    )


def make_source(repos: list[RepositoryRecord] | None = None) -> MagicMock:
    """Source double answering every call with empty data."""
    source = MagicMock()
    source.get_repos = AsyncMock(return_value=repos or [])
    source.get_repo = AsyncMock(return_value=None)
    source.get_readme = AsyncMock(return_value=None)
    source.get_commits = AsyncMock(return_value=[])
    source.get_languages = AsyncMock(return_value={})
    source.get_commit_activity = AsyncMock(return_value=[])
    source.get_code_frequency = AsyncMock(return_value=[])
    source.get_tree = AsyncMock(return_value=None)
    source.get_file_content = AsyncMock(return_value=None)
    source.get_issues = AsyncMock(return_value=[])
    source.get_pull_requests = AsyncMock(return_value=[])
    source.get_releases = AsyncMock(return_value=[])
    return source


@pytest.fixture
def cache() -> TTLCache:
    return TTLCache()


def make_aggregator(source: MagicMock, cache: TTLCache) -> Aggregator:
    return Aggregator(source=source, cache=cache, clock=lambda: NOW)


REPOS = [
    make_record(1, "app"),
    make_record(2, "forked", fork=True),
    make_record(3, "old", archived=True),
]


class TestFetchAllReposEnriched:
    """Test the enriched repository list."""

    @pytest.mark.asyncio
    async def test_default_excludes_forks_only(self, cache) -> None:
        source = make_source(REPOS)
        agg = make_aggregator(source, cache)

        repos = await agg.fetch_all_repos_enriched("octocat")

        assert [r.name for r in repos] == ["app", "old"]
        assert repos[1].activity_status is ActivityStatus.ARCHIVED
        # Auxiliary calls only for surviving repositories
        assert source.get_commit_activity.await_count == 2

    @pytest.mark.asyncio
    async def test_exclude_both(self, cache) -> None:
        agg = make_aggregator(make_source(REPOS), cache)
        repos = await agg.fetch_all_repos_enriched("octocat", exclude_archived=True, exclude_forks=True)
        assert [r.name for r in repos] == ["app"]

    @pytest.mark.asyncio
    async def test_include_everything(self, cache) -> None:
        agg = make_aggregator(make_source(REPOS), cache)
        repos = await agg.fetch_all_repos_enriched("octocat", exclude_archived=False, exclude_forks=False)
        assert [r.name for r in repos] == ["app", "forked", "old"]

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, cache) -> None:
        source = make_source(REPOS)
        agg = make_aggregator(source, cache)

        first = await agg.fetch_all_repos_enriched("octocat")
        second = await agg.fetch_all_repos_enriched("octocat")

        assert first == second
        assert source.get_repos.await_count == 1

    @pytest.mark.asyncio
    async def test_flags_are_part_of_the_key(self, cache) -> None:
        source = make_source(REPOS)
        agg = make_aggregator(source, cache)

        await agg.fetch_all_repos_enriched("octocat", exclude_forks=True)
        await agg.fetch_all_repos_enriched("octocat", exclude_forks=False)

        assert source.get_repos.await_count == 2

    @pytest.mark.asyncio
    async def test_auxiliary_data_flows_into_fields(self, cache) -> None:
        source = make_source([make_record(1, "app")])
        source.get_commit_activity.return_value = [CommitActivitySample(week=i, total=10) for i in range(13)]
        source.get_releases.return_value = [
            Release(id=1, tag_name="v1.0.0", created_at=NOW - timedelta(days=3)),
        ]
        source.get_issues.return_value = [Issue(number=1), Issue(number=2)]
        source.get_pull_requests.return_value = [Issue(number=3)]
        agg = make_aggregator(source, cache)

        [repo] = await agg.fetch_all_repos_enriched("octocat")

        assert repo.commit_velocity == 300
        assert repo.release_info.latest_version == "v1.0.0"
        # Listing accepts the creation date of an unpublished release
        assert repo.release_info.release_date == NOW - timedelta(days=3)
        assert repo.metrics.open_issues == 2
        assert repo.metrics.open_prs == 1
        assert repo.metrics.total_releases == 1
        source.get_issues.assert_awaited_once_with("octocat", "app", "open")

    @pytest.mark.asyncio
    async def test_partial_failure_uses_neutral_defaults(self, cache, caplog) -> None:
        source = make_source([make_record(1, "app"), make_record(2, "lib")])

        async def releases(owner, name):
            if name == "lib":
                raise RuntimeError("boom")
            return [Release(id=1, tag_name="v1")]

        source.get_releases.side_effect = releases
        agg = make_aggregator(source, cache)

        repos = await agg.fetch_all_repos_enriched("octocat")

        assert [r.name for r in repos] == ["app", "lib"]
        assert repos[0].metrics.total_releases == 1
        assert repos[1].release_info is None
        assert repos[1].metrics.total_releases == 0
        assert "lib: releases" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_list_is_cached(self, cache) -> None:
        source = make_source([])
        agg = make_aggregator(source, cache)

        assert await agg.fetch_all_repos_enriched("nobody") == []
        assert await agg.fetch_all_repos_enriched("nobody") == []
        assert source.get_repos.await_count == 1


class TestListRepositories:
    """Test the lightweight listing."""

    @pytest.mark.asyncio
    async def test_forks_dropped_by_default(self, cache) -> None:
        agg = make_aggregator(make_source(REPOS), cache)
        items = await agg.list_repositories("octocat")
        assert [i.name for i in items] == ["app", "old"]

    @pytest.mark.asyncio
    async def test_include_forks_shares_cache(self, cache) -> None:
        source = make_source(REPOS)
        agg = make_aggregator(source, cache)

        await agg.list_repositories("octocat")
        items = await agg.list_repositories("octocat", include_forks=True)

        assert [i.name for i in items] == ["app", "forked", "old"]
        assert source.get_repos.await_count == 1
        source.get_commit_activity.assert_not_awaited()


class TestFetchRepoDetails:
    """Test the single-repository bundle."""

    @pytest.mark.asyncio
    async def test_not_found_returns_none_uncached(self, cache) -> None:
        source = make_source()
        agg = make_aggregator(source, cache)

        assert await agg.fetch_repo_details("octocat", "missing") is None
        assert await agg.fetch_repo_details("octocat", "missing") is None

        assert source.get_repo.await_count == 2
        assert len(cache) == 0
        # No stack detection for a missing repository
        source.get_file_content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_happy_path(self, cache) -> None:
        source = make_source()
        source.get_repo.return_value = make_record(1, "app")
        source.get_readme.return_value = "# app"
        source.get_commits.return_value = [
            CommitInfo(sha="abc", commit=CommitDetail(message="init")),
        ]
        source.get_languages.return_value = {"Python": 900, "Shell": 100}
        source.get_commit_activity.return_value = [
            CommitActivitySample(week=int((NOW - timedelta(days=1)).timestamp()), total=3),
        ]
        source.get_issues.return_value = [Issue(number=1)]
        source.get_releases.return_value = [
            Release(id=1, tag_name="v2", published_at=NOW - timedelta(days=1)),
        ]
        source.get_file_content.side_effect = lambda owner, name, path: (
            '{"dependencies": {"react": "^18"}}' if path == "package.json" else None
        )
        agg = make_aggregator(source, cache)

        details = await agg.fetch_repo_details("octocat", "app")

        assert details.repo.name == "app"
        assert details.readme == "# app"
        assert details.commits[0].sha == "abc"
        assert details.languages == {"Python": 900, "Shell": 100}
        assert len(details.activity_graph.weeks) == 1
        assert details.activity_graph.metrics.total_commits == 3
        assert details.stack.frameworks == ["react"]
        assert details.repo.stack == details.stack
        assert details.issues == 1
        assert details.pull_requests == 0
        assert details.releases[0].tag_name == "v2"
        assert details.repo.release_info.latest_version == "v2"
        source.get_commits.assert_awaited_once_with("octocat", "app", RECENT_COMMITS)

    @pytest.mark.asyncio
    async def test_unpublished_release_has_no_release_info(self, cache) -> None:
        source = make_source()
        source.get_repo.return_value = make_record(1, "app")
        source.get_releases.return_value = [
            Release(id=1, tag_name="v2", created_at=NOW - timedelta(days=1)),
        ]
        agg = make_aggregator(source, cache)

        details = await agg.fetch_repo_details("octocat", "app")

        assert details.repo.release_info is None
        assert details.releases[0].tag_name == "v2"

    @pytest.mark.asyncio
    async def test_cached(self, cache) -> None:
        source = make_source()
        source.get_repo.return_value = make_record(1, "app")
        agg = make_aggregator(source, cache)

        first = await agg.fetch_repo_details("octocat", "app")
        second = await agg.fetch_repo_details("octocat", "app")

        assert second is first
        assert source.get_repo.await_count == 1

    @pytest.mark.asyncio
    async def test_auxiliary_failures_tolerated(self, cache) -> None:
        source = make_source()
        source.get_repo.return_value = make_record(1, "app")
        source.get_readme.side_effect = RuntimeError("readme down")
        source.get_file_content.side_effect = RuntimeError("contents down")
        agg = make_aggregator(source, cache)

        details = await agg.fetch_repo_details("octocat", "app")

        assert details.readme is None
        assert details.stack.frameworks == []

    @pytest.mark.asyncio
    async def test_concurrent_misses_both_fetch(self, cache) -> None:
        source = make_source()

        async def get_repo(owner, name):
            await asyncio.sleep(0)
            return make_record(1, name)

        source.get_repo.side_effect = get_repo
        agg = make_aggregator(source, cache)

        first, second = await asyncio.gather(
            agg.fetch_repo_details("octocat", "app"),
            agg.fetch_repo_details("octocat", "app"),
        )

        assert first == second
        assert source.get_repo.await_count == 2

    @pytest.mark.asyncio
    async def test_serializes(self, cache) -> None:
        source = make_source()
        source.get_repo.return_value = make_record(1, "app")
        agg = make_aggregator(source, cache)

        data = (await agg.fetch_repo_details("octocat", "app")).to_dict()

        assert data["repo"]["name"] == "app"
        assert data["repo"]["activityStatus"] == "active"
        assert "activityGraph" in data
        assert data["pullRequests"] == 0


class TestTreeAndFiles:
    """Test tree listing and file content."""

    TREE = RepoTree(
        sha="t1",
        tree=[
            TreeNode(path="README.md"),
            TreeNode(path="src", type="tree"),
            TreeNode(path="src/app.py"),
        ],
    )

    @pytest.mark.asyncio
    async def test_tree_prefix_filter_uses_cached_tree(self, cache) -> None:
        source = make_source()
        source.get_tree.return_value = self.TREE
        agg = make_aggregator(source, cache)

        full = await agg.fetch_repo_tree("octocat", "app", recursive=True)
        src = await agg.fetch_repo_tree("octocat", "app", path="src", recursive=True)

        assert [n.path for n in full.tree] == ["README.md", "src", "src/app.py"]
        assert [n.path for n in src.tree] == ["src", "src/app.py"]
        source.get_tree.assert_awaited_once_with("octocat", "app", "HEAD", True)

    @pytest.mark.asyncio
    async def test_tree_failure_not_cached(self, cache) -> None:
        source = make_source()
        agg = make_aggregator(source, cache)

        assert await agg.fetch_repo_tree("octocat", "app") is None
        assert await agg.fetch_repo_tree("octocat", "app") is None
        assert source.get_tree.await_count == 2

    @pytest.mark.asyncio
    async def test_file_content_cached(self, cache) -> None:
        source = make_source()
        source.get_file_content.return_value = "print('hi')"
        agg = make_aggregator(source, cache)

        assert await agg.fetch_file_content("octocat", "app", "main.py") == "print('hi')"
        assert await agg.fetch_file_content("octocat", "app", "main.py") == "print('hi')"
        assert source.get_file_content.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_file_not_cached(self, cache) -> None:
        source = make_source()
        agg = make_aggregator(source, cache)

        assert await agg.fetch_file_content("octocat", "app", "nope.txt") is None
        assert await agg.fetch_file_content("octocat", "app", "nope.txt") is None
        assert source.get_file_content.await_count == 2

    @pytest.mark.asyncio
    async def test_code_frequency(self, cache) -> None:
        source = make_source()
        agg = make_aggregator(source, cache)

        assert await agg.fetch_code_frequency("octocat", "app") == []
        source.get_code_frequency.return_value = [CodeFrequencySample(week=1, additions=5, deletions=-2)]
        first = await agg.fetch_code_frequency("octocat", "app")
        await agg.fetch_code_frequency("octocat", "app")

        assert first[0].additions == 5
        # Empty answer not cached; the non-empty one is
        assert source.get_code_frequency.await_count == 2


class TestPortfolioMetrics:
    """Test the portfolio summary."""

    @pytest.mark.asyncio
    async def test_uses_archived_and_fork_exclusion(self, cache) -> None:
        source = make_source(REPOS)
        agg = make_aggregator(source, cache)

        metrics = await agg.portfolio_metrics("octocat")

        assert metrics.total_repos == 1
        assert cache.get(NS_ENRICHED, "octocat", True, True) is not None

    @pytest.mark.asyncio
    async def test_aggregates_precomputed_list(self, cache) -> None:
        def enriched(record, velocity_weeks):
            activity = [CommitActivitySample(week=i, total=t) for i, t in enumerate(velocity_weeks)]
            return enrich_repository(record, activity, [], [], [], NOW)

        repos = [
            enriched(make_record(1, "a", language="TypeScript", topics=["web", "ai"], stars=10), [13] * 13),
            enriched(make_record(2, "b", language="Python", topics=["ai", "cli"], stars=5, days_ago=45), [13]),
            enriched(make_record(3, "c", language=None, stars=1, days_ago=200), []),
        ]
        assert [r.commit_velocity for r in repos] == [390, 30, 0]
        cache.set(NS_ENRICHED, TTLCategory.REPOS, repos, "octocat", True, True)
        source = make_source()
        agg = make_aggregator(source, cache)

        metrics = await agg.portfolio_metrics("octocat")

        source.get_repos.assert_not_awaited()
        assert metrics.total_repos == 3
        assert metrics.active_projects == 1
        assert metrics.total_stars == 16
        assert metrics.total_commits == (390 + 30) * 12
        assert [(c.lang, c.count) for c in metrics.primary_languages] == [("TypeScript", 1), ("Python", 1)]
        assert metrics.domains == ["web", "ai", "cli"]
        assert metrics.last_updated == NOW

    @pytest.mark.asyncio
    async def test_total_commits_is_velocity_times_twelve(self, cache) -> None:
        """Velocities 10 and 5 estimate (10 + 5) * 12 = 180 commits."""
        repos = [
            enrich_repository(make_record(i, f"r{i}"), [], [], [], [], NOW).model_copy(
                update={"commit_velocity": velocity}
            )
            for i, velocity in enumerate([10, 5])
        ]
        cache.set(NS_ENRICHED, TTLCategory.REPOS, repos, "octocat", True, True)
        agg = make_aggregator(make_source(), cache)

        metrics = await agg.portfolio_metrics("octocat")

        assert metrics.total_commits == 180

    @pytest.mark.asyncio
    async def test_top_five_languages_by_count(self, cache) -> None:
        languages = ["Go", "Rust", "Rust", "C", "Java", "Ruby", "Elixir", "Go", "Rust"]
        repos = [
            enrich_repository(make_record(i, f"r{i}", language=lang), [], [], [], [], NOW)
            for i, lang in enumerate(languages)
        ]
        cache.set(NS_ENRICHED, TTLCategory.REPOS, repos, "octocat", True, True)
        agg = make_aggregator(make_source(), cache)

        metrics = await agg.portfolio_metrics("octocat")

        assert [(c.lang, c.count) for c in metrics.primary_languages] == [
            ("Rust", 3), ("Go", 2), ("C", 1), ("Java", 1), ("Ruby", 1),
        ]

    @pytest.mark.asyncio
    async def test_empty_portfolio(self, cache) -> None:
        agg = make_aggregator(make_source([]), cache)

        metrics = await agg.portfolio_metrics("nobody")

        assert metrics.total_repos == 0
        assert metrics.total_commits == 0
        assert metrics.primary_languages == []
        assert metrics.domains == []

    @pytest.mark.asyncio
    async def test_serializes_camel_case(self, cache) -> None:
        agg = make_aggregator(make_source([make_record(1, "a", stars=3)]), cache)

        data = (await agg.portfolio_metrics("octocat")).to_dict()

        assert data["totalRepos"] == 1
        assert data["totalStars"] == 3
        assert data["primaryLanguages"] == [{"lang": "Python", "count": 1}]
        assert "lastUpdated" in data
