"""Capability interface for the remote repository data source.

The aggregator depends on this protocol rather than on ``GitHubClient`` so
tests can substitute deterministic fixtures without network access.
Implementations must be fail-soft: every method returns a safe default
instead of raising.
"""

from typing import Protocol, runtime_checkable

from repointel.models import (
    CodeFrequencySample,
    CommitActivitySample,
    CommitInfo,
    Issue,
    Release,
    RepositoryRecord,
    RepoTree,
)


@runtime_checkable
class RepositorySource(Protocol):
    async def get_repos(self, owner: str) -> list[RepositoryRecord]: ...

    async def get_repo(self, owner: str, repo: str) -> RepositoryRecord | None: ...

    async def get_readme(self, owner: str, repo: str) -> str | None: ...

    async def get_commits(self, owner: str, repo: str, limit: int = 5) -> list[CommitInfo]: ...

    async def get_languages(self, owner: str, repo: str) -> dict[str, int]: ...

    async def get_commit_activity(self, owner: str, repo: str) -> list[CommitActivitySample]: ...

    async def get_code_frequency(self, owner: str, repo: str) -> list[CodeFrequencySample]: ...

    async def get_tree(
        self, owner: str, repo: str, sha: str = "HEAD", recursive: bool = False
    ) -> RepoTree | None: ...

    async def get_file_content(self, owner: str, repo: str, path: str) -> str | None: ...

    async def get_issues(self, owner: str, repo: str, state: str = "open") -> list[Issue]: ...

    async def get_pull_requests(self, owner: str, repo: str, state: str = "open") -> list[Issue]: ...

    async def get_releases(self, owner: str, repo: str) -> list[Release]: ...
