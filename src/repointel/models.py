"""Data model for repointel.

Two families of models live here:

- Upstream records: immutable snapshots of the GitHub REST payloads,
  restricted to the fields the enrichment pipeline consumes. Unknown
  upstream keys are ignored.
- Derived outputs: enriched repositories, activity graphs, detail bundles
  and portfolio metrics. Derived fields serialize as camelCase so the JSON
  matches what the presentation layer reads.

All models are frozen. A derived value is never patched in place; the
enrichment pipeline builds a fresh model on every pass.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ActivityStatus(Enum):
    """Recency classification of a repository."""

    ACTIVE = "active"  # pushed within 30 days
    STABLE = "stable"  # pushed within 90 days
    DORMANT = "dormant"
    ARCHIVED = "archived"


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return self.model_dump(mode="json", by_alias=True)


class _CamelModel(_Model):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )


# --- Upstream records ---


class RepositoryRecord(_Model):
    """Raw repository metadata as returned by GitHub."""

    id: int
    name: str
    full_name: str | None = None
    description: str | None = None
    html_url: str = ""
    homepage: str | None = None
    stargazers_count: int = 0
    watchers_count: int = 0
    forks_count: int = 0
    language: str | None = None
    topics: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None
    archived: bool = False
    fork: bool = False
    size: int = 0
    default_branch: str = "main"

    @field_validator("topics", mode="before")
    @classmethod
    def null_topics(cls, v: Any) -> Any:
        return [] if v is None else v


class CommitAuthor(_Model):
    name: str | None = None
    date: datetime | None = None


class CommitDetail(_Model):
    message: str = ""
    author: CommitAuthor | None = None


class CommitInfo(_Model):
    """One entry of the recent-commits listing."""

    sha: str
    commit: CommitDetail
    html_url: str = ""


class CommitActivitySample(_Model):
    """One week of commit history from /stats/commit_activity.

    Attributes:
        week: Unix timestamp (seconds) of the week start (Sunday, UTC)
        days: Commit counts Sunday..Saturday
        total: Commits in the week
    """

    week: int
    days: list[int] = Field(default_factory=lambda: [0] * 7)
    total: int = 0


class CodeFrequencySample(_Model):
    """One week of additions/deletions from /stats/code_frequency.

    GitHub sends ``[week, additions, deletions]`` triples; the object form
    is accepted too.
    """

    week: int
    additions: int = 0
    deletions: int = 0

    @model_validator(mode="before")
    @classmethod
    def from_triple(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) != 3:
                raise ValueError(f"expected [week, additions, deletions], got {data!r}")
            week, additions, deletions = data
            return {"week": week, "additions": additions, "deletions": deletions}
        return data


class TreeNode(_Model):
    path: str
    mode: str = ""
    type: str = "blob"  # blob | tree | commit
    sha: str = ""
    size: int | None = None
    url: str | None = None


class RepoTree(_Model):
    """A git tree listing (optionally recursive)."""

    sha: str
    url: str | None = None
    tree: list[TreeNode] = Field(default_factory=list)
    truncated: bool = False

    def filter_prefix(self, path: str) -> "RepoTree":
        """Return a copy keeping only nodes whose path starts with ``path``."""
        if not path:
            return self
        return self.model_copy(
            update={"tree": [node for node in self.tree if node.path.startswith(path)]}
        )


class IssueUser(_Model):
    login: str


class Issue(_Model):
    """Issue or pull request summary.

    The issues listing also returns pull requests; those carry a
    ``pull_request`` object and are filtered out by the client.
    """

    number: int
    title: str = ""
    state: str = "open"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    user: IssueUser | None = None
    comments: int = 0
    pull_request: dict[str, Any] | None = None


class Release(_Model):
    id: int
    tag_name: str
    name: str | None = None
    draft: bool = False
    prerelease: bool = False
    created_at: datetime | None = None
    published_at: datetime | None = None
    body: str | None = None
    html_url: str = ""


# --- Derived outputs ---


class ProjectStack(_Model):
    """Technology tags grouped by category.

    Tags are unique per category; order follows the pattern table.
    """

    frameworks: list[str] = Field(default_factory=list)
    databases: list[str] = Field(default_factory=list)
    auth: list[str] = Field(default_factory=list)
    infra: list[str] = Field(default_factory=list)
    testing: list[str] = Field(default_factory=list)
    other: list[str] = Field(default_factory=list)


STACK_CATEGORIES = ("frameworks", "databases", "auth", "infra", "testing", "other")


class ReleaseInfo(_CamelModel):
    latest_version: str
    release_date: datetime | None = None


class RepoMetrics(_CamelModel):
    open_issues: int = 0
    open_prs: int = Field(default=0, serialization_alias="openPRs")
    total_releases: int = 0


class EnrichedRepository(RepositoryRecord):
    """Repository record plus derived intelligence."""

    activity_status: ActivityStatus = Field(serialization_alias="activityStatus")
    days_since_last_update: float = Field(serialization_alias="daysSinceLastUpdate")
    commit_velocity: int = Field(serialization_alias="commitVelocity")
    stack: ProjectStack | None = None
    release_info: ReleaseInfo | None = Field(default=None, serialization_alias="releaseInfo")
    metrics: RepoMetrics | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, dropping unset optional sections."""
        data = super().to_dict()
        for key in ("stack", "releaseInfo", "metrics"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


class RepoListItem(_Model):
    """Lightweight projection used by repository listings."""

    id: int
    name: str
    description: str | None = None
    html_url: str = ""
    stargazers_count: int = 0
    language: str | None = None
    topics: list[str] = Field(default_factory=list)
    updated_at: datetime | None = None
    pushed_at: datetime | None = None
    fork: bool = False
    archived: bool = False

    @classmethod
    def from_record(cls, record: RepositoryRecord) -> "RepoListItem":
        return cls(**record.model_dump(include=set(cls.model_fields)))


class ActivityWeek(_CamelModel):
    week: int
    start_date: str
    total_commits: int
    day_breakdown: list[int]


class CommitMetrics(_CamelModel):
    """Aggregate commit statistics.

    Attributes:
        total_commits: Sum over every available weekly sample
        commits_last_30_days: Weeks starting within the last 30 days
        commits_last_90_days: Weeks starting within the last 90 days
        average_commits_per_month: round(commits_last_90_days / 3)
        longest_streak: Longest run of consecutive days with commits
        current_streak: Run of days with commits ending today (or yesterday)
        most_active_day: Weekday with most commits (0 = Sunday)
    """

    total_commits: int = 0
    commits_last_30_days: int = 0
    commits_last_90_days: int = 0
    average_commits_per_month: int = 0
    longest_streak: int = 0
    current_streak: int = 0
    most_active_day: int = 0


class ActivityGraph(_CamelModel):
    weeks: list[ActivityWeek] = Field(default_factory=list)
    metrics: CommitMetrics = Field(default_factory=CommitMetrics)


class RepoDetails(_CamelModel):
    """Everything the project viewer needs for one repository."""

    repo: EnrichedRepository
    readme: str | None = None
    commits: list[CommitInfo] = Field(default_factory=list)
    languages: dict[str, int] = Field(default_factory=dict)
    activity_graph: ActivityGraph
    stack: ProjectStack
    issues: int = 0
    pull_requests: int = 0
    releases: list[Release] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["repo"] = self.repo.to_dict()
        return data


class LanguageCount(_Model):
    lang: str
    count: int


class PortfolioMetrics(_CamelModel):
    """Cross-repository summary.

    ``total_commits`` is an estimate (velocity x 12 per repository), not a
    historical count.
    """

    total_repos: int
    active_projects: int
    total_stars: int
    total_commits: int
    primary_languages: list[LanguageCount] = Field(default_factory=list)
    domains: list[str] = Field(default_factory=list)
    last_updated: datetime
