"""Assembly of EnrichedRepository from a record and its auxiliary data."""

from collections.abc import Sequence
from datetime import datetime

from repointel.enrichment.activity import (
    classify_activity_status,
    compute_commit_velocity,
    days_since_last_update,
)
from repointel.models import (
    CommitActivitySample,
    EnrichedRepository,
    Issue,
    ProjectStack,
    Release,
    ReleaseInfo,
    RepoMetrics,
    RepositoryRecord,
)


def latest_release_info(
    releases: Sequence[Release],
    require_published: bool = False,
) -> ReleaseInfo | None:
    """Summarize the newest release.

    Args:
        releases: Releases, newest first
        require_published: If True, a latest release without a publish
            date yields None; otherwise its creation date stands in.
    """
    if not releases:
        return None
    latest = releases[0]
    if require_published:
        if latest.published_at is None:
            return None
        return ReleaseInfo(latest_version=latest.tag_name, release_date=latest.published_at)
    return ReleaseInfo(
        latest_version=latest.tag_name,
        release_date=latest.published_at or latest.created_at,
    )


def enrich_repository(
    record: RepositoryRecord,
    activity: Sequence[CommitActivitySample],
    releases: Sequence[Release],
    issues: Sequence[Issue],
    pull_requests: Sequence[Issue],
    now: datetime,
    stack: ProjectStack | None = None,
    require_published_release: bool = False,
) -> EnrichedRepository:
    """Compute every derived field in one pass.

    The result depends only on the arguments; calling again with the same
    inputs yields an equal model.
    """
    days = days_since_last_update(record, now)
    return EnrichedRepository(
        **record.model_dump(include=set(RepositoryRecord.model_fields)),
        activity_status=classify_activity_status(days, record.archived),
        days_since_last_update=days,
        commit_velocity=compute_commit_velocity(activity),
        stack=stack,
        release_info=latest_release_info(releases, require_published_release),
        metrics=RepoMetrics(
            open_issues=len(issues),
            open_prs=len(pull_requests),
            total_releases=len(releases),
        ),
    )
