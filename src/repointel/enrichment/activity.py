"""Commit activity features: status, velocity and activity graph.

These features summarize how alive a repository is:
- Activity status: recency bucket from days since the last push
- Commit velocity: commits/month estimated from the trailing ~90 days
- Activity graph: trailing 26 weeks plus aggregate commit metrics

All functions are deterministic given their inputs; "now" is always passed
in explicitly.
"""

import math
from collections.abc import Sequence
from datetime import datetime, timezone

import pandas as pd

from repointel.models import (
    ActivityGraph,
    ActivityStatus,
    ActivityWeek,
    CommitActivitySample,
    CommitMetrics,
    RepositoryRecord,
)

ACTIVE_DAYS = 30
STABLE_DAYS = 90

VELOCITY_WEEKS = 13  # ~90 days
GRAPH_WEEKS = 26

_SECONDS_PER_DAY = 24 * 60 * 60


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives.

    Python's round() uses banker's rounding (round(2.5) == 2); metric
    counts here round 2.5 up to 3.
    """
    return int(math.floor(value + 0.5))


def _as_utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def days_since(ts: datetime, now: datetime) -> float:
    """Fractional days elapsed between ``ts`` and ``now``."""
    return (_as_utc(now) - _as_utc(ts)).total_seconds() / _SECONDS_PER_DAY


def days_since_last_update(record: RepositoryRecord, now: datetime) -> float:
    """Days since the last push (falls back to updated_at, then created_at).

    A record with no timestamp at all counts as updated just now.
    """
    last = record.pushed_at or record.updated_at or record.created_at
    if last is None:
        return 0.0
    return days_since(last, now)


def classify_activity_status(days_since_update: float, archived: bool) -> ActivityStatus:
    """Bucket a repository by recency.

    Rules (first match wins):
        archived             -> ARCHIVED
        days < 30            -> ACTIVE
        days < 90            -> STABLE
        otherwise            -> DORMANT

    Boundaries are strict: exactly 30 days is STABLE, exactly 90 is DORMANT.
    """
    if archived:
        return ActivityStatus.ARCHIVED
    if days_since_update < ACTIVE_DAYS:
        return ActivityStatus.ACTIVE
    if days_since_update < STABLE_DAYS:
        return ActivityStatus.STABLE
    return ActivityStatus.DORMANT


def compute_commit_velocity(samples: Sequence[CommitActivitySample]) -> int:
    """Estimate commits per month from the trailing 13 weekly totals.

    Formula:
        velocity = round(sum(last 13 weekly totals) / 13 * 30)

    With fewer than 13 samples the available ones are summed and the
    divisor stays 13 (no padding, no rescaling).

    Example:
        >>> samples = [CommitActivitySample(week=i, total=10) for i in range(13)]
        >>> compute_commit_velocity(samples)
        300
    """
    recent = sum(sample.total for sample in samples[-VELOCITY_WEEKS:])
    return round_half_up(recent / VELOCITY_WEEKS * 30)


def _week_start(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).date().isoformat()


def _daily_series(samples: Sequence[CommitActivitySample], now: datetime) -> pd.Series:
    """Flatten weekly breakdowns into one count per calendar day.

    The series runs without gaps from the first sampled day to the day of
    ``now``: days missing from the samples count as zero, days after
    ``now`` are dropped.
    """
    stamps = [s.week + i * _SECONDS_PER_DAY for s in samples for i in range(len(s.days))]
    counts = [count for s in samples for count in s.days]
    index = pd.to_datetime(stamps, unit="s", utc=True).normalize()
    daily = pd.Series(counts, index=index, dtype="int64").groupby(level=0).sum()

    today = pd.Timestamp(_as_utc(now)).normalize()
    start = min(daily.index.min(), today)
    return daily.reindex(pd.date_range(start, today, freq="D"), fill_value=0)


def _longest_streak(active: pd.Series) -> int:
    if not active.any():
        return 0
    # Each inactive day opens a new group; summing booleans per group
    # yields the length of the active run inside it.
    runs = active.groupby((~active).cumsum()).sum()
    return int(runs.max())


def _current_streak(active: pd.Series) -> int:
    flags = active.tolist()
    # Today is not over yet; a zero today does not break the streak.
    if flags and not flags[-1]:
        flags.pop()
    streak = 0
    for flag in reversed(flags):
        if not flag:
            break
        streak += 1
    return streak


def _most_active_day(samples: Sequence[CommitActivitySample]) -> int:
    by_weekday = pd.DataFrame([s.days for s in samples]).sum(axis=0)
    if by_weekday.empty or by_weekday.max() <= 0:
        return 0
    return int(by_weekday.idxmax())


def compute_commit_metrics(
    samples: Sequence[CommitActivitySample],
    now: datetime,
) -> CommitMetrics:
    """Aggregate commit metrics over every available weekly sample.

    - total_commits: sum of all weekly totals
    - commits_last_30/90_days: totals of weeks starting after now - 30/90 days
    - average_commits_per_month: round(commits_last_90_days / 3)
    - longest/current streak: consecutive days with commits (days after
      ``now`` ignored)
    - most_active_day: weekday index with the highest total (0 = Sunday)
    """
    if not samples:
        return CommitMetrics()

    frame = pd.DataFrame({
        "week": [s.week for s in samples],
        "total": [s.total for s in samples],
    })
    starts = pd.to_datetime(frame["week"], unit="s", utc=True)
    now_ts = pd.Timestamp(_as_utc(now))

    last_30 = int(frame.loc[starts > now_ts - pd.Timedelta(days=30), "total"].sum())
    last_90 = int(frame.loc[starts > now_ts - pd.Timedelta(days=90), "total"].sum())

    active = _daily_series(samples, now) > 0

    return CommitMetrics(
        total_commits=int(frame["total"].sum()),
        commits_last_30_days=last_30,
        commits_last_90_days=last_90,
        average_commits_per_month=round_half_up(last_90 / 3),
        longest_streak=_longest_streak(active),
        current_streak=_current_streak(active),
        most_active_day=_most_active_day(samples),
    )


def compute_activity_graph(
    samples: Sequence[CommitActivitySample] | None,
    now: datetime,
) -> ActivityGraph:
    """Build the trailing 26-week activity graph.

    Args:
        samples: Weekly commit activity, oldest first (None treated as empty)
        now: Reference time for the 30/90-day windows and streaks

    Returns:
        ActivityGraph whose weeks are re-indexed from 0 and whose metrics
        cover the full sample sequence, not just the 26-week window.
    """
    samples = list(samples or [])
    weeks = [
        ActivityWeek(
            week=index,
            start_date=_week_start(sample.week),
            total_commits=sample.total,
            day_breakdown=list(sample.days),
        )
        for index, sample in enumerate(samples[-GRAPH_WEEKS:])
    ]
    return ActivityGraph(weeks=weeks, metrics=compute_commit_metrics(samples, now))
