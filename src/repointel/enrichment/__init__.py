"""Enrichment pipeline for repointel.

Modules:
    - activity: status classification, commit velocity, activity graph
    - stack: technology stack detection from manifests
    - enrich: EnrichedRepository assembly
"""

from repointel.enrichment.activity import (
    classify_activity_status,
    compute_activity_graph,
    compute_commit_metrics,
    compute_commit_velocity,
    days_since,
    days_since_last_update,
)
from repointel.enrichment.enrich import enrich_repository, latest_release_info
from repointel.enrichment.stack import (
    STACK_PATTERNS,
    StackPattern,
    detect_project_stack,
    match_stack_tags,
    stack_from_manifests,
)

__all__ = [
    "classify_activity_status",
    "compute_activity_graph",
    "compute_commit_metrics",
    "compute_commit_velocity",
    "days_since",
    "days_since_last_update",
    "enrich_repository",
    "latest_release_info",
    "STACK_PATTERNS",
    "StackPattern",
    "detect_project_stack",
    "match_stack_tags",
    "stack_from_manifests",
]
