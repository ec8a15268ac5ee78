"""Technology stack detection from dependency manifests.

Reads ``package.json`` (runtime + dev dependency names) and
``requirements.txt`` (lower-cased raw text) and matches them against an
ordered pattern table. Every match appends the pattern's tag to its
category once; tag order therefore follows table order, and the result is
reproducible.

A manifest that fails to parse contributes no tags; detection carries on
with the other one.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass

from repointel.clients.source import RepositorySource
from repointel.models import STACK_CATEGORIES, ProjectStack

logger = logging.getLogger(__name__)

PACKAGE_JSON = "package.json"
REQUIREMENTS_TXT = "requirements.txt"


@dataclass(frozen=True)
class StackPattern:
    """One row of the detection table."""

    tag: str
    category: str
    matcher: re.Pattern

    def __post_init__(self) -> None:
        if self.category not in STACK_CATEGORIES:
            raise ValueError(f"Unknown stack category '{self.category}' for tag '{self.tag}'")

    def matches(self, text: str) -> bool:
        return self.matcher.search(text) is not None


def _p(tag: str, category: str, pattern: str) -> StackPattern:
    return StackPattern(tag, category, re.compile(pattern, re.IGNORECASE))


# Order matters: it is the order tags appear in each category.
STACK_PATTERNS: tuple[StackPattern, ...] = (
    # Frameworks
    _p("next", "frameworks", r"next"),
    _p("react", "frameworks", r"react"),
    _p("vue", "frameworks", r"vue"),
    _p("svelte", "frameworks", r"svelte"),
    _p("angular", "frameworks", r"angular"),
    _p("express", "frameworks", r"express"),
    _p("django", "frameworks", r"django"),
    _p("flask", "frameworks", r"flask"),
    _p("spring", "frameworks", r"spring"),
    _p("fastapi", "frameworks", r"fastapi"),
    # Databases
    _p("postgres", "databases", r"postgres|pg"),
    _p("mongodb", "databases", r"mongodb|mongoose"),
    _p("mysql", "databases", r"mysql"),
    _p("redis", "databases", r"redis"),
    _p("cassandra", "databases", r"cassandra"),
    _p("dynamodb", "databases", r"dynamodb"),
    # Auth
    _p("auth0", "auth", r"auth0"),
    _p("firebase", "auth", r"firebase"),
    _p("cognito", "auth", r"cognito"),
    _p("oauth", "auth", r"oauth"),
    _p("jwt", "auth", r"jwt|jsonwebtoken"),
    # Infrastructure
    _p("docker", "infra", r"docker"),
    _p("kubernetes", "infra", r"kubernetes|k8s"),
    _p("aws", "infra", r"aws|amazon"),
    _p("azure", "infra", r"azure"),
    _p("gcp", "infra", r"gcp|google-cloud"),
    _p("terraform", "infra", r"terraform"),
    # Testing
    _p("jest", "testing", r"jest"),
    _p("vitest", "testing", r"vitest"),
    _p("mocha", "testing", r"mocha"),
    _p("pytest", "testing", r"pytest"),
    _p("rspec", "testing", r"rspec"),
)


def match_stack_tags(
    text: str,
    buckets: dict[str, list[str]],
    patterns: tuple[StackPattern, ...] = STACK_PATTERNS,
) -> dict[str, list[str]]:
    """Append every matching tag to its category (idempotent).

    Args:
        text: Search string built from a manifest
        buckets: Category -> tags, updated in place
        patterns: Detection table (default: STACK_PATTERNS)

    Returns:
        The same ``buckets`` mapping
    """
    for pattern in patterns:
        if pattern.matches(text):
            tags = buckets.setdefault(pattern.category, [])
            if pattern.tag not in tags:
                tags.append(pattern.tag)
    return buckets


def package_json_search_text(raw: str) -> str:
    """Join runtime and dev dependency names of a package.json.

    Raises:
        ValueError: If the manifest is not valid JSON or not shaped like
            a package.json
    """
    pkg = json.loads(raw)
    if not isinstance(pkg, dict):
        raise ValueError("package.json is not a JSON object")
    dependencies: dict = {}
    for section in ("dependencies", "devDependencies"):
        declared = pkg.get(section) or {}
        if not isinstance(declared, dict):
            raise ValueError(f"package.json '{section}' is not an object")
        dependencies.update(declared)
    return " ".join(dependencies)


def stack_from_manifests(
    package_json: str | None,
    requirements: str | None,
    repo: str = "",
) -> ProjectStack:
    """Detect the stack from already-fetched manifest contents.

    Args:
        package_json: Raw package.json, or None when absent
        requirements: Raw requirements.txt, or None when absent
        repo: Repository name (for log messages)
    """
    buckets: dict[str, list[str]] = {category: [] for category in STACK_CATEGORIES}

    if package_json:
        try:
            match_stack_tags(package_json_search_text(package_json), buckets)
        except ValueError as e:
            logger.error("Failed to parse %s for %s: %s", PACKAGE_JSON, repo, e)

    if requirements:
        match_stack_tags(requirements.lower(), buckets)

    return ProjectStack(**buckets)


async def detect_project_stack(source: RepositorySource, owner: str, repo: str) -> ProjectStack:
    """Fetch both manifests concurrently and detect the stack."""
    package_json, requirements = await asyncio.gather(
        source.get_file_content(owner, repo, PACKAGE_JSON),
        source.get_file_content(owner, repo, REQUIREMENTS_TXT),
    )
    return stack_from_manifests(package_json, requirements, repo=repo)
