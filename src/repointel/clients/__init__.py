"""API client layer for repointel.

Async HTTP clients for fetching repository metadata from:
- GitHub REST API: repositories, commits, statistics, trees, issues, releases
"""

from repointel.clients.base import BaseAsyncClient, APIProviderError
from repointel.clients.github import GitHubClient
from repointel.clients.source import RepositorySource

__all__ = [
    "BaseAsyncClient",
    "APIProviderError",
    "GitHubClient",
    "RepositorySource",
]
