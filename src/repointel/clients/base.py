"""Base async HTTP client with connection pooling.

All API clients inherit from this base to ensure consistent behavior:
- Async/await for non-blocking I/O
- Connection pooling for performance
- Bounded number of in-flight requests
- A single exception type for every transport or status failure

The base client never retries. Retry policy belongs to the concrete client,
which knows which upstream states are transient.

Usage:
    class MyAPIClient(BaseAsyncClient):
        def __init__(self, token: str):
            super().__init__(
                base_url="https://api.example.com",
                headers={"Authorization": f"Bearer {token}"},
            )

        async def get_data(self, key: str) -> dict:
            response = await self.get(f"/data/{key}")
            return response.json()
"""

import asyncio
import logging
from typing import Any

import httpx


logger = logging.getLogger(__name__)


class APIProviderError(Exception):
    """Base exception for API provider errors.

    ``status_code`` is None for transport failures (DNS, connection reset,
    timeout) and the HTTP status otherwise.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class BaseAsyncClient:
    """Base async HTTP client with connection pooling.

    Args:
        base_url: Base URL for all API requests
        headers: Default headers for all requests
        timeout: Request timeout in seconds (default: 30)
        max_concurrency: Maximum in-flight requests (default: 10)
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        max_concurrency: int = 10,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BaseAsyncClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            follow_redirects=True,
            limits=httpx.Limits(
                max_keepalive_connections=5,
                max_connections=self.max_concurrency,
            ),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make one HTTP request.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path (relative to base_url)
            params: Query parameters
            headers: Per-request headers merged over the defaults

        Returns:
            The response, for any 2xx status (redirects are followed)

        Raises:
            APIProviderError: On transport failure or any non-2xx status
            RuntimeError: If used outside ``async with``
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async with context manager.")

        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"

        logger.debug("%s %s%s params=%s", method, self.base_url, endpoint, params)

        async with self._semaphore:
            try:
                response = await self._client.request(
                    method=method,
                    url=endpoint,
                    params=params,
                    headers=headers,
                )
            except httpx.HTTPError as e:
                raise APIProviderError(f"Transport failure for {endpoint}: {e}") from e

        logger.debug("Response: %d for %s", response.status_code, endpoint)

        if not response.is_success:
            raise APIProviderError(
                message=f"API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                response_body=response.text[:500],
            )

        return response

    async def get(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Convenience method for GET requests."""
        return await self._request("GET", endpoint, params=params, headers=headers)

    async def get_json(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """GET and decode the JSON body.

        Raises:
            APIProviderError: Also when the body is not valid JSON
        """
        response = await self.get(endpoint, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise APIProviderError(
                message=f"Invalid JSON response: {e}",
                status_code=response.status_code,
                response_body=response.text[:500],
            ) from e
