"""HTTP API client for the LUNA workflow API.

Thin async wrapper over httpx that applies a bounded timeout to every call,
logs requests, tracks basic counters and maps failures onto the service
exception hierarchy. Requests are never retried: a single failure fails the
calling operation.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from luna_relay.bot.services.base import APIClientProtocol
from luna_relay.bot.services.exceptions import APIError
from luna_relay.bot.services.exceptions import NetworkError

logger = logging.getLogger(__name__)


class APIClient(APIClientProtocol):
    """HTTP client for the LUNA API.

    Features:
    - Lazy connection pool creation
    - Per-request timeout management
    - Request/response logging
    - Error mapping to APIError / NetworkError
    """

    def __init__(
        self,
        base_url: str,
        default_timeout: float = 30.0,
        max_connections: int = 100,
        max_keepalive_connections: int = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """Initialize API client.

        Args:
            base_url: Base URL for API endpoints
            default_timeout: Default request timeout in seconds
            max_connections: Maximum number of connections
            max_keepalive_connections: Maximum keepalive connections
            transport: Optional httpx transport (used by tests)
        """
        self._base_url = base_url.rstrip('/')
        self._default_timeout = default_timeout
        self._transport = transport

        # Request tracking for monitoring
        self._request_count = 0
        self._error_count = 0
        self._total_response_time = 0.0

        self._client: Optional[httpx.AsyncClient] = None
        self._limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections
        )

        self._logger = logging.getLogger(f"{__name__}.APIClient")

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> APIClient:
        """Async context manager entry."""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def _ensure_client(self) -> None:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "User-Agent": "LunaRelay-Bot/1.0",
                    "Accept": "application/json",
                    "Content-Type": "application/json"
                },
                limits=self._limits,
                timeout=httpx.Timeout(self._default_timeout),
                transport=self._transport,
                follow_redirects=True
            )

    async def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> httpx.Response:
        """Execute GET request.

        Args:
            path: API endpoint path
            params: Query parameters
            headers: Additional headers
            timeout: Request timeout in seconds

        Returns:
            HTTP response object

        Raises:
            APIError: On API communication failures
        """
        return await self._request(
            "GET",
            path,
            params=params,
            headers=headers,
            timeout=timeout
        )

    async def post(
        self,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> httpx.Response:
        """Execute POST request.

        Args:
            path: API endpoint path
            json_data: JSON request body
            params: Query parameters
            headers: Additional headers
            timeout: Request timeout in seconds

        Returns:
            HTTP response object

        Raises:
            APIError: On API communication failures
        """
        return await self._request(
            "POST",
            path,
            json_data=json_data,
            params=params,
            headers=headers,
            timeout=timeout
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> httpx.Response:
        """Execute a single HTTP request.

        Raises:
            NetworkError: On timeouts and transport failures
            APIError: On HTTP error status codes
        """
        await self._ensure_client()

        url = f"{self._base_url}{path}" if path.startswith('/') else f"{self._base_url}/{path}"
        request_timeout = timeout or self._default_timeout

        start_time = time.time()
        self._request_count += 1

        self._logger.debug(
            f"API request: {method} {url}",
            extra={
                "method": method,
                "url": url,
                "params": params,
                "has_json": json_data is not None
            }
        )

        try:
            response = await self._client.request(
                method=method,
                url=url,
                json=json_data,
                params=params,
                headers=headers or {},
                timeout=request_timeout
            )
        except httpx.TimeoutException as e:
            self._error_count += 1
            raise NetworkError(
                f"Request timeout after {request_timeout}s",
                context={"method": method, "url": url, "timeout": request_timeout}
            ) from e
        except httpx.HTTPError as e:
            self._error_count += 1
            raise NetworkError(
                f"Connection failed: {e}",
                context={"method": method, "url": url}
            ) from e

        response_time = (time.time() - start_time) * 1000
        self._total_response_time += response_time

        self._logger.debug(
            f"API response: {response.status_code} in {response_time:.1f}ms",
            extra={
                "method": method,
                "url": url,
                "status_code": response.status_code,
                "response_time_ms": response_time
            }
        )

        if not response.is_success:
            self._error_count += 1
            self._raise_for_status(response, method, url)

        return response

    def _raise_for_status(self, response: httpx.Response, method: str, url: str) -> None:
        """Raise an APIError describing a non-success response.

        Raises:
            APIError: Always
        """
        status_code = response.status_code
        reason = response.reason_phrase or f"HTTP {status_code}"

        if 400 <= status_code < 500:
            error_code = "CLIENT_ERROR"
        elif 500 <= status_code < 600:
            error_code = "SERVER_ERROR"
        else:
            error_code = "UNKNOWN_ERROR"

        raise APIError(
            reason,
            status_code=status_code,
            response_body=response.text,
            error_code=error_code,
            context={"method": method, "url": url}
        )

    @property
    def stats(self) -> Dict[str, Any]:
        """Request counters for logging and diagnostics."""
        avg_response_time = 0.0
        if self._request_count > 0:
            avg_response_time = self._total_response_time / self._request_count
        return {
            "total_requests": self._request_count,
            "total_errors": self._error_count,
            "avg_response_time_ms": avg_response_time,
            "base_url": self._base_url
        }

    async def close(self) -> None:
        """Close the API client and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

        self._logger.info(
            "API client closed",
            extra={
                "total_requests": self._request_count,
                "total_errors": self._error_count,
                "error_rate": self._error_count / max(self._request_count, 1)
            }
        )
