"""Base HTTP client for Content Bridge.

This module provides a base async HTTP client with connection pooling,
rate limiting, status-code classification and request logging.
"""

import asyncio
import time
from typing import Any
from urllib.parse import urljoin

import httpx

from content_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    UnprocessableEntityError,
)
from content_migration.utils.logging import (
    get_logger,
    log_api_request,
    sanitize_payload,
    should_log_payloads,
    truncate_payload,
)

logger = get_logger(__name__)


class BaseAPIClient:
    """Base async HTTP client with rate limiting and error mapping.

    This client provides:
    - Connection pooling
    - Rate limiting
    - Request/response logging
    - Mapping of error responses to typed exceptions
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        verify_ssl: bool = True,
        timeout: int = 30,
        rate_limit: int = 6,
        max_connections: int | None = None,
        max_keepalive_connections: int | None = None,
        log_payloads: bool = False,
        max_payload_size: int = 10000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize base API client.

        Args:
            base_url: Base URL for API requests
            token: Authentication token
            verify_ssl: Whether to verify SSL certificates
            timeout: Request timeout in seconds
            rate_limit: Maximum requests per second (0 disables limiting)
            max_connections: Maximum number of connections in pool (default: 50)
            max_keepalive_connections: Maximum keep-alive connections (default: 20)
            log_payloads: Enable request/response payload logging at DEBUG level
            max_payload_size: Maximum payload size (chars) to log before truncation
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.verify_ssl = verify_ssl

        self.log_payloads = log_payloads
        self.max_payload_size = max_payload_size

        self.rate_limit = rate_limit
        self._rate_limit_lock = asyncio.Lock()
        self._last_request_time: float = 0
        self._min_request_interval = 1.0 / rate_limit if rate_limit > 0 else 0

        if max_connections is None:
            max_connections = 50
        if max_keepalive_connections is None:
            max_keepalive_connections = 20

        self.client = httpx.AsyncClient(
            headers=self._build_headers(),
            timeout=httpx.Timeout(timeout, connect=10.0),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_keepalive_connections,
            ),
            verify=verify_ssl,
            follow_redirects=True,
            transport=transport,
        )

        logger.info(
            "client_initialized",
            base_url=self.base_url,
            rate_limit=rate_limit,
            max_connections=max_connections,
        )

    def _build_headers(self) -> dict[str, str]:
        """Build HTTP headers for requests."""
        return {
            "Authorization": self.token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _build_url(self, endpoint: str) -> str:
        """Build full URL from endpoint."""
        endpoint = endpoint.lstrip("/")
        return urljoin(f"{self.base_url}/", endpoint)

    async def _rate_limit_wait(self) -> None:
        """Implement rate limiting by waiting if necessary."""
        if self._min_request_interval > 0:
            async with self._rate_limit_lock:
                now = time.monotonic()
                time_since_last = now - self._last_request_time

                if time_since_last < self._min_request_interval:
                    await asyncio.sleep(self._min_request_interval - time_since_last)

                self._last_request_time = time.monotonic()

    def _handle_error_response(self, response: httpx.Response, action: str | None = None) -> None:
        """Raise the exception matching an error response.

        Raises:
            AuthenticationError: For 401 responses
            AuthorizationError: For 403 responses
            NotFoundError: For 404 responses
            UnprocessableEntityError: For 422 responses
            RateLimitError: For 429 responses
            ServerError: For 5xx responses
            APIError: For other error responses
        """
        status_code = response.status_code

        try:
            error_data = response.json()
        except ValueError:
            error_data = {"detail": response.text}

        # The API sometimes answers with a bare list of messages
        if isinstance(error_data, list):
            error_message = (
                ", ".join(str(item) for item in error_data) if error_data else "Unknown error"
            )
            error_data = {"detail": error_message, "_raw_list": error_data}
        elif isinstance(error_data, dict):
            error_message = error_data.get("error", error_data.get("detail", "Unknown error"))
        else:
            error_message = str(error_data)
            error_data = {"detail": error_message}

        if status_code == 401:
            raise AuthenticationError(
                "The user is not authorized to access the API",
                status_code=status_code,
                response=error_data,
                action=action,
            )
        elif status_code == 403:
            raise AuthorizationError(
                "Authorization failed", status_code=status_code, response=error_data, action=action
            )
        elif status_code == 404:
            raise NotFoundError(
                "The requested resource was not found",
                status_code=status_code,
                response=error_data,
                action=action,
            )
        elif status_code == 422:
            raise UnprocessableEntityError(
                f"Unprocessable entity: {error_message}",
                status_code=status_code,
                response=error_data,
                action=action,
            )
        elif status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                "Rate limit exceeded",
                status_code=status_code,
                response=error_data,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                action=action,
            )
        elif 500 <= status_code < 600:
            raise ServerError(
                f"Server error: {error_message}",
                status_code=status_code,
                response=error_data,
                action=action,
            )
        else:
            raise APIError(
                f"API error: {error_message}",
                status_code=status_code,
                response=error_data,
                action=action,
            )

    async def send(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        action: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make an HTTP request with rate limiting and error handling.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, etc.)
            endpoint: API endpoint path or absolute URL
            params: Query parameters
            json_data: JSON request body
            action: Operation name attached to raised errors
            **kwargs: Additional arguments passed to httpx

        Returns:
            The successful response

        Raises:
            NetworkError: For network-related errors
            Various APIError subclasses: For API errors
        """
        url = endpoint if endpoint.startswith(("http://", "https://")) else self._build_url(endpoint)

        await self._rate_limit_wait()

        if should_log_payloads(logger, self.log_payloads) and json_data is not None:
            logger.debug(
                "api_request_payload",
                method=method,
                url=url,
                payload=truncate_payload(sanitize_payload(json_data), self.max_payload_size),
                payload_size=len(str(json_data)),
            )

        start_time = time.monotonic()

        try:
            response = await self.client.request(
                method=method, url=url, params=params, json=json_data, **kwargs
            )
        except httpx.TimeoutException as e:
            logger.error("timeout_error", method=method, url=url, error=str(e))
            raise NetworkError(
                f"The API request timed out: {e}", action=action
            ) from e
        except httpx.TransportError as e:
            logger.error("network_error", method=method, url=url, error=str(e))
            raise NetworkError(
                f"No response from server, please check your connection: {e}", action=action
            ) from e

        log_api_request(
            logger,
            method=method,
            url=url,
            status_code=response.status_code,
            duration_ms=(time.monotonic() - start_time) * 1000,
        )

        if should_log_payloads(logger, self.log_payloads) and response.text:
            logger.debug(
                "api_response_payload",
                method=method,
                url=url,
                status_code=response.status_code,
                payload=response.text[: self.max_payload_size],
                payload_size=len(response.text),
            )

        if response.status_code >= 400:
            self._handle_error_response(response, action=action)

        return response

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        action: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Make an HTTP request and return the decoded JSON body."""
        response = await self.send(
            method, endpoint, params=params, json_data=json_data, action=action, **kwargs
        )
        return response.json() if response.text else {}

    async def request_with_headers(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        action: str | None = None,
        **kwargs: Any,
    ) -> tuple[dict[str, Any], httpx.Headers]:
        """Make an HTTP request and return the JSON body with response headers.

        Used by list endpoints that report pagination via headers.
        """
        response = await self.send(method, endpoint, params=params, action=action, **kwargs)
        return (response.json() if response.text else {}), response.headers

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self.client.aclose()
        logger.info("client_closed", base_url=self.base_url)
