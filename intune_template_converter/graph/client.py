"""
Async Graph API client with pagination, throttling, retry, and write guarding.
"""

from __future__ import annotations

import asyncio
import logging
import time
from email.utils import parsedate_to_datetime
from typing import Any, AsyncGenerator, Optional

import httpx

from ..auth.token_cache import AccessTokenCache
from ..config import (
    GRAPH_BASE_URL,
    GRAPH_API_VERSION,
    GRAPH_BETA_VERSION,
    MAX_RETRIES,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    BACKOFF_MULTIPLIER,
    MAX_PAGES_PER_ENDPOINT,
    MAX_CONCURRENT_REQUESTS,
)
from ..safety.guardian import SafetyGuardian, SafetyViolation

logger = logging.getLogger("intune_template_converter.graph")

RETRYABLE_STATUS = (429, 503, 504)


class GraphAPIError(Exception):
    """Raised when Graph API returns a non-recoverable error."""
    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.url = url
        self.message = message
        super().__init__(f"Graph API Error {status_code} for {url}: {message}")


class GraphClient:
    """
    Async Microsoft Graph API client.
    Features:
      - Every request validated by the SafetyGuardian
      - Bearer token pulled from an AccessTokenCache per request
      - Automatic pagination with @odata.nextLink
      - Exponential backoff on 429/503/504
      - Concurrent request semaphore
      - v1.0 and beta endpoint support
    """

    def __init__(
        self,
        tokens: AccessTokenCache,
        guardian: SafetyGuardian,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff_seconds: float = INITIAL_BACKOFF_SECONDS,
    ):
        self.tokens = tokens
        self.guardian = guardian
        self._transport = transport
        self._initial_backoff = backoff_seconds
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)
        self._request_count = 0
        self._throttle_count = 0
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(60.0, connect=30.0),
            limits=httpx.Limits(
                max_connections=MAX_CONCURRENT_REQUESTS * 2,
                max_keepalive_connections=MAX_CONCURRENT_REQUESTS,
            ),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str, beta: bool = False) -> str:
        """Build full Graph URL from relative endpoint."""
        if endpoint.startswith("http"):
            return endpoint
        version = GRAPH_BETA_VERSION if beta else GRAPH_API_VERSION
        endpoint = endpoint.lstrip("/")
        return f"{GRAPH_BASE_URL}/{version}/{endpoint}"

    async def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
    ) -> dict:
        """Execute a single GET request with retry/throttle handling."""
        url = self._build_url(endpoint, beta=beta)
        self.guardian.validate_request("GET", url)

        async with self._semaphore:
            return await self._execute_with_retry("GET", url, params=params)

    async def post(self, endpoint: str, body: dict, beta: bool = False) -> dict:
        """Execute a POST; the guardian decides whether it may be sent."""
        url = self._build_url(endpoint, beta=beta)
        self.guardian.validate_request("POST", url, body)

        async with self._semaphore:
            return await self._execute_with_retry("POST", url, json_body=body)

    async def patch(self, endpoint: str, body: dict, beta: bool = False) -> dict:
        """Execute a PATCH; the guardian decides whether it may be sent."""
        url = self._build_url(endpoint, beta=beta)
        self.guardian.validate_request("PATCH", url, body)

        async with self._semaphore:
            return await self._execute_with_retry("PATCH", url, json_body=body)

    async def get_all_pages(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
        top: Optional[int] = None,
    ) -> list[dict]:
        """Fetch all pages of a paginated endpoint into a list."""
        items = []
        async for item in self.get_all_pages_stream(endpoint, params, beta, top):
            items.append(item)
        return items

    async def get_all_pages_stream(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
        top: Optional[int] = None,
    ) -> AsyncGenerator[dict, None]:
        """
        Stream all pages of a paginated endpoint as an async generator,
        following @odata.nextLink until it disappears or the page cap is hit.
        """
        params = dict(params or {})
        if top and "$top" not in params:
            params["$top"] = str(top)

        url: Optional[str] = self._build_url(endpoint, beta=beta)
        request_params: Optional[dict] = params or None
        pages = 0

        while url and pages < MAX_PAGES_PER_ENDPOINT:
            self.guardian.validate_request("GET", url)

            async with self._semaphore:
                data = await self._execute_with_retry("GET", url, params=request_params)

            for item in data.get("value", []):
                yield item

            url = data.get("@odata.nextLink")
            request_params = None  # nextLink contains all params
            pages += 1

        if url and pages >= MAX_PAGES_PER_ENDPOINT:
            logger.warning(
                f"Pagination safety cap reached ({MAX_PAGES_PER_ENDPOINT} pages) "
                f"for endpoint: {endpoint}"
            )

    async def _execute_with_retry(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict:
        """Execute request with exponential backoff on throttling."""
        backoff = self._initial_backoff
        last_status = 0

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = await self._execute_raw(
                    method, url, params=params, json_body=json_body
                )
                self._request_count += 1

                if response.status_code in (200, 201):
                    if not response.content or not response.content.strip():
                        return {}
                    try:
                        return response.json()
                    except ValueError:
                        logger.debug(f"{response.status_code} response with non-JSON body from {url}")
                        raise GraphAPIError(
                            response.status_code, "Response body is not valid JSON", url
                        )

                if response.status_code == 204:
                    return {}

                if response.status_code == 401 and attempt == 0:
                    # Token may have expired between cache check and send
                    logger.debug(f"401 on {url}, refreshing token and retrying once")
                    self.tokens.invalidate()
                    continue

                if response.status_code in RETRYABLE_STATUS and attempt < MAX_RETRIES:
                    self._throttle_count += 1
                    last_status = response.status_code
                    wait_time = max(_retry_after(response, backoff), backoff)
                    logger.warning(
                        f"Throttled ({response.status_code}) on {url}. "
                        f"Retry {attempt + 1}/{MAX_RETRIES} in {wait_time:.1f}s"
                    )
                    await asyncio.sleep(wait_time)
                    backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                    continue

                raise GraphAPIError(response.status_code, _error_message(response), url)

            except httpx.TimeoutException:
                logger.warning(f"Timeout on {url}, attempt {attempt + 1}/{MAX_RETRIES}")
                if attempt == MAX_RETRIES:
                    raise
                await asyncio.sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

            except httpx.ConnectError as e:
                logger.warning(f"Connection error on {url}: {e}")
                if attempt == MAX_RETRIES:
                    raise
                await asyncio.sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

        raise GraphAPIError(last_status, "Maximum retries exceeded", url)

    async def _execute_raw(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> httpx.Response:
        """Execute raw HTTP request with a fresh bearer token."""
        if not self._client:
            raise RuntimeError("GraphClient not initialized. Use 'async with' context.")

        token = await self.tokens.get_or_refresh()
        headers = {"Authorization": f"Bearer {token}"}

        if method == "GET":
            return await self._client.get(url, params=params, headers=headers)
        elif method == "POST":
            return await self._client.post(url, json=json_body, params=params, headers=headers)
        elif method == "PATCH":
            return await self._client.patch(url, json=json_body, params=params, headers=headers)
        else:
            raise SafetyViolation(f"Unsupported method at raw level: {method}")

    def get_stats(self) -> dict:
        """Return client statistics."""
        return {
            "total_requests": self._request_count,
            "throttle_events": self._throttle_count,
            "token_refreshes": self.tokens.refresh_count,
        }


def _error_message(response: httpx.Response) -> str:
    """Pull the Graph error message out of a failed response."""
    try:
        body: Any = response.json() if response.content else {}
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return response.text[:200]


def _retry_after(response: httpx.Response, default: float) -> float:
    """Seconds to wait from a Retry-After header, given as seconds or an HTTP-date."""
    value = response.headers.get("Retry-After")
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        pass
    try:
        return max(parsedate_to_datetime(value).timestamp() - time.time(), 0.0)
    except (TypeError, ValueError):
        logger.debug(f"Unparseable Retry-After header: {value}")
        return default
