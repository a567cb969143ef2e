"""
Low-level HTTP request library for BLOCKv platform communication.
This module handles all HTTP requests with automatic timeout retry, transparent
credential repair through an attached auth handler, and proper error handling.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from .config import SdkConfig
from .const import AUTH_RETRY_LIMIT
from .errors import ApiResponseError, NetworkError

if TYPE_CHECKING:
    from .api.oauth import OAuth2Handler

_LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass
class RawResponse:
    """Status, content type and decoded body of one HTTP exchange."""

    status: int
    content_type: str
    body: Any


class ApiClient:
    """
    Issues requests against the BLOCKv platform.

    One aiohttp session is created lazily and reused. When an auth handler
    is attached, every request is adapted by it before sending and every
    failed response is offered to its retry hook.
    """

    def __init__(
        self,
        config: SdkConfig,
        auth: OAuth2Handler | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._auth = auth
        self._session = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return self._config.base_url

    def url_for(self, path: str) -> str:
        """Join a relative endpoint path to the configured base URL."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return self._config.base_url + "/" + path.lstrip("/")

    async def request(
        self,
        method: str,
        path: str,
        payload: dict | None = None,
        params: dict | None = None,
        headers: dict | None = None,
    ):
        """
        Make an HTTP request and return the decoded JSON body.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            path: Endpoint path relative to the base URL, or an absolute URL
            payload: JSON payload (optional)
            params: URL query parameters (optional)
            headers: Extra HTTP headers (optional)

        Returns:
            Parsed JSON response

        Raises:
            asyncio.TimeoutError: If all timeout retry attempts are exhausted
            NetworkError: For transport failures
            ApiResponseError: For error responses not repaired by the auth handler
            ValueError: If a successful response is not JSON
        """
        method = method.upper()
        url = self.url_for(path)
        auth_retries = 0

        while True:
            request_headers = {
                "accept": "application/json",
                "App-Id": self._config.app_id,
            }
            if headers:
                request_headers.update(headers)
            if self._auth is not None:
                request_headers = await self._auth.adapt(url, request_headers)

            raw = await self._send_with_retry(method, url, request_headers, payload, params)

            if raw.status == 200:
                return _process_success(raw, url)

            if self._auth is not None and auth_retries < AUTH_RETRY_LIMIT:
                should_retry, _ = await self._auth.should_retry(raw.status)
                if should_retry:
                    auth_retries += 1
                    _LOGGER.debug("Resending %s %s after credential refresh", method, url)
                    continue

            raise _process_error(raw, url)

    async def check_availability(self, timeout: int = 15) -> bool:
        """
        Check if the platform is reachable by sending a HEAD request.

        Returns:
            True if the base URL answers with a non-5xx status, False otherwise
        """
        try:
            session = self._get_session()
            async with session.head(
                self._config.base_url, timeout=aiohttp.ClientTimeout(total=timeout)
            ) as response:
                if response.status >= 500:
                    _LOGGER.warning("API URL is not reachable (status %s)", response.status)
                    return False
                return True
        except (asyncio.TimeoutError, TimeoutError):
            _LOGGER.warning("Timeout while checking API URL")
            return False
        except aiohttp.ClientError as e:
            _LOGGER.error("Error while checking API availability: %s", e)
            return False

    async def close(self) -> None:
        """Release the underlying aiohttp session if this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _send_with_retry(
        self,
        method: str,
        url: str,
        headers: dict,
        payload: dict | None,
        params: dict | None,
    ) -> RawResponse:
        """Send once per attempt, retrying only on timeout with a growing limit."""
        timeout = self._config.request_timeout
        max_attempts = self._config.request_attempts

        for attempt in range(max_attempts):
            try:
                return await self._send(
                    method, url, headers, payload, params, timeout * (attempt + 1)
                )
            except (asyncio.TimeoutError, TimeoutError):
                if attempt < max_attempts - 1:
                    continue
                _LOGGER.warning(
                    "Timeout on %s request to %s after %s attempts",
                    method, url, max_attempts
                )
                raise
            except aiohttp.ClientError as e:
                # For non-timeout errors, don't retry
                raise NetworkError(f"{method} {url} failed: {e}") from e

        raise asyncio.TimeoutError(f"{method} {url} made no attempt")

    async def _send(
        self,
        method: str,
        url: str,
        headers: dict,
        payload: dict | None,
        params: dict | None,
        timeout: float,
    ) -> RawResponse:
        session = self._get_session()
        async with session.request(
            method,
            url,
            headers=headers,
            json=payload,
            params=params,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as response:
            content_type = response.headers.get("Content-Type", "")
            if "application/json" in content_type:
                try:
                    body = await response.json()
                except (aiohttp.ContentTypeError, ValueError):
                    body = await response.text()
            else:
                body = await response.text()
            return RawResponse(status=response.status, content_type=content_type, body=body)


def _process_success(raw: RawResponse, url: str):
    """Return the JSON body of a 200 response."""
    if "application/json" in raw.content_type and not isinstance(raw.body, str):
        return raw.body
    _LOGGER.warning(
        "Unexpected content type in successful response: %s (status %s) from %s",
        raw.content_type, raw.status, url
    )
    raise ValueError(f"Expected JSON but got {raw.content_type}: {str(raw.body)[:200]}")


def _process_error(raw: RawResponse, url: str) -> ApiResponseError:
    """Build the exception describing a non-200 response."""
    if isinstance(raw.body, dict):
        return ApiResponseError(raw.status, raw.body)

    _LOGGER.warning(
        "Received non-JSON error response from %s: status %s, content-type: %s, body preview: %s",
        url, raw.status, raw.content_type, str(raw.body)[:200]
    )
    return ApiResponseError(raw.status, {"message": str(raw.body)[:200]})
