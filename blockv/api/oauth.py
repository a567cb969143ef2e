"""
OAuth2Handler: BLOCKv credential injection and single-flight token refresh.

All token state is owned by one asyncio worker task which consumes typed
messages from a queue, so reads and writes of that state never interleave.
The refresh exchange itself runs as a separate task and reports back with a
RefreshFinished message; requests hitting 401 while it is in flight only
enqueue their waiter. When RefreshFinished is handled the new token is
committed and every waiter is resolved in that same step, so all of them
observe one outcome and no late waiter can join a batch being drained.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Callable

from ..const import ACCESS_TOKEN_PATH
from ..errors import TokenRefreshError
from ..requests import ApiClient

_LOGGER = logging.getLogger(__name__)

# (succeeded, access_token)
RefreshOutcome = tuple[bool, str | None]


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class Adapt:
    url: str
    headers: dict
    future: asyncio.Future


@dataclasses.dataclass
class Retry:
    status: int
    future: asyncio.Future


@dataclasses.dataclass
class GetToken:
    future: asyncio.Future


@dataclasses.dataclass
class SetTokens:
    access_token: str
    refresh_token: str
    future: asyncio.Future


@dataclasses.dataclass
class RefreshFinished:
    succeeded: bool
    access_token: str | None


# ---------------------------------------------------------------------------
# OAuth2Handler
# ---------------------------------------------------------------------------

class OAuth2Handler:
    """
    Adapts outgoing requests with the bearer token and repairs expired
    access tokens by exchanging the refresh token.

    Refresh calls go through *refresh_client*, an ApiClient without an auth
    handler, so they are never intercepted by this retry logic themselves.
    Repeated 401s trigger repeated refreshes; there is no backoff.
    """

    def __init__(
        self,
        base_url: str,
        refresh_client: ApiClient,
        access_token: str = "",
        refresh_token: str = "",
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._refresh_client = refresh_client
        self._access_token = access_token
        self._refresh_token = refresh_token

        self._is_refreshing = False
        self._requests_to_retry: list[asyncio.Future] = []
        self._manual_token_callbacks: list[asyncio.Future] = []

        self._inbox: asyncio.Queue | None = None
        self._worker_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def access_token(self) -> str:
        return self._access_token

    @property
    def refresh_token(self) -> str:
        return self._refresh_token

    @property
    def is_refreshing(self) -> bool:
        return self._is_refreshing

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def adapt(self, url: str, headers: dict) -> dict:
        """Return *headers* with the Authorization bearer added for platform URLs."""
        return await self._call(lambda fut: Adapt(url, dict(headers), fut))

    async def should_retry(self, status: int) -> RefreshOutcome:
        """
        Decide whether a request that failed with *status* should be resent.

        Only 401 is retried, after the (possibly shared) refresh completes.
        Resolves to (True, new_token) when the refresh succeeded.
        """
        return await self._call(lambda fut: Retry(status, fut))

    async def get_access_token(
        self, completion: Callable[[bool, str | None], None] | None = None
    ) -> RefreshOutcome:
        """
        Refresh and return the access token.

        Joins an in-flight refresh when there is one. *completion*, if
        given, is called with the same (succeeded, token) pair that is returned.
        """
        outcome = await self._call(GetToken)
        if completion is not None:
            completion(*outcome)
        return outcome

    async def set_tokens(self, access_token: str, refresh_token: str) -> None:
        """Store tokens minted elsewhere (login, register) without refreshing."""
        await self._call(lambda fut: SetTokens(access_token, refresh_token, fut))

    async def clear_tokens(self) -> None:
        """Forget both tokens (logout)."""
        await self.set_tokens("", "")

    async def shutdown(self) -> None:
        """Stop the worker; pending waiters receive a failed outcome."""
        tasks = [t for t in (self._worker_task, self._refresh_task) if t is not None]
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                _LOGGER.debug("OAuth2Handler task error during shutdown: %s", result)
        self._worker_task = None
        self._refresh_task = None

        if self._inbox is not None:
            while not self._inbox.empty():
                self._abandon(self._inbox.get_nowait())
        self._is_refreshing = False
        self._drain((False, None))

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _call(self, make_message):
        self._ensure_worker()
        future = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(make_message(future))
        return await future

    def _ensure_worker(self) -> None:
        """Create the inbox and worker task if they do not exist yet."""
        if self._inbox is None:
            self._inbox = asyncio.Queue()
        if self._worker_task is None or self._worker_task.done():
            self._worker_task = asyncio.ensure_future(self._worker())

    async def _worker(self) -> None:
        """Consume messages indefinitely; each is handled without suspending."""
        while True:
            message = await self._inbox.get()
            try:
                self._handle(message)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("OAuth2Handler failed to handle %s", type(message).__name__)
            finally:
                self._inbox.task_done()

    def _handle(self, message) -> None:
        if isinstance(message, Adapt):
            _resolve(message.future, self._adapt_headers(message.url, message.headers))

        elif isinstance(message, Retry):
            if message.status == 401:
                # hold the waiter until a refresh and token update has been performed
                self._requests_to_retry.append(message.future)
                self._refresh_and_update()
            else:
                _resolve(message.future, (False, None))
            if message.status == 403:
                _LOGGER.warning("Server is rate limiting")

        elif isinstance(message, GetToken):
            self._manual_token_callbacks.append(message.future)
            self._refresh_and_update()

        elif isinstance(message, SetTokens):
            self._access_token = message.access_token
            self._refresh_token = message.refresh_token
            _resolve(message.future, None)

        elif isinstance(message, RefreshFinished):
            self._is_refreshing = False
            self._refresh_task = None
            if message.succeeded and message.access_token:
                self._access_token = message.access_token
                _LOGGER.info("Access token - Updated")
            else:
                _LOGGER.error("Access token - Not Updated")
            self._drain((message.succeeded, self._access_token))

    def _abandon(self, message) -> None:
        """Answer a message the worker never got to, as if nothing changed."""
        if isinstance(message, Adapt):
            _resolve(message.future, message.headers)
        elif isinstance(message, (Retry, GetToken)):
            _resolve(message.future, (False, None))
        elif isinstance(message, SetTokens):
            _resolve(message.future, None)

    def _adapt_headers(self, url: str, headers: dict) -> dict:
        if not self._access_token:
            return headers
        if url == self._base_url or url.startswith(self._base_url + "/"):
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    def _refresh_and_update(self) -> None:
        """Start a refresh unless one is already in flight."""
        if self._is_refreshing:
            return
        self._is_refreshing = True
        self._refresh_task = asyncio.ensure_future(self._refresh_tokens(self._refresh_token))

    def _drain(self, outcome: RefreshOutcome) -> None:
        waiters = self._requests_to_retry + self._manual_token_callbacks
        self._requests_to_retry = []
        self._manual_token_callbacks = []
        for future in waiters:
            _resolve(future, outcome)

    # ------------------------------------------------------------------
    # Refresh exchange (runs outside the worker)
    # ------------------------------------------------------------------

    async def _refresh_tokens(self, refresh_token: str) -> None:
        _LOGGER.debug("Access token - Attempting refresh")
        succeeded = False
        access_token = None
        try:
            access_token = await self._exchange(refresh_token)
            succeeded = True
            _LOGGER.debug("Access token - Refresh successful")
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Access token - Refresh failed: %s", exc)
        finally:
            if self._inbox is not None:
                self._inbox.put_nowait(RefreshFinished(succeeded, access_token))

    async def _exchange(self, refresh_token: str) -> str:
        """POST the refresh token and return the new access token."""
        response = await self._refresh_client.request(
            "POST",
            ACCESS_TOKEN_PATH,
            headers={"Authorization": f"Bearer {refresh_token}"},
        )
        try:
            token = response["payload"]["access_token"]["token"]
        except (KeyError, TypeError) as exc:
            raise TokenRefreshError(f"Unexpected refresh response: {response}") from exc
        if not token:
            raise TokenRefreshError("Refresh response carried an empty access token")
        return token


def _resolve(future: asyncio.Future, value) -> None:
    """Set *value* unless the waiter already gave up."""
    if not future.done():
        future.set_result(value)
