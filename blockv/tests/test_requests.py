"""
Tests for ApiClient: header construction, timeout retry, error mapping,
and transparent replay after a token refresh.
"""

from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

import aiohttp

from blockv.errors import ApiResponseError, NetworkError
from blockv.requests import ApiClient, RawResponse

from .test_common import BASE_URL, make_config, make_handler, refresh_response

JSON = "application/json; charset=utf-8"


def ok(body: dict) -> RawResponse:
    return RawResponse(status=200, content_type=JSON, body=body)


def error(status: int, message: str = "nope") -> RawResponse:
    return RawResponse(status=status, content_type=JSON, body={"error": status, "message": message})


class TestRequest(unittest.IsolatedAsyncioTestCase):

    async def test_success_returns_json(self):
        client = ApiClient(make_config())
        client._send = AsyncMock(return_value=ok({"payload": {"a": 1}}))

        result = await client.request("get", "/v1/thing", params={"x": 1})

        self.assertEqual(result, {"payload": {"a": 1}})
        method, url, headers, payload, params, timeout = client._send.call_args.args
        self.assertEqual(method, "GET")
        self.assertEqual(url, BASE_URL + "/v1/thing")
        self.assertEqual(headers["App-Id"], "test-app")
        self.assertEqual(params, {"x": 1})

    async def test_absolute_url_kept(self):
        client = ApiClient(make_config())
        self.assertEqual(client.url_for("https://other.host/a"), "https://other.host/a")
        self.assertEqual(client.url_for("v1/a"), BASE_URL + "/v1/a")

    async def test_error_status_raises_api_error(self):
        client = ApiClient(make_config())
        client._send = AsyncMock(return_value=error(404, "not found"))

        with self.assertRaises(ApiResponseError) as ctx:
            await client.request("GET", "/v1/missing")

        self.assertEqual(ctx.exception.status, 404)
        self.assertEqual(ctx.exception.error_json["message"], "not found")

    async def test_non_json_success_raises_value_error(self):
        client = ApiClient(make_config())
        client._send = AsyncMock(return_value=RawResponse(200, "text/html", "<html>"))
        with self.assertRaises(ValueError):
            await client.request("GET", "/v1/x")

    async def test_non_json_error_wrapped(self):
        client = ApiClient(make_config())
        client._send = AsyncMock(return_value=RawResponse(502, "text/html", "<html>bad gateway</html>"))
        with self.assertRaises(ApiResponseError) as ctx:
            await client.request("GET", "/v1/x")
        self.assertEqual(ctx.exception.status, 502)

    async def test_timeout_retried_with_growing_limit(self):
        client = ApiClient(make_config(request_timeout=2, request_attempts=3))
        client._send = AsyncMock(side_effect=[asyncio.TimeoutError(), asyncio.TimeoutError(), ok({"done": True})])

        result = await client.request("GET", "/v1/x")

        self.assertEqual(result, {"done": True})
        timeouts = [call.args[5] for call in client._send.call_args_list]
        self.assertEqual(timeouts, [2, 4, 6])

    async def test_timeout_exhausted_raises(self):
        client = ApiClient(make_config(request_attempts=2))
        client._send = AsyncMock(side_effect=asyncio.TimeoutError())
        with self.assertRaises(asyncio.TimeoutError):
            await client.request("GET", "/v1/x")
        self.assertEqual(client._send.await_count, 2)

    async def test_client_error_not_retried(self):
        client = ApiClient(make_config())
        client._send = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with self.assertRaises(NetworkError):
            await client.request("GET", "/v1/x")
        self.assertEqual(client._send.await_count, 1)


class TestAuthenticatedRequest(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.handler = make_handler(access_token="expired")
        self.handler._refresh_client.request = AsyncMock(return_value=refresh_response("fresh"))
        self.client = ApiClient(make_config(), auth=self.handler)

    async def asyncTearDown(self):
        await self.handler.shutdown()

    async def test_401_replayed_with_new_token(self):
        self.client._send = AsyncMock(side_effect=[error(401), ok({"payload": "yes"})])

        result = await self.client.request("GET", "/v1/user")

        self.assertEqual(result, {"payload": "yes"})
        first_headers = self.client._send.call_args_list[0].args[2]
        second_headers = self.client._send.call_args_list[1].args[2]
        self.assertEqual(first_headers["Authorization"], "Bearer expired")
        self.assertEqual(second_headers["Authorization"], "Bearer fresh")

    async def test_concurrent_401s_refresh_once(self):
        async def send(method, url, headers, payload, params, timeout):
            await asyncio.sleep(0.01)
            if headers["Authorization"] == "Bearer fresh":
                return ok({"url": url})
            return error(401)

        async def slow_refresh(*args, **kwargs):
            await asyncio.sleep(0.05)
            return refresh_response("fresh")

        self.handler._refresh_client.request = AsyncMock(side_effect=slow_refresh)
        self.client._send = AsyncMock(side_effect=send)

        results = await asyncio.gather(*[self.client.request("GET", f"/v1/item/{i}") for i in range(5)])

        self.assertEqual([r["url"] for r in results], [f"{BASE_URL}/v1/item/{i}" for i in range(5)])
        self.assertEqual(self.handler._refresh_client.request.await_count, 1)

    async def test_failed_refresh_surfaces_original_error(self):
        self.handler._refresh_client.request = AsyncMock(side_effect=ApiResponseError(401))
        self.client._send = AsyncMock(return_value=error(401, "token expired"))

        with self.assertRaises(ApiResponseError) as ctx:
            await self.client.request("GET", "/v1/user")

        self.assertEqual(ctx.exception.status, 401)
        self.assertEqual(self.client._send.await_count, 1)

    async def test_persistent_401_not_replayed_forever(self):
        self.client._send = AsyncMock(return_value=error(401))

        with self.assertRaises(ApiResponseError):
            await self.client.request("GET", "/v1/user")

        self.assertEqual(self.client._send.await_count, 2)
        self.assertEqual(self.handler._refresh_client.request.await_count, 1)

    async def test_403_surfaces_without_refresh(self):
        self.client._send = AsyncMock(return_value=error(403, "slow down"))
        with self.assertRaises(ApiResponseError) as ctx:
            await self.client.request("GET", "/v1/user")
        self.assertEqual(ctx.exception.status, 403)
        self.handler._refresh_client.request.assert_not_awaited()


def make_head_session(status: int | None = None, error: Exception | None = None) -> MagicMock:
    session = MagicMock()
    session.closed = False
    response = MagicMock()
    response.status = status
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response, side_effect=error)
    context.__aexit__ = AsyncMock(return_value=False)
    session.head.return_value = context
    return session


class TestAvailability(unittest.IsolatedAsyncioTestCase):

    async def test_reachable(self):
        session = make_head_session(status=404)
        client = ApiClient(make_config(), session=session)
        self.assertTrue(await client.check_availability())
        self.assertEqual(session.head.call_args.args[0], BASE_URL)

    async def test_server_error_unreachable(self):
        client = ApiClient(make_config(), session=make_head_session(status=503))
        self.assertFalse(await client.check_availability())

    async def test_connection_error_unreachable(self):
        session = make_head_session(error=aiohttp.ClientConnectionError("refused"))
        client = ApiClient(make_config(), session=session)
        self.assertFalse(await client.check_availability())

    async def test_close_leaves_borrowed_session_open(self):
        session = make_head_session(status=200)
        session.close = AsyncMock()
        client = ApiClient(make_config(), session=session)
        await client.close()
        session.close.assert_not_awaited()
