import asyncio
from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from app.controllers.google.client import GoogleAPIClient, GoogleResponse
from app.exceptions import UpstreamAPIError


class FlakyGoogleClient(GoogleAPIClient):
    """Replays a fixed sequence of responses or transport errors from ``_send``."""

    def __init__(self, *outcomes: GoogleResponse | Exception, max_retries: int = 3) -> None:
        super().__init__(timeout=1, max_retries=max_retries, retry_base_delay=0)
        self.outcomes = list(outcomes)
        self.attempts = 0

    async def _send(self, method: str, url: str, headers: dict[str, str], **kwargs: Any) -> GoogleResponse:
        self.attempts += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


async def test_retries_server_errors_until_success() -> None:
    client = FlakyGoogleClient(GoogleResponse(status=503), GoogleResponse(status=200, body={"ok": True}))

    response = await client.request("GET", "https://gmail.googleapis.com/gmail/v1/users/me/profile")

    assert response.ok
    assert client.attempts == 2


async def test_retries_timeouts_and_connection_errors() -> None:
    client = FlakyGoogleClient(
        asyncio.TimeoutError(), aiohttp.ClientConnectionError("reset"), GoogleResponse(status=200)
    )

    response = await client.request("GET", "https://gmail.googleapis.com/gmail/v1/users/me/profile")

    assert response.status == 200
    assert client.attempts == 3


async def test_gives_up_after_max_retries() -> None:
    client = FlakyGoogleClient(GoogleResponse(status=429), GoogleResponse(status=500), GoogleResponse(status=503))

    with pytest.raises(UpstreamAPIError) as exc_info:
        await client.request("GET", "https://gmail.googleapis.com/gmail/v1/users/me/profile")

    assert exc_info.value.upstream_status == 503
    assert client.attempts == 3


async def test_single_attempt_when_retry_is_disabled() -> None:
    client = FlakyGoogleClient(asyncio.TimeoutError(), GoogleResponse(status=200))

    with pytest.raises(UpstreamAPIError) as exc_info:
        await client.request("POST", GoogleAPIClient.TOKEN_URL, data={"code": "abc"}, retry=False)

    assert exc_info.value.upstream_status is None
    assert client.attempts == 1


async def test_client_errors_are_returned_without_retry() -> None:
    client = FlakyGoogleClient(GoogleResponse(status=404, body={"error": {"code": 404, "status": "NOT_FOUND"}}))

    response = await client.request("GET", "https://gmail.googleapis.com/gmail/v1/users/me/history")

    assert response.status == 404
    assert response.error_code == "NOT_FOUND"
    assert client.attempts == 1


def test_error_code_of_oauth_and_api_errors() -> None:
    assert GoogleResponse(status=400, body={"error": "invalid_grant"}).error_code == "invalid_grant"
    assert GoogleResponse(status=403, body={"error": {"message": "Forbidden"}}).error_code == "Forbidden"
    assert GoogleResponse(status=500, text="oops").error_code is None


async def test_request_sends_bearer_token_and_parses_json() -> None:
    seen: dict[str, Any] = {}

    async def handler(request: web.Request) -> web.Response:
        seen["authorization"] = request.headers.get("Authorization")
        seen["query"] = dict(request.query)
        return web.json_response({"historyId": "42"})

    app = web.Application()
    app.router.add_get("/gmail/v1/users/me/history", handler)

    client = GoogleAPIClient(timeout=5, max_retries=1, retry_base_delay=0)
    async with TestServer(app) as server:
        try:
            response = await client.request(
                "GET",
                str(server.make_url("/gmail/v1/users/me/history")),
                access_token="ya29.token",
                params={"startHistoryId": "1"},
            )
        finally:
            await client.close_session()

    assert response.body == {"historyId": "42"}
    assert seen == {"authorization": "Bearer ya29.token", "query": {"startHistoryId": "1"}}


async def test_request_tolerates_non_json_bodies() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=400, text="<html>bad request</html>")

    app = web.Application()
    app.router.add_post("/token", handler)

    client = GoogleAPIClient(timeout=5, max_retries=1, retry_base_delay=0)
    async with TestServer(app) as server:
        try:
            response = await client.request("POST", str(server.make_url("/token")), data={"grant_type": "x"})
        finally:
            await client.close_session()

    assert response.status == 400
    assert response.body == {}
    assert "bad request" in response.text
