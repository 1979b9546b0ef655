import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from app.exceptions import UpstreamAPIError

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass
class GoogleResponse:
    status: int
    body: dict[str, Any] = field(default_factory=dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def error_code(self) -> str | None:
        """Return the OAuth ``error`` code or the Google API error status of a failed response."""
        error = self.body.get("error")
        if isinstance(error, str):
            return error
        if isinstance(error, dict):
            return error.get("status") or error.get("message")
        return None


class GoogleAPIClient:
    """HTTP client for Google's OAuth and Gmail endpoints with bounded retries."""

    TOKEN_URL = "https://oauth2.googleapis.com/token"
    AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1"

    def __init__(self, timeout: float, max_retries: int, retry_base_delay: float) -> None:
        self._logger = logging.getLogger(__name__)
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._retry_base_delay = retry_base_delay
        self._http_session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def init_session(self) -> None:
        """Initialize HTTP session for provider calls."""
        async with self._session_lock:
            if self._http_session is None:
                timeout = aiohttp.ClientTimeout(total=self._timeout)
                self._http_session = aiohttp.ClientSession(timeout=timeout)

    async def close_session(self) -> None:
        """Close HTTP session."""
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    def gmail_url(self, mailbox: str, path: str) -> str:
        return f"{self.GMAIL_API_URL}/users/{mailbox}/{path}"

    async def request(
        self,
        method: str,
        url: str,
        access_token: str | None = None,
        params: dict[str, Any] | None = None,
        data: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        retry: bool = True,
    ) -> GoogleResponse:
        """
        Send a request, retrying throttling, server errors and transport failures with exponential backoff.

        Other non-2xx responses are returned so callers can classify them. Pass ``retry=False`` for calls that
        must not be repeated, such as redeeming a single-use authorization code.

        Raises:
            UpstreamAPIError: When every attempt failed with a retryable condition.
        """
        max_attempts = self._max_retries if retry else 1
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        last_status: int | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                response = await self._send(method, url, headers=headers, params=params, data=data, json_body=json_body)
                if response.status not in RETRYABLE_STATUSES:
                    return response

                last_status = response.status
                self._logger.warning(
                    f"Google API returned {response.status} (attempt {attempt}/{max_attempts}); "
                    f"{method} {url}: {response.error_code}"
                )
            except asyncio.TimeoutError:
                last_status = None
                self._logger.warning(f"Google API timeout (attempt {attempt}/{max_attempts}); {method} {url}")
            except aiohttp.ClientError as e:
                last_status = None
                self._logger.warning(f"Google API error (attempt {attempt}/{max_attempts}); {method} {url}: {e}")

            if attempt < max_attempts:
                await asyncio.sleep(self._retry_base_delay * (2 ** (attempt - 1)))

        raise UpstreamAPIError(
            f"Google API call failed after {max_attempts} attempts: {method} {url}", upstream_status=last_status
        )

    async def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        params: dict[str, Any] | None,
        data: dict[str, str] | None,
        json_body: dict[str, Any] | None,
    ) -> GoogleResponse:
        await self.init_session()
        assert self._http_session is not None

        async with self._http_session.request(
            method, url, headers=headers, params=params, data=data, json=json_body
        ) as response:
            text = await response.text()

        body: dict[str, Any] = {}
        if text:
            try:
                parsed = json.loads(text)
            except ValueError:
                parsed = None
            if isinstance(parsed, dict):
                body = parsed

        return GoogleResponse(status=response.status, body=body, text=text)
