import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from app.controllers.google.client import GoogleAPIClient
from app.controllers.google.message_utils import MessageUtils
from app.controllers.google.models import GmailMessage, HistoryPage, NormalizedMessage, SyncResult
from app.exceptions import CursorExpiredError, UpstreamAPIError

HISTORY_PAGE_SIZE = 500
MAX_CONCURRENT_FETCHES = 10


class HistorySynchronizer:
    """Turns a history cursor into the list of messages added since that cursor."""

    def __init__(self, google_client: GoogleAPIClient, label: str | None = "INBOX") -> None:
        self._logger = logging.getLogger(__name__)
        self._google_client = google_client
        self._label = label

    async def fetch_since(self, mailbox: str, access_token: str, cursor: int) -> SyncResult:
        """
        Fetch the messages added to the mailbox after ``cursor``.

        Messages come back in history order, each hydrated once. ``new_cursor`` is the history id reported by the
        last page of the query.

        Raises:
            CursorExpiredError: Gmail no longer retains history from ``cursor``.
            UpstreamAPIError: A Gmail call failed after retries or returned an unexpected payload.
        """
        message_ids: list[str] = []
        seen: set[str] = set()
        new_cursor = cursor
        page_token: str | None = None

        while True:
            page = await self._fetch_history_page(mailbox, access_token, cursor, page_token)
            for record in page.history:
                for added in record.messages_added:
                    if added.message.id not in seen:
                        seen.add(added.message.id)
                        message_ids.append(added.message.id)

            new_cursor = page.history_id
            page_token = page.next_page_token
            if not page_token:
                break

        messages = await self._hydrate(mailbox, access_token, message_ids)
        self._logger.info(
            f"Fetched {len(messages)}/{len(message_ids)} new messages for {mailbox}; cursor {cursor} -> {new_cursor}"
        )
        return SyncResult(start_cursor=cursor, new_cursor=new_cursor, messages=messages)

    async def _fetch_history_page(
        self, mailbox: str, access_token: str, cursor: int, page_token: str | None
    ) -> HistoryPage:
        params: dict[str, Any] = {
            "startHistoryId": str(cursor),
            "historyTypes": "messageAdded",
            "maxResults": str(HISTORY_PAGE_SIZE),
        }
        if self._label:
            params["labelId"] = self._label
        if page_token:
            params["pageToken"] = page_token

        response = await self._google_client.request(
            "GET", self._google_client.gmail_url(mailbox, "history"), access_token=access_token, params=params
        )
        if response.status == 404:
            raise CursorExpiredError(
                f"History cursor {cursor} for {mailbox} is outside Gmail's retained window",
                account=mailbox,
                cursor=cursor,
            )
        if not response.ok:
            raise UpstreamAPIError(
                f"Gmail history.list failed for {mailbox}: {response.error_code or response.text[:200]}",
                upstream_status=response.status,
            )

        try:
            return HistoryPage.model_validate(response.body)
        except ValidationError as e:
            raise UpstreamAPIError(
                f"Unexpected history.list response for {mailbox}", upstream_status=response.status
            ) from e

    async def _hydrate(self, mailbox: str, access_token: str, message_ids: list[str]) -> list[NormalizedMessage]:
        semaphore = asyncio.Semaphore(MAX_CONCURRENT_FETCHES)

        async def bounded_fetch(message_id: str) -> NormalizedMessage | None:
            async with semaphore:
                return await self._fetch_message(mailbox, access_token, message_id)

        tasks = [asyncio.create_task(bounded_fetch(message_id)) for message_id in message_ids]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # First failure fails the sync; stop the remaining fetches and collect their outcomes
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return [message for message in results if message is not None]

    async def _fetch_message(self, mailbox: str, access_token: str, message_id: str) -> NormalizedMessage | None:
        response = await self._google_client.request(
            "GET",
            self._google_client.gmail_url(mailbox, f"messages/{message_id}"),
            access_token=access_token,
            params={"format": "full"},
        )
        if response.status == 404:
            # Deleted between the history query and this fetch
            self._logger.warning(f"Message {message_id} for {mailbox} no longer exists; skipping")
            return None
        if not response.ok:
            raise UpstreamAPIError(
                f"Gmail messages.get failed for {mailbox}/{message_id}: {response.error_code}",
                upstream_status=response.status,
            )

        try:
            message = GmailMessage.model_validate(response.body)
        except ValidationError as e:
            raise UpstreamAPIError(
                f"Unexpected messages.get response for {mailbox}/{message_id}", upstream_status=response.status
            ) from e
        return MessageUtils.normalize(message)
