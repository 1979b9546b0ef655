import asyncio
import logging
from datetime import UTC, datetime

import aiohttp

from app.controllers.google.models import NormalizedMessage
from app.controllers.relay.models import RelayPayload
from app.exceptions import ConfigError, DeliveryError
from app.models import Account, RelayLog
from app.repos.relay_log import RelayLogRepo


class RelayController:
    """Delivers batches of new messages to the downstream automation webhook."""

    def __init__(self, relay_log_repo: RelayLogRepo, webhook_url: str | None, timeout: float) -> None:
        self._logger = logging.getLogger(__name__)
        self._relay_log_repo = relay_log_repo
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._http_session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def init_session(self) -> None:
        """Initialize HTTP session for webhook delivery."""
        async with self._session_lock:
            if self._http_session is None:
                timeout = aiohttp.ClientTimeout(total=self._timeout)
                self._http_session = aiohttp.ClientSession(timeout=timeout)

    async def close_session(self) -> None:
        """Close HTTP session."""
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    def ensure_configured(self) -> None:
        if not self._webhook_url:
            raise ConfigError("N8N_WEBHOOK_URL is not configured")

    @staticmethod
    def build_payload(account: Account, messages: list[NormalizedMessage]) -> RelayPayload:
        return RelayPayload(
            creator_id=str(account.uuid),
            creator_email=account.email,
            automation_mode=account.automation_mode.value,
            emails=messages,
        )

    async def deliver(
        self, account: Account, messages: list[NormalizedMessage], start_cursor: int | None, end_cursor: int
    ) -> RelayLog:
        """
        Post one batch to the automation webhook. There is no retry here; a failed batch is recorded as a gap.

        Raises:
            DeliveryError: Non-2xx response, timeout or transport failure.
        """
        self.ensure_configured()
        await self.init_session()
        assert self._http_session is not None and self._webhook_url is not None

        payload_json = self.build_payload(account, messages).model_dump_json(by_alias=True)
        message_ids = [message.id for message in messages]

        try:
            async with self._http_session.post(
                self._webhook_url, data=payload_json, headers={"Content-Type": "application/json"}
            ) as response:
                response_body = await response.text()
                status = response.status
        except asyncio.TimeoutError as e:
            await self._log_delivery(account, message_ids, start_cursor, end_cursor, None, "Timeout", False)
            raise DeliveryError(f"Relay timed out for {account.email}") from e
        except aiohttp.ClientError as e:
            await self._log_delivery(account, message_ids, start_cursor, end_cursor, None, str(e), False)
            raise DeliveryError(f"Relay failed for {account.email}: {e}") from e

        delivered = 200 <= status < 300
        relay_log = await self._log_delivery(
            account, message_ids, start_cursor, end_cursor, status, None if delivered else response_body, delivered
        )
        if not delivered:
            raise DeliveryError(
                f"Relay returned {status} for {account.email}: {response_body[:200]}", response_status=status
            )

        self._logger.info(f"Relayed {len(messages)} messages for {account.email}; cursor {start_cursor}->{end_cursor}")
        return relay_log

    async def record_deferred(
        self,
        account: Account,
        messages: list[NormalizedMessage],
        start_cursor: int | None,
        end_cursor: int,
        reason: str,
    ) -> RelayLog:
        """Record a synced batch that was not relayed so an out-of-band reconciliation can pick it up."""
        return await self._log_delivery(
            account, [message.id for message in messages], start_cursor, end_cursor, None, reason, False
        )

    async def _log_delivery(
        self,
        account: Account,
        message_ids: list[str],
        start_cursor: int | None,
        end_cursor: int,
        status_code: int | None,
        response_body: str | None,
        delivered: bool,
    ) -> RelayLog:
        relay_log = RelayLog(
            account_id=account.id,
            webhook_url=self._webhook_url,
            message_ids=message_ids,
            start_cursor=start_cursor,
            end_cursor=end_cursor,
            status_code=status_code,
            response_body=response_body,
            delivered_at=datetime.now(UTC) if delivered else None,
        )
        try:
            await self._relay_log_repo.persist(relay_log)
        except Exception:
            self._logger.exception(
                f"Failed to record relay log for {account.email}; cursor {start_cursor}->{end_cursor}, "
                f"message_ids: {message_ids}"
            )
        return relay_log
