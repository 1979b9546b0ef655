"""
Push-notification handling: turns a Gmail "mailbox changed" notification into relayed messages.
"""

import hmac
import logging
import time
from typing import Callable

from app.controllers.google.history_synchronizer import HistorySynchronizer
from app.controllers.google.models import SyncResult
from app.controllers.google.token_provider import TokenProvider
from app.controllers.google.watch_registrar import WatchRegistrar
from app.controllers.notification.models import MailboxNotification, NotificationOutcome, NotificationResult
from app.controllers.relay.relay_controller import RelayController
from app.exceptions import (
    BaseError,
    ConfigError,
    CursorExpiredError,
    DeliveryError,
    UpstreamAPIError,
    UpstreamAuthError,
)
from app.models import Account
from app.repos.account import AccountRepo
from app.utils.token_cipher import TokenCipher
from settings.settings import NotificationSettings


class NotificationController:
    """Drives token refresh, history sync, cursor persistence and relay for one notification at a time."""

    def __init__(
        self,
        account_repo: AccountRepo,
        token_provider: TokenProvider,
        watch_registrar: WatchRegistrar,
        history_synchronizer: HistorySynchronizer,
        relay_controller: RelayController,
        token_cipher: TokenCipher,
        config: NotificationSettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._account_repo = account_repo
        self._token_provider = token_provider
        self._watch_registrar = watch_registrar
        self._history_synchronizer = history_synchronizer
        self._relay_controller = relay_controller
        self._token_cipher = token_cipher
        self._config = config
        self._clock = clock

    def is_trusted_push(self, token: str | None) -> bool:
        """Check the shared verification token when one is configured."""
        expected = self._config.verification_token
        if not expected:
            return True
        return token is not None and hmac.compare_digest(expected, token)

    async def handle(self, notification: MailboxNotification) -> NotificationResult:
        """
        Process one decoded notification and report how it completed.

        Every outcome is acknowledged to Pub/Sub except configuration errors, which are raised.
        """
        try:
            return await self._handle(notification, self._clock() + self._config.deadline)
        except ConfigError:
            raise
        except BaseError as e:
            self._logger.exception(
                f"Unhandled error processing notification for {notification.email_address}; {e}", extra=e.extra
            )
        except Exception:
            self._logger.exception(
                f"Unexpected error processing notification for {notification.email_address}; "
                f"history_id: {notification.history_id}"
            )
        return NotificationResult(outcome=NotificationOutcome.UNEXPECTED_ERROR, email=notification.email_address)

    async def _handle(self, notification: MailboxNotification, deadline: float) -> NotificationResult:
        email = notification.email_address
        self._logger.info(
            f"Notification received for {email}; history_id: {notification.history_id}, "
            f"message_id: {notification.message_id}"
        )

        account = await self._account_repo.get_by_email(email)
        if account is None:
            self._logger.info(f"No account for {email}; notification acknowledged")
            return NotificationResult(outcome=NotificationOutcome.ACCOUNT_NOT_FOUND, email=email)

        if not account.is_eligible:
            self._logger.info(f"Account {email} is {account.status.value}; notification ignored")
            return NotificationResult(outcome=NotificationOutcome.INELIGIBLE, email=email)

        self._relay_controller.ensure_configured()

        refresh_token = self._token_cipher.decrypt(account.refresh_token) if account.refresh_token else ""
        try:
            access_token = await self._token_provider.refresh_access_token(refresh_token)
        except UpstreamAuthError as e:
            await self._account_repo.mark_reauthorization_required(account)
            await self._account_repo.commit()
            self._logger.error(f"Refresh token for {email} rejected; account needs re-authorization; {e}")
            return NotificationResult(outcome=NotificationOutcome.REAUTHORIZATION_REQUIRED, email=email)
        except UpstreamAPIError as e:
            self._logger.error(f"Token refresh for {email} failed; {e}", extra=e.extra)
            return NotificationResult(outcome=NotificationOutcome.SYNC_FAILED, email=email)

        if account.sync_cursor is None:
            return await self._establish_baseline(account, access_token)

        return await self._sync_and_relay(account, access_token, deadline)

    async def _sync_and_relay(self, account: Account, access_token: str, deadline: float) -> NotificationResult:
        email = account.email
        conflicts = 0

        while True:
            cursor = account.sync_cursor
            assert cursor is not None

            try:
                result = await self._history_synchronizer.fetch_since(email, access_token, cursor)
            except CursorExpiredError:
                return await self._handle_expired_cursor(account, access_token, cursor)
            except UpstreamAPIError as e:
                self._logger.error(f"History sync for {email} from cursor {cursor} failed; {e}", extra=e.extra)
                return NotificationResult(outcome=NotificationOutcome.SYNC_FAILED, email=email, start_cursor=cursor)

            if result.new_cursor <= cursor:
                if result.messages:
                    self._logger.warning(
                        f"History for {email} returned {len(result.messages)} messages without advancing the cursor "
                        f"({cursor}); batch discarded"
                    )
                return NotificationResult(
                    outcome=NotificationOutcome.NO_NEW_MESSAGES, email=email, start_cursor=cursor, new_cursor=cursor
                )

            won = await self._account_repo.advance_cursor(account.id, expected=cursor, new=result.new_cursor)
            await self._account_repo.commit()
            if won:
                account.sync_cursor = result.new_cursor
                return await self._relay(account, result, deadline)

            await self._account_repo.refresh(account)
            stored = account.sync_cursor
            if not account.is_eligible or stored is None or stored >= result.new_cursor:
                self._logger.info(
                    f"Cursor for {email} already advanced to {stored} by a concurrent notification; "
                    f"discarding batch {cursor}->{result.new_cursor}"
                )
                return self._duplicate(email, result)

            conflicts += 1
            if conflicts > self._config.max_cursor_conflicts:
                self._logger.warning(
                    f"Gave up on cursor conflicts for {email} after {conflicts} attempts; stored cursor: {stored}"
                )
                return self._duplicate(email, result)
            self._logger.info(f"Cursor conflict for {email}; re-syncing from stored cursor {stored}")

    async def _relay(self, account: Account, result: SyncResult, deadline: float) -> NotificationResult:
        email = account.email
        message_ids = [message.id for message in result.messages]
        outcome_args = dict(email=email, start_cursor=result.start_cursor, new_cursor=result.new_cursor)

        if not result.messages:
            self._logger.info(f"No new messages for {email}; cursor advanced to {result.new_cursor}")
            return NotificationResult(outcome=NotificationOutcome.NO_NEW_MESSAGES, **outcome_args)

        if self._clock() >= deadline:
            await self._relay_controller.record_deferred(
                account, result.messages, result.start_cursor, result.new_cursor, "Handler deadline expired"
            )
            self._logger.warning(
                f"Deadline expired before relay for {email}; {len(message_ids)} messages synced but not relayed "
                f"({result.start_cursor}->{result.new_cursor})"
            )
            return NotificationResult(
                outcome=NotificationOutcome.SYNCED_WITHOUT_RELAY, message_ids=message_ids, **outcome_args
            )

        try:
            await self._relay_controller.deliver(account, result.messages, result.start_cursor, result.new_cursor)
        except DeliveryError as e:
            self._logger.error(
                f"Delivery gap for {email}: {len(message_ids)} messages ({result.start_cursor}->{result.new_cursor}) "
                f"were not relayed; {e}",
                extra=e.extra,
            )
            return NotificationResult(outcome=NotificationOutcome.RELAY_FAILED, message_ids=message_ids, **outcome_args)

        return NotificationResult(outcome=NotificationOutcome.RELAYED, message_ids=message_ids, **outcome_args)

    async def _handle_expired_cursor(self, account: Account, access_token: str, cursor: int) -> NotificationResult:
        email = account.email
        self._logger.error(
            f"History cursor {cursor} for {email} has expired; messages since then cannot be synced and the mailbox "
            f"needs a new baseline"
        )
        if not self._config.rebaseline_on_expired:
            return NotificationResult(outcome=NotificationOutcome.CURSOR_EXPIRED, email=email, start_cursor=cursor)

        result = await self._rebaseline(account, access_token)
        return NotificationResult(
            outcome=NotificationOutcome.CURSOR_EXPIRED,
            email=email,
            start_cursor=cursor,
            new_cursor=result.new_cursor if result else None,
        )

    async def _establish_baseline(self, account: Account, access_token: str) -> NotificationResult:
        self._logger.warning(f"Account {account.email} has no sync cursor; registering watch for a baseline")
        result = await self._rebaseline(account, access_token)
        if result is None:
            return NotificationResult(outcome=NotificationOutcome.SYNC_FAILED, email=account.email)
        return NotificationResult(
            outcome=NotificationOutcome.BASELINE_ESTABLISHED, email=account.email, new_cursor=result.new_cursor
        )

    async def _rebaseline(self, account: Account, access_token: str) -> SyncResult | None:
        try:
            watch = await self._watch_registrar.register_watch(account.email, access_token)
        except UpstreamAPIError as e:
            self._logger.error(f"Watch re-registration for {account.email} failed; {e}", extra=e.extra)
            return None

        await self._account_repo.raise_cursor(account.id, watch.history_id, watch_expires_at=watch.expiration)
        await self._account_repo.commit()
        return SyncResult(start_cursor=account.sync_cursor or 0, new_cursor=watch.history_id)

    @staticmethod
    def _duplicate(email: str, result: SyncResult) -> NotificationResult:
        return NotificationResult(
            outcome=NotificationOutcome.DUPLICATE,
            email=email,
            start_cursor=result.start_cursor,
            new_cursor=result.new_cursor,
        )
