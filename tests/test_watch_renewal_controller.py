from datetime import UTC, datetime, timedelta

import pytest

from app.controllers.google.models import NormalizedMessage
from app.controllers.grant.watch_renewal_controller import WatchRenewalController
from app.controllers.notification.models import MailboxNotification, NotificationOutcome
from app.controllers.notification.notification_controller import NotificationController
from app.exceptions import UpstreamAPIError, UpstreamAuthError
from app.models import AccountStatus
from app.utils.token_cipher import TokenCipher
from tests.fakes import FakeAccountRepo, FakeHistorySynchronizer, FakeRelay, FakeTokenProvider, FakeWatchRegistrar

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


@pytest.fixture
def controller(
    account_repo: FakeAccountRepo,
    token_provider: FakeTokenProvider,
    watch_registrar: FakeWatchRegistrar,
    token_cipher: TokenCipher,
) -> WatchRenewalController:
    return WatchRenewalController(
        account_repo=account_repo,  # type: ignore[arg-type]
        token_provider=token_provider,  # type: ignore[arg-type]
        watch_registrar=watch_registrar,  # type: ignore[arg-type]
        token_cipher=token_cipher,
    )


async def test_renews_only_active_accounts_expiring_soon(
    controller: WatchRenewalController,
    account_repo: FakeAccountRepo,
    watch_registrar: FakeWatchRegistrar,
    token_cipher: TokenCipher,
) -> None:
    token = token_cipher.encrypt("refresh")
    account_repo.add(email="soon@example.com", refresh_token=token, sync_cursor=50, watch_expires_at=NOW)
    account_repo.add(email="never@example.com", refresh_token=token, sync_cursor=None)
    account_repo.add(
        email="later@example.com", refresh_token=token, sync_cursor=50, watch_expires_at=NOW + timedelta(days=6)
    )
    account_repo.add(email="paused@example.com", refresh_token=token, status=AccountStatus.paused)
    watch_registrar.history_id = 70
    watch_registrar.expiration = NOW + timedelta(days=7)

    summary = await controller.renew_expiring(timedelta(hours=48), now=NOW)

    assert sorted(summary.renewed) == ["never@example.com", "soon@example.com"]
    assert sorted(watch_registrar.registered) == ["never@example.com", "soon@example.com"]
    assert account_repo.row("soon@example.com")["watch_expires_at"] == NOW + timedelta(days=7)
    assert account_repo.row("never@example.com")["sync_cursor"] == 70


async def test_renewal_never_rewinds_the_cursor(
    controller: WatchRenewalController,
    account_repo: FakeAccountRepo,
    watch_registrar: FakeWatchRegistrar,
    token_cipher: TokenCipher,
) -> None:
    account_repo.add(email="busy@example.com", refresh_token=token_cipher.encrypt("refresh"), sync_cursor=900)
    watch_registrar.history_id = 800

    await controller.renew_expiring(timedelta(hours=48), now=NOW)

    assert account_repo.row("busy@example.com")["sync_cursor"] == 900


async def test_renewal_keeps_unsynced_history_for_the_next_notification(
    controller: WatchRenewalController,
    notification_controller: NotificationController,
    account_repo: FakeAccountRepo,
    watch_registrar: FakeWatchRegistrar,
    history_synchronizer: FakeHistorySynchronizer,
    relay: FakeRelay,
    token_cipher: TokenCipher,
) -> None:
    account_repo.add(
        email="creator@example.com", refresh_token=token_cipher.encrypt("refresh"), sync_cursor=50, watch_expires_at=NOW
    )
    unsynced = NormalizedMessage(id="m1", subject="Hello", from_="sender@example.com", body="Hi", thread_id="t1")
    history_synchronizer.add_message("creator@example.com", 55, unsynced)
    watch_registrar.history_id = 60
    watch_registrar.expiration = NOW + timedelta(days=7)

    summary = await controller.renew_expiring(timedelta(hours=48), now=NOW)

    assert summary.renewed == ["creator@example.com"]
    assert account_repo.row("creator@example.com")["sync_cursor"] == 50
    assert account_repo.row("creator@example.com")["watch_expires_at"] == NOW + timedelta(days=7)

    result = await notification_controller.handle(
        MailboxNotification.model_validate({"emailAddress": "creator@example.com", "historyId": "60"})
    )

    assert result.outcome == NotificationOutcome.RELAYED
    assert result.message_ids == ["m1"]
    assert [message.id for message in relay.deliveries[0]["messages"]] == ["m1"]
    assert account_repo.row("creator@example.com")["sync_cursor"] == 55


async def test_renewal_failures_are_reported_per_account(
    controller: WatchRenewalController,
    account_repo: FakeAccountRepo,
    token_provider: FakeTokenProvider,
    watch_registrar: FakeWatchRegistrar,
    token_cipher: TokenCipher,
) -> None:
    account_repo.add(email="revoked@example.com", refresh_token=token_cipher.encrypt("refresh"), sync_cursor=1)
    token_provider.refresh_error = UpstreamAuthError("invalid_grant")

    summary = await controller.renew_expiring(timedelta(hours=48), now=NOW)

    assert summary.reauthorization_required == ["revoked@example.com"]
    assert account_repo.row("revoked@example.com")["reauthorization_required"] is True

    token_provider.refresh_error = None
    account_repo.add(email="flaky@example.com", refresh_token=token_cipher.encrypt("refresh"), sync_cursor=1)
    watch_registrar.error = UpstreamAPIError("watch failed", upstream_status=500)

    summary = await controller.renew_expiring(timedelta(hours=48), now=NOW)

    assert summary.failed == ["flaky@example.com"]
