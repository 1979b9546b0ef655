"""Pytest configuration and fixtures for the relay.

Settings are resolved at import time, so RELAY_ENV must be set before anything under app/ is imported.
"""

import os

os.environ["RELAY_ENV"] = "test"

import pytest  # noqa: E402

from app.controllers.notification.notification_controller import NotificationController  # noqa: E402
from app.utils.token_cipher import TokenCipher  # noqa: E402
from settings.settings import NotificationSettings  # noqa: E402
from settings.test_settings import TEST_ENCRYPTION_KEY  # noqa: E402
from tests.fakes import (  # noqa: E402
    FakeAccountRepo,
    FakeHistorySynchronizer,
    FakeOwnerRepo,
    FakeRelay,
    FakeRelayLogRepo,
    FakeTokenProvider,
    FakeWatchRegistrar,
)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip database-backed tests unless RELAY_TEST_DATABASE=1 points them at a disposable Postgres."""
    if os.getenv("RELAY_TEST_DATABASE") == "1":
        return
    skip_db = pytest.mark.skip(reason="Postgres not configured: set RELAY_TEST_DATABASE=1 and DATABASE_HOST")
    for item in items:
        if "requires_db" in item.keywords:
            item.add_marker(skip_db)


@pytest.fixture
def token_cipher() -> TokenCipher:
    return TokenCipher(TEST_ENCRYPTION_KEY)


@pytest.fixture
def account_repo() -> FakeAccountRepo:
    return FakeAccountRepo()


@pytest.fixture
def owner_repo() -> FakeOwnerRepo:
    return FakeOwnerRepo()


@pytest.fixture
def relay_log_repo() -> FakeRelayLogRepo:
    return FakeRelayLogRepo()


@pytest.fixture
def token_provider() -> FakeTokenProvider:
    return FakeTokenProvider()


@pytest.fixture
def watch_registrar() -> FakeWatchRegistrar:
    return FakeWatchRegistrar()


@pytest.fixture
def history_synchronizer() -> FakeHistorySynchronizer:
    return FakeHistorySynchronizer()


@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def notification_settings() -> NotificationSettings:
    return NotificationSettings(
        PUBSUB_VERIFICATION_TOKEN=None,
        NOTIFICATION_DEADLINE=50,
        SYNC_MAX_CURSOR_CONFLICTS=2,
        SYNC_REBASELINE_ON_EXPIRED=True,
    )


@pytest.fixture
def notification_controller(
    account_repo: FakeAccountRepo,
    token_provider: FakeTokenProvider,
    watch_registrar: FakeWatchRegistrar,
    history_synchronizer: FakeHistorySynchronizer,
    relay: FakeRelay,
    token_cipher: TokenCipher,
    notification_settings: NotificationSettings,
) -> NotificationController:
    return NotificationController(
        account_repo=account_repo,  # type: ignore[arg-type]
        token_provider=token_provider,  # type: ignore[arg-type]
        watch_registrar=watch_registrar,  # type: ignore[arg-type]
        history_synchronizer=history_synchronizer,  # type: ignore[arg-type]
        relay_controller=relay,  # type: ignore[arg-type]
        token_cipher=token_cipher,
        config=notification_settings,
    )
