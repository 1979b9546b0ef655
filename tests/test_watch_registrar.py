from datetime import UTC, datetime

import pytest

from app.controllers.google.client import GoogleResponse
from app.controllers.google.watch_registrar import WatchRegistrar
from app.exceptions import ConfigError, UpstreamAPIError
from tests.fakes import ScriptedGoogleClient

MAILBOX = "creator@example.com"
WATCH_PATH = f"/gmail/v1/users/{MAILBOX}/watch"
TOPIC = "projects/relay/topics/gmail"


@pytest.fixture
def google_client() -> ScriptedGoogleClient:
    return ScriptedGoogleClient()


async def test_register_watch_returns_baseline(google_client: ScriptedGoogleClient) -> None:
    google_client.script(
        "POST", WATCH_PATH, GoogleResponse(status=200, body={"historyId": "4321", "expiration": "1767225600000"})
    )

    result = await WatchRegistrar(google_client, topic=TOPIC).register_watch(MAILBOX, "access-token")

    assert result.history_id == 4321
    assert result.expiration == datetime(2026, 1, 1, tzinfo=UTC)
    call = google_client.calls_to("POST", WATCH_PATH)[0]
    assert call["access_token"] == "access-token"
    assert call["json"] == {"topicName": TOPIC, "labelIds": ["INBOX"], "labelFilterBehavior": "include"}


async def test_register_watch_uses_configured_label(google_client: ScriptedGoogleClient) -> None:
    google_client.script("POST", WATCH_PATH, GoogleResponse(status=200, body={"historyId": "1"}))

    await WatchRegistrar(google_client, topic=TOPIC, label="Label_7").register_watch(MAILBOX, "access-token")

    assert google_client.calls_to("POST", WATCH_PATH)[0]["json"]["labelIds"] == ["Label_7"]


async def test_missing_topic_is_a_configuration_error(google_client: ScriptedGoogleClient) -> None:
    with pytest.raises(ConfigError):
        await WatchRegistrar(google_client, topic=None).register_watch(MAILBOX, "access-token")
    assert google_client.calls == []


async def test_rejected_watch_raises_upstream_error(google_client: ScriptedGoogleClient) -> None:
    google_client.script(
        "POST",
        WATCH_PATH,
        GoogleResponse(status=403, body={"error": {"code": 403, "status": "PERMISSION_DENIED"}}),
    )

    with pytest.raises(UpstreamAPIError) as exc_info:
        await WatchRegistrar(google_client, topic=TOPIC).register_watch(MAILBOX, "access-token")

    assert exc_info.value.upstream_status == 403


async def test_watch_response_without_history_id_is_rejected(google_client: ScriptedGoogleClient) -> None:
    google_client.script("POST", WATCH_PATH, GoogleResponse(status=200, body={}))

    with pytest.raises(UpstreamAPIError):
        await WatchRegistrar(google_client, topic=TOPIC).register_watch(MAILBOX, "access-token")
