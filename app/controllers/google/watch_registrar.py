import logging

from pydantic import ValidationError

from app.controllers.google.client import GoogleAPIClient
from app.controllers.google.models import WatchResult
from app.exceptions import ConfigError, UpstreamAPIError


class WatchRegistrar:
    """Registers Gmail push notifications for a mailbox."""

    def __init__(self, google_client: GoogleAPIClient, topic: str | None, label: str = "INBOX") -> None:
        self._logger = logging.getLogger(__name__)
        self._google_client = google_client
        self._topic = topic
        self._label = label

    async def register_watch(self, mailbox: str, access_token: str) -> WatchResult:
        """
        (Re)register the watch for a mailbox and return the baseline cursor reported by Gmail.

        Registering again replaces the previous subscription, so this is safe to call repeatedly.

        Raises:
            ConfigError: No Pub/Sub topic is configured.
            UpstreamAPIError: Gmail answered with a non-2xx status.
        """
        if not self._topic:
            raise ConfigError("GOOGLE_PUBSUB_TOPIC is not configured")

        response = await self._google_client.request(
            "POST",
            self._google_client.gmail_url(mailbox, "watch"),
            access_token=access_token,
            json_body={"topicName": self._topic, "labelIds": [self._label], "labelFilterBehavior": "include"},
        )
        if not response.ok:
            raise UpstreamAPIError(
                f"Gmail watch registration failed for {mailbox}: {response.error_code or response.text[:200]}",
                upstream_status=response.status,
            )

        try:
            result = WatchResult.model_validate(response.body)
        except ValidationError as e:
            raise UpstreamAPIError(
                f"Unexpected watch response for {mailbox}", upstream_status=response.status
            ) from e

        self._logger.info(
            f"Gmail watch registered for {mailbox}; baseline history_id: {result.history_id}, "
            f"expires: {result.expiration}"
        )
        return result
