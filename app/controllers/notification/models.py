import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.exceptions import MalformedNotificationError


class NotificationOutcome(Enum):
    """Completion state of one push notification."""

    ACCOUNT_NOT_FOUND = "account_not_found"
    INELIGIBLE = "ineligible"
    REAUTHORIZATION_REQUIRED = "reauthorization_required"
    BASELINE_ESTABLISHED = "baseline_established"
    CURSOR_EXPIRED = "cursor_expired"
    SYNC_FAILED = "sync_failed"
    NO_NEW_MESSAGES = "no_new_messages"
    DUPLICATE = "duplicate"
    SYNCED_WITHOUT_RELAY = "synced_without_relay"
    RELAY_FAILED = "relay_failed"
    RELAYED = "relayed"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass
class NotificationResult:
    outcome: NotificationOutcome
    email: str
    start_cursor: int | None = None
    new_cursor: int | None = None
    message_ids: list[str] = field(default_factory=list)


class PubSubMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    data: str
    message_id: Optional[str] = Field(default=None, alias="messageId")
    publish_time: Optional[str] = Field(default=None, alias="publishTime")


class PubSubEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: PubSubMessage
    subscription: Optional[str] = None


class MailboxNotification(BaseModel):
    """Decoded Gmail notification. ``history_id`` is only a hint; the stored cursor is authoritative."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email_address: str = Field(alias="emailAddress", min_length=3)
    history_id: int = Field(alias="historyId")
    message_id: Optional[str] = None

    @field_validator("email_address")
    def normalize_email(cls, email: str) -> str:
        return email.strip().lower()


def decode_notification(body: bytes) -> MailboxNotification:
    """
    Decode a Pub/Sub push body into the mailbox notification it carries.

    Raises:
        MalformedNotificationError: The body or its base64 data cannot be decoded.
    """
    try:
        envelope = PubSubEnvelope.model_validate_json(body)
    except ValidationError as e:
        raise MalformedNotificationError("Invalid Pub/Sub message format") from e

    try:
        decoded = json.loads(base64.b64decode(envelope.message.data, altchars=b"-_", validate=False))
        notification = MailboxNotification.model_validate(decoded)
    except (binascii.Error, ValueError, ValidationError) as e:
        raise MalformedNotificationError("Could not decode Pub/Sub message data") from e

    notification.message_id = envelope.message.message_id
    return notification
