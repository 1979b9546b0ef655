from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GoogleModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TokenExchangeResult(GoogleModel):
    """Response of the authorization-code grant."""

    access_token: str
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None


class AccessTokenResult(GoogleModel):
    """Response of the refresh-token grant."""

    access_token: str
    expires_in: Optional[int] = None


class IdentityClaims(GoogleModel):
    email: str
    name: Optional[str] = None
    email_verified: Optional[bool] = None

    @field_validator("email")
    def normalize_email(cls, email: str) -> str:
        return email.strip().lower()


@dataclass
class AuthorizationGrant:
    access_token: str
    refresh_token: str | None
    identity: IdentityClaims


class WatchResult(GoogleModel):
    history_id: int = Field(alias="historyId")
    expiration: Optional[datetime] = None

    @field_validator("expiration", mode="before")
    def parse_expiration(cls, value: Any) -> datetime | None:
        # Gmail reports the expiry as epoch milliseconds in a string
        if value is None or isinstance(value, datetime):
            return value
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)


class HistoryMessageRef(GoogleModel):
    id: str
    thread_id: Optional[str] = Field(default=None, alias="threadId")


class HistoryMessageAdded(GoogleModel):
    message: HistoryMessageRef


class HistoryRecord(GoogleModel):
    id: str
    messages_added: list[HistoryMessageAdded] = Field(default_factory=list, alias="messagesAdded")


class HistoryPage(GoogleModel):
    history: list[HistoryRecord] = Field(default_factory=list)
    next_page_token: Optional[str] = Field(default=None, alias="nextPageToken")
    history_id: int = Field(alias="historyId")


class MessageHeader(GoogleModel):
    name: str
    value: str = ""


class MessagePartBody(GoogleModel):
    data: Optional[str] = None
    size: Optional[int] = None
    attachment_id: Optional[str] = Field(default=None, alias="attachmentId")


class MessagePart(GoogleModel):
    mime_type: str = Field(default="", alias="mimeType")
    filename: Optional[str] = None
    headers: list[MessageHeader] = Field(default_factory=list)
    body: Optional[MessagePartBody] = None
    parts: list["MessagePart"] = Field(default_factory=list)


class GmailMessage(GoogleModel):
    id: str
    thread_id: str = Field(alias="threadId")
    label_ids: list[str] = Field(default_factory=list, alias="labelIds")
    snippet: Optional[str] = None
    payload: Optional[MessagePart] = None


class NormalizedMessage(GoogleModel):
    """A new message in the shape relayed to the automation endpoint."""

    id: str
    subject: str = ""
    from_: str = Field(default="", alias="from")
    body: str = ""
    thread_id: str


@dataclass
class SyncResult:
    start_cursor: int
    new_cursor: int
    messages: list[NormalizedMessage] = field(default_factory=list)
