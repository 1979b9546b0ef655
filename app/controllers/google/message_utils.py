import base64
import binascii
import logging

from app.controllers.google.models import GmailMessage, MessagePart, NormalizedMessage

logger = logging.getLogger(__name__)


class MessageUtils:
    """Utility class for converting Gmail API messages to the relayed message format."""

    @staticmethod
    def normalize(message: GmailMessage) -> NormalizedMessage:
        """Convert a full-format Gmail message to a NormalizedMessage."""
        payload = message.payload
        return NormalizedMessage(
            id=message.id,
            thread_id=message.thread_id,
            subject=MessageUtils.get_header(payload, "Subject"),
            from_=MessageUtils.get_header(payload, "From"),
            body=MessageUtils.extract_body(payload),
        )

    @staticmethod
    def get_header(payload: MessagePart | None, name: str) -> str:
        """Return the first header with the given name, compared case-insensitively."""
        if payload is None:
            return ""
        wanted = name.lower()
        for header in payload.headers:
            if header.name.lower() == wanted:
                return header.value
        return ""

    @staticmethod
    def extract_body(payload: MessagePart | None) -> str:
        """
        Extract a best-effort plain-text body.

        The first ``text/plain`` leaf wins; a message without multipart structure falls back to its own body.
        Anything else yields an empty string.
        """
        if payload is None:
            return ""

        if payload.parts:
            part = MessageUtils._find_plain_text_part(payload)
            if part is None or part.body is None:
                return ""
            return MessageUtils.decode_body_data(part.body.data)

        if payload.body is None:
            return ""
        return MessageUtils.decode_body_data(payload.body.data)

    @staticmethod
    def decode_body_data(data: str | None) -> str:
        """Decode base64url body data, tolerating missing padding."""
        if not data:
            return ""
        try:
            raw = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
        except (binascii.Error, ValueError):
            logger.warning("Unable to decode message body data")
            return ""
        return raw.decode("utf-8", errors="replace")

    @staticmethod
    def _find_plain_text_part(part: MessagePart) -> MessagePart | None:
        if not part.parts:
            is_attachment = bool(part.filename) or bool(part.body and part.body.attachment_id)
            if part.mime_type == "text/plain" and not is_attachment and part.body and part.body.data:
                return part
            return None

        for child in part.parts:
            found = MessageUtils._find_plain_text_part(child)
            if found is not None:
                return found
        return None
