from pydantic import BaseModel, Field


class NotificationAcknowledgement(BaseModel):
    """Response returned to Pub/Sub for every acknowledged push."""

    outcome: str = Field(..., description="How the notification was handled", examples=["relayed"])
