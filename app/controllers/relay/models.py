from pydantic import BaseModel, ConfigDict

from app.controllers.google.models import NormalizedMessage


class RelayPayload(BaseModel):
    """Body posted to the automation endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    creator_id: str
    creator_email: str
    automation_mode: str
    emails: list[NormalizedMessage]
