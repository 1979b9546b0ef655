from typing import Optional

from pydantic import BaseModel


class APIError(BaseModel):
    """Error body rendered by the application's exception handlers."""

    error: str
    error_description: Optional[str] = None
