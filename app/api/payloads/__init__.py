"""
API payloads package for Pydantic response/request models.
"""

from .error import APIError
from .notifications import NotificationAcknowledgement

__all__ = [
    "APIError",
    "NotificationAcknowledgement",
]
