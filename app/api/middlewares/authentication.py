from dependency_injector.wiring import Provide, inject
from fastapi import Depends, Query

from app.container import ApplicationContainer
from app.controllers.notification.notification_controller import NotificationController
from app.exceptions import UnauthorizedNotificationError


@inject
async def verify_push_token(
    token: str | None = Query(None, description="Shared verification token configured on the Pub/Sub subscription"),
    notification_controller: NotificationController = Depends(
        Provide[ApplicationContainer.controllers.notification_controller]
    ),
) -> None:
    """
    FastAPI dependency that rejects push requests not carrying the configured verification token.

    Raises:
        UnauthorizedNotificationError: If a token is configured and the request does not match it
    """
    if not notification_controller.is_trusted_push(token):
        raise UnauthorizedNotificationError("Invalid push verification token.")
