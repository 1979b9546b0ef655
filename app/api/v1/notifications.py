"""
Push notification router - receives Gmail change notifications delivered by Pub/Sub.
"""

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Request

from app.api.middlewares.authentication import verify_push_token
from app.api.payloads.error import APIError
from app.api.payloads.notifications import NotificationAcknowledgement
from app.container import ApplicationContainer
from app.controllers.notification.models import decode_notification
from app.controllers.notification.notification_controller import NotificationController
from app.exceptions import ProtocolError

router = APIRouter()


@router.post(
    "/gmail",
    response_model=NotificationAcknowledgement,
    dependencies=[Depends(verify_push_token)],
    responses={
        400: {"model": APIError, "description": "Malformed Pub/Sub envelope"},
        401: {"model": APIError, "description": "Invalid verification token"},
        500: {"model": APIError, "description": "Service configuration error"},
    },
    summary="Gmail push notification",
    description="Pub/Sub push endpoint; syncs the mailbox and relays new messages",
)
@inject
async def receive_notification(
    request: Request,
    notification_controller: NotificationController = Depends(
        Provide[ApplicationContainer.controllers.notification_controller]
    ),
) -> NotificationAcknowledgement:
    """
    Handle one push notification.

    Any completed outcome, including downstream failures, is acknowledged with 200 so Pub/Sub does not redeliver
    notifications that cannot succeed.
    """
    notification = decode_notification(await request.body())
    result = await notification_controller.handle(notification)
    return NotificationAcknowledgement(outcome=result.outcome.value)


@router.api_route("/gmail", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def reject_method(request: Request) -> None:
    raise ProtocolError(f"Method {request.method} not allowed", method=request.method)
