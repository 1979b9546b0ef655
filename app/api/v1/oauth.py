"""
Gmail OAuth router - starts and completes the mailbox authorization flow.
"""

import logging

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from app.api.payloads.error import APIError
from app.container import ApplicationContainer
from app.controllers.grant.authorization_controller import (
    AuthorizationController,
    AuthorizationError,
    AuthorizationFailure,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/gmail/authorize",
    response_class=RedirectResponse,
    status_code=status.HTTP_302_FOUND,
    responses={
        400: {"model": APIError, "description": "Unknown owner"},
        500: {"model": APIError, "description": "OAuth client is not configured"},
    },
    summary="Start mailbox authorization",
    description="Redirect to Google's consent screen to authorize a mailbox for an owner",
)
@inject
async def authorize(
    owner_id: str = Query(..., description="UUID of the owner the mailbox will belong to"),
    login_hint: str | None = Query(None, description="Mailbox address to preselect on the consent screen"),
    authorization_controller: AuthorizationController = Depends(
        Provide[ApplicationContainer.controllers.authorization_controller]
    ),
) -> RedirectResponse:
    url = await authorization_controller.build_authorization_url(owner_id, login_hint=login_hint)
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.get(
    "/gmail/callback",
    response_class=RedirectResponse,
    status_code=status.HTTP_302_FOUND,
    summary="Complete mailbox authorization",
    description="OAuth redirect target; stores the mailbox, registers its watch and redirects to the frontend",
)
@inject
async def callback(
    code: str | None = Query(None, description="Authorization code issued by Google"),
    state: str | None = Query(None, description="State value issued by the authorize endpoint"),
    error: str | None = Query(None, description="Error returned by Google when consent was not granted"),
    authorization_controller: AuthorizationController = Depends(
        Provide[ApplicationContainer.controllers.authorization_controller]
    ),
) -> RedirectResponse:
    """
    Complete the OAuth flow.

    Always answers with a redirect: to the success URL once the mailbox is stored and watched, otherwise to the
    error URL with a coarse reason code. Tokens are never part of the redirect.
    """
    try:
        account = await authorization_controller.complete_authorization(code, state, error=error)
    except AuthorizationError as e:
        if e.reason in (AuthorizationFailure.CONFIGURATION, AuthorizationFailure.WATCH_FAILED):
            logger.error(f"Mailbox authorization failed; {e}", extra=e.extra)
        else:
            logger.warning(f"Mailbox authorization rejected; {e}", extra=e.extra)
        return RedirectResponse(
            url=authorization_controller.error_redirect_url(e.reason), status_code=status.HTTP_302_FOUND
        )
    except Exception:
        logger.exception("Unexpected error completing mailbox authorization")
        return RedirectResponse(
            url=authorization_controller.error_redirect_url(AuthorizationFailure.INTERNAL),
            status_code=status.HTTP_302_FOUND,
        )

    logger.info(f"Mailbox {account.email} connected; cursor: {account.sync_cursor}")
    return RedirectResponse(url=authorization_controller.success_redirect_url(), status_code=status.HTTP_302_FOUND)
