"""
Middleware that commits whatever the request left pending in its database session.
"""

import logging
from typing import Awaitable, Callable

from fastapi import Request, Response
from fastapi_async_sqlalchemy import db
from fastapi_async_sqlalchemy.exceptions import MissingSessionError
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class AutoCommitMiddleware(BaseHTTPMiddleware):
    """
    Commit the request's session once the handler returns, roll it back if the handler raised.

    Cursor writes are committed by the notification handler itself before relaying; this only flushes the rest
    (relay log rows, re-authorization flags written late in a request).
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        try:
            response = await call_next(request)
        except Exception as e:
            await self._rollback(request, e)
            raise

        try:
            await db.session.commit()
        except MissingSessionError:
            logger.debug(f"No database session for {request.url.path}; nothing to commit")
        except Exception as e:
            logger.warning(f"Failed to commit database transaction for {request.url.path}: {e}")
        return response

    @staticmethod
    async def _rollback(request: Request, error: Exception) -> None:
        try:
            await db.session.rollback()
            logger.error(f"Database transaction for {request.url.path} rolled back due to error: {error}")
        except MissingSessionError:
            logger.debug(f"No database session for {request.url.path}; nothing to roll back")
        except Exception as e:
            logger.warning(f"Failed to roll back database transaction for {request.url.path}: {e}")
