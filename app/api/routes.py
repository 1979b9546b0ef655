from fastapi import APIRouter

from app.api.v1.notifications import router as notifications_router
from app.api.v1.oauth import router as oauth_router

api_router = APIRouter()

api_router.include_router(oauth_router, prefix="/oauth", tags=["oauth2"])
api_router.include_router(notifications_router, prefix="/notifications", tags=["notifications"])
