from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi_async_sqlalchemy import SQLAlchemyMiddleware, db
from starlette.applications import Starlette

from settings import settings


@asynccontextmanager
async def fastapi_sqlalchemy_context() -> AsyncGenerator[None, None]:
    """Give standalone scripts (manage.py) the same ``db.session`` the API handlers use."""
    # The middleware binds the engine to ``db`` when constructed; the throwaway app is never served
    SQLAlchemyMiddleware(
        Starlette(),
        db_url=f"{settings.database.async_host}/{settings.database.name}",
        engine_args={
            "pool_size": settings.database.min_pool_size,
            "max_overflow": settings.database.max_pool_size - settings.database.min_pool_size,
            "pool_pre_ping": True,
        },
        session_args={"expire_on_commit": False},
    )

    async with db(commit_on_exit=True):
        yield
