"""ASGI entry point: ``uvicorn main:app`` or gunicorn with ``gunicorn.conf.py``."""

import sentry_sdk

from app.container import get_wire_container
from app.create_app import create_app
from logging_config import setup_logging
from settings import settings

if settings.sentry.is_enabled and not settings.environment.is_local:
    sentry_sdk.init(dsn=settings.sentry.dsn, environment=settings.environment.value, send_default_pii=False)

setup_logging()
app = create_app(get_wire_container())
