import logging
import logging.config
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from app.environment import EnvironmentName
from settings import settings

JSON_FORMAT = (
    "%(module)s %(asctime)s %(levelname)s %(process)d %(name)s %(funcName)s %(filename)s %(lineno)d %(message)s"
)
# Third-party loggers that are only interesting when something goes wrong
QUIET_LOGGERS = ("aiohttp.access", "asyncio", "sqlalchemy.engine", "urllib3", "python_multipart")

LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "jsonFormat": {
            "format": JSON_FORMAT,
            "class": "logging_config.CustomJsonFormatter",
        },
    },
    "handlers": {
        "jsonStreamHandler": {
            "formatter": "jsonFormat",
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",  # Default is stderr
        },
    },
    "loggers": {
        "": {"handlers": ["jsonStreamHandler"], "level": settings.logging.level, "propagate": False},
        # uvicorn installs its own handlers; route its access log through ours once
        "uvicorn.access": {"handlers": ["jsonStreamHandler"], "propagate": False},
        **{name: {"level": logging.WARNING} for name in QUIET_LOGGERS},
    },
}
LOCAL_LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
    },
    "handlers": {
        "default": {
            "formatter": "standard",
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",  # Default is stderr
        },
    },
    "loggers": {
        "": {"handlers": ["default"], "level": settings.logging.level, "propagate": False},
        "uvicorn.access": {"handlers": ["default"], "propagate": False},
        **{name: {"level": logging.WARNING} for name in QUIET_LOGGERS},
    },
}


# Used because we add custom local formatting.
class CustomJsonFormatter(JsonFormatter):
    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._pretty = settings.environment == EnvironmentName.DEVELOPMENT and settings.logging.use_pretty_json
        if self._pretty:
            self.json_indent = 2

    def format(self, record: logging.LogRecord) -> str:
        result = super().format(record)
        if self._pretty:
            result = result.replace("\\n", "\n\t\t")
        return result


def setup_logging() -> None:
    """Configure the root logger: JSON to stdout, or plain text when LOGGING_USE_CONFIG is off."""
    logging.config.dictConfig(LOGGING_CONFIG if settings.logging.use_config else LOCAL_LOGGING_CONFIG)
    logging.captureWarnings(True)
    logging.disable(logging.NOTSET)
