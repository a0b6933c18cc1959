"""Logging configuration for the API server and the email worker."""

import logging
import sys
from contextvars import ContextVar

from stormlink.config import settings

# Correlation ID of the HTTP request being handled, if any
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

DEV_FORMAT = "%(levelname)s:     %(name)s - %(message)s"
PROD_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
# Workers run unattended and may be scaled out, so the pid is always included
WORKER_FORMAT = "%(asctime)s - %(process)d - %(name)s - %(levelname)s - %(message)s"

# Chatty third-party loggers capped at WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "amqp", "kombu", "aiosmtplib")


def get_request_id() -> str | None:
    """Get the current request's correlation ID."""
    return request_id_var.get()


class RequestIDFilter(logging.Filter):
    """Expose the current request ID to formatters as ``%(request_id)s``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


def get_uvicorn_log_config() -> dict:
    """Build the dictConfig uvicorn uses for the API server."""
    if settings.is_development:
        access_fmt = '%(levelprefix)s "%(request_line)s" %(status_code)s'
        default_fmt = "%(levelprefix)s %(message)s"
    else:
        access_fmt = '%(asctime)s %(levelprefix)s %(client_addr)s - "%(request_line)s" %(status_code)s'
        default_fmt = "%(asctime)s %(levelprefix)s [%(request_id)s] %(message)s"

    def stream_handler(formatter: str) -> dict:
        return {
            "class": "logging.StreamHandler",
            "formatter": formatter,
            "filters": ["request_id"],
            "stream": "ext://sys.stdout",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_id": {"()": RequestIDFilter}},
        "formatters": {
            "access": {"()": "uvicorn.logging.AccessFormatter", "fmt": access_fmt},
            "default": {"()": "uvicorn.logging.DefaultFormatter", "fmt": default_fmt},
        },
        "handlers": {
            "access": stream_handler("access"),
            "default": stream_handler("default"),
        },
        "loggers": {
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
            **{name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        },
        "root": {"handlers": ["default"], "level": settings.log_level},
    }


def setup_logging(worker: bool = False, verbose: bool = False) -> None:
    """Configure root logging for CLI commands and the worker process.

    Args:
        worker: Use the worker format regardless of environment
        verbose: Force DEBUG level
    """
    if worker:
        log_format = WORKER_FORMAT
    else:
        log_format = DEV_FORMAT if settings.is_development else PROD_FORMAT

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(log_format))
    handler.addFilter(RequestIDFilter())

    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, settings.log_level),
        handlers=[handler],
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
