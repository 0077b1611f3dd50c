import logging
import os
from logging.config import dictConfig
from typing import Any, Dict, Optional

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def build_logging_config(
    level: str = "INFO",
    *,
    telemetry_level: Optional[str] = None,
    log_file: Optional[str] = None,
    debug_http: bool = False,
) -> Dict[str, Any]:
    """Return the dictConfig payload for the quiz coach process."""
    level = level.upper()
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": log_file,
            "encoding": "utf-8",
        }

    loggers: Dict[str, Dict[str, Any]] = {
        "quizcoach.telemetry": {"level": (telemetry_level or level).upper()},
    }
    if debug_http:
        loggers["uvicorn.access"] = {"level": "DEBUG"}
        loggers["sqlalchemy.engine"] = {"level": "INFO"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": DEFAULT_LOG_FORMAT,
            },
        },
        "handlers": handlers,
        "root": {
            "handlers": list(handlers),
            "level": level,
        },
        "loggers": loggers,
    }


def configure_logging() -> None:
    """Configure process logging from QUIZCOACH_* environment flags."""
    dictConfig(
        build_logging_config(
            os.getenv("QUIZCOACH_LOG_LEVEL", "INFO"),
            telemetry_level=os.getenv("QUIZCOACH_TELEMETRY_LOG_LEVEL"),
            log_file=os.getenv("QUIZCOACH_LOG_FILE") or None,
            debug_http=os.getenv("QUIZCOACH_DEBUG_HTTP", "0") == "1",
        )
    )
    logging.getLogger(__name__).debug("Logging configured")
