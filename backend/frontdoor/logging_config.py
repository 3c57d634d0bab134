import logging.config

from .config import settings


def setup_logging(level: str | None = None):
    """Console logging for the service; uvicorn's own loggers are left alone."""
    level = (level or settings.LOG_LEVEL).upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "frontdoor": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
        },
    })
