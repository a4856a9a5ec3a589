import logging.config

from lexhold.config import settings

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Install the root handler once per process."""
    global _configured
    if _configured:
        return
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": settings.log_format}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                }
            },
            "root": {
                "handlers": ["console"],
                "level": (level or settings.log_level).upper(),
            },
            "loggers": {
                "sqlalchemy.engine": {"level": "WARNING"},
                "celery": {"level": "INFO"},
            },
        }
    )
    _configured = True
