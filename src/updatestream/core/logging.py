import logging
import logging.config

from updatestream.core.update_context import get_update_id

_ALLOWED_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class UpdateIdFilter(logging.Filter):
    """Attach the update being handled to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        update_id = get_update_id()
        record.update_id = update_id if update_id is not None else "-"
        return True


def configure_logging(level: str) -> None:
    """Configure process-wide logging for the updater."""
    normalized_level = level.upper()
    if normalized_level not in _ALLOWED_LEVELS:
        allowed = ", ".join(sorted(_ALLOWED_LEVELS))
        raise ValueError(f"Invalid LOG_LEVEL '{level}'. Expected one of: {allowed}")

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": (
                        "%(asctime)s %(levelname)s %(name)s "
                        "[update_id=%(update_id)s]: %(message)s"
                    ),
                }
            },
            "filters": {
                "update_id": {"()": "updatestream.core.logging.UpdateIdFilter"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                    "filters": ["update_id"],
                }
            },
            "loggers": {
                # uvicorn's per-request access lines duplicate the webhook events.
                "uvicorn.access": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
            },
            "root": {
                "level": normalized_level,
                "handlers": ["console"],
            },
        }
    )
