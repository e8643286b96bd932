"""
Logging setup shared by the API process, the scheduler and the CLI jobs.
"""
import logging
import sys

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    if any(getattr(h, "_judgment_sync", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._judgment_sync = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL or "INFO").upper())

    # httpx logs every request at INFO; keep registry chatter out of run logs
    logging.getLogger("httpx").setLevel(logging.WARNING)


configure_logging()
logger = logging.getLogger("app")
