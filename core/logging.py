"""
Logging configuration
"""

import logging
import sys
from contextvars import ContextVar
from typing import Optional
from core.config import settings

# Set by each worker pool task; unset on the main task
current_worker_id: ContextVar[Optional[int]] = ContextVar("current_worker_id", default=None)

VALIDATION_LOGGER_NAME = "importer.validation"


class WorkerStampFilter(logging.Filter):
    """Adds a ``worker`` attribute: ``(n)`` inside pool worker n, ``(M)`` otherwise"""

    def filter(self, record: logging.LogRecord) -> bool:
        worker_id = current_worker_id.get()
        record.worker = f"({worker_id})" if worker_id else "(M)"
        return True


def setup_logging():
    """Configure application logging"""

    # Get log level from settings
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(WorkerStampFilter())

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(worker)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[handler]
    )

    # Set SQLAlchemy logging to WARNING to reduce noise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    # Failed rows go to their own file when one is configured
    if settings.VALIDATION_LOG_FILE:
        file_handler = logging.FileHandler(settings.VALIDATION_LOG_FILE)
        file_handler.addFilter(WorkerStampFilter())
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(worker)s | %(message)s")
        )
        logging.getLogger(VALIDATION_LOGGER_NAME).addHandler(file_handler)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {settings.LOG_LEVEL} level")
