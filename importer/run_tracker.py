"""
Persist the ImportRun row describing one engine run
"""

import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from models.base import RunStatus
from models.import_run import ImportRun
import logging

logger = logging.getLogger(__name__)


def format_error_trace(error: BaseException) -> str:
    """``ErrorClass - message`` followed by the traceback"""
    trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return f"{type(error).__name__} - {error}\n{trace}"


class ImportRunTracker:
    """
    Writes the run row through the destination session factory.

    Every write uses a short-lived session of its own, so tracking never
    shares a session with a batch job.
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker
        self.run_id: Optional[int] = None

    async def start(
        self,
        source_model: str,
        destination_model: str,
        importer_version: str,
        started_at: Optional[datetime] = None
    ) -> ImportRun:
        """Create the run row"""
        async with self.session_maker() as session:
            import_run = ImportRun(
                source_model=source_model,
                destination_model=destination_model,
                importer_version=importer_version,
                status=RunStatus.RUNNING,
                started_at=started_at or datetime.utcnow()
            )
            session.add(import_run)
            await session.commit()
            await session.refresh(import_run)

        self.run_id = import_run.id
        logger.debug(f"Started import run {self.run_id}")
        return import_run

    async def record_failure(self, error: BaseException) -> None:
        await self._update(error_trace=format_error_trace(error))

    async def complete(
        self,
        status: RunStatus,
        records_created: int,
        records_updated: int,
        duration_ms: int,
        validation_errors: Dict[str, Any],
        watermark: Any = None
    ) -> None:
        """Final counters; called whether the run succeeded or not"""
        await self._update(
            status=status,
            completed_at=datetime.utcnow(),
            records_created=records_created,
            records_updated=records_updated,
            duration=duration_ms,
            validation_errors=validation_errors,
            watermark=str(watermark) if watermark is not None else None
        )

    async def _update(self, **attrs: Any) -> None:
        if self.run_id is None:
            logger.warning("Import run was never started; nothing to update")
            return

        async with self.session_maker() as session:
            import_run = await session.get(ImportRun, self.run_id)
            for name, value in attrs.items():
                setattr(import_run, name, value)
            await session.commit()
