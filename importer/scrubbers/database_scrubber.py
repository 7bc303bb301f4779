"""
Scrub PII in place across a whole table.

Pages through the table by primary key on the shared worker pool, masks the
configured text columns and writes back only the rows that changed.
"""

import functools
import time
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import load_only

from core.config import settings
from core.database import destination_session_maker
from core.exceptions import ConfigurationError
from importer.loaders.table_store import TableStore
from importer.metrics import DESTINATION_DB, PROCESSING, BatchResult, RunMetrics
from importer.scrubbers.data_scrubber import DataScrubber
from importer.worker_pool import WorkerPool
import logging

logger = logging.getLogger(__name__)


class DatabaseScrubber:
    """
    Masks PII stored in ``columns`` of ``model``'s table.

    Usage:
        scrubber = DatabaseScrubber(Person, columns=["notes", "ssn"])
        result = await scrubber.run()
    """

    def __init__(
        self,
        model: Any,
        columns: Sequence[str],
        batch_size: Optional[int] = None,
        pool_size: int = 4,
        session_maker: Optional[async_sessionmaker] = None
    ):
        if not columns:
            raise ConfigurationError(
                "you must name at least one column to scrub",
                context={"option": "columns"}
            )

        self.model = model
        self.columns = list(columns)
        self.batch_size = batch_size or settings.SCRUB_BATCH_SIZE
        self.pool_size = pool_size
        self.session_maker = session_maker or destination_session_maker()

        self.scrubber = DataScrubber(model)
        unknown = [name for name in self.columns if name not in self.scrubber.known_columns]
        if unknown:
            raise ConfigurationError(
                f"{self.scrubber.table_name} has no column(s) {', '.join(unknown)}",
                context={"table_name": self.scrubber.table_name, "columns": ", ".join(unknown)}
            )

        mapper = sa_inspect(model)
        self.primary_key = mapper.get_property_by_column(mapper.primary_key[0]).key
        self.metrics = RunMetrics()

    def base_query(self) -> Any:
        loaded = dict.fromkeys([self.primary_key, *self.columns])
        return (
            select(self.model)
            .options(load_only(*(getattr(self.model, name) for name in loaded)))
            .order_by(getattr(self.model, self.primary_key).asc())
        )

    async def run(self) -> Dict[str, Any]:
        """
        Scrub every row.

        Returns:
            Dictionary with records_scanned and records_updated
        """
        start_time = time.perf_counter()

        async with self.session_maker() as session:
            count = await TableStore(session, self.model).count(self.base_query())

        if count == 0:
            logger.info(f"no {self.scrubber.table_name} rows to scrub, exiting")
            return self.summary()

        logger.info(f"Scrubbing {', '.join(self.columns)} on {count} {self.scrubber.table_name} rows...")

        pool = WorkerPool(self.pool_size)
        for offset in range(0, count, self.batch_size):
            pool.schedule(functools.partial(self._scrub_batch, offset))
        await pool.shutdown()

        logger.info(
            f"Scrubbed {self.scrubber.table_name}: {self.metrics.records_updated} of "
            f"{self.metrics.records_fetched} rows changed in {time.perf_counter() - start_time:.3f}s"
        )
        return self.summary()

    def summary(self) -> Dict[str, Any]:
        return {
            "records_scanned": self.metrics.records_fetched,
            "records_updated": self.metrics.records_updated,
        }

    async def _scrub_batch(self, offset: int) -> None:
        result = BatchResult(offset=offset)
        try:
            async with self.session_maker() as session:
                store = TableStore(session, self.model)
                rows = await store.fetch_page(self.base_query(), offset, self.batch_size)
                result.records_fetched = len(rows)

                started = time.perf_counter()
                changed: Dict[Any, Dict[str, Any]] = {}
                for row in rows:
                    original = {name: getattr(row, name) for name in self.columns}
                    scrubbed = self.scrubber.scrub(dict(original))
                    if scrubbed != original:
                        changed[getattr(row, self.primary_key)] = scrubbed
                result.timings[PROCESSING] = time.perf_counter() - started

                # the session identity map holds the loaded rows; drop them first
                session.expunge_all()

                started = time.perf_counter()
                result.records_updated = await store.bulk_update_by_id(changed)
                result.timings[DESTINATION_DB] = time.perf_counter() - started

                logger.info(f"  offset {offset}: {len(changed)}/{len(rows)} rows changed")
        finally:
            self.metrics.merge(result)
