# ============================================================================
# File: importer/engine.py
# Description: Batch import orchestrator (source table -> destination table)
# ============================================================================
"""
Import Engine - migrates a source table into a destination table.

This module provides the batch orchestration with:
- Incremental runs against a destination watermark
- Concurrent batch jobs on a fixed-size worker pool
- Per-column transformation, PII scrubbing and validation
- Insert-new vs update-existing partitioning with bulk writes
- A persisted run record, finalized whether the run succeeds or fails

Lifecycle:
    CREATED -> SETUP -> RUNNING -> FINALIZING -> COMPLETED | FAILED
"""

import asyncio
import enum
import functools
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import load_only

from core.database import destination_session_maker, source_session_maker
from core.exceptions import ImportAbortedError
from core.logging import VALIDATION_LOGGER_NAME
from importer import __version__
from importer.callbacks import SKIP, Abort, CallbackDispatcher
from importer.config import ImportConfig
from importer.loaders.table_store import TableStore
from importer.metrics import (
    DATABASE_INSERT,
    DATABASE_UPDATE,
    DESTINATION_DB,
    PROCESSING,
    SOURCE_DB,
    BatchResult,
    RunMetrics,
)
from importer.run_tracker import ImportRunTracker
from importer.scrubbers.data_scrubber import DataScrubber
from importer.transformers.field_resolver import FieldResolver
from importer.transformers.record_transformer import RecordTransformer, Rejected
from importer.worker_pool import WorkerPool
from models.base import RunStatus
import logging

logger = logging.getLogger(__name__)
validation_logger = logging.getLogger(VALIDATION_LOGGER_NAME)


class EngineState(str, enum.Enum):
    CREATED = "created"
    SETUP = "setup"
    RUNNING = "running"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BatchContext:
    """Scratch state of one batch job; created by the job, never shared"""
    offset: int
    records: List[Any] = field(default_factory=list)
    new_rows: List[Tuple[Any, ...]] = field(default_factory=list)
    # destination primary key -> attributes to write
    update_attrs: Dict[Any, Dict[str, Any]] = field(default_factory=dict)
    # update_on value -> destination primary key
    existing_ids: Dict[Any, Any] = field(default_factory=dict)
    result: BatchResult = None

    def __post_init__(self):
        if self.result is None:
            self.result = BatchResult(offset=self.offset)


class ImportEngine:
    """
    Batch import orchestrator

    Responsibilities:
    - Resolve the watermark and column rules once, before any batch
    - Page through the source and run one pool job per page
    - Transform, scrub and partition every record of a page
    - Bulk insert new rows and bulk update existing ones
    - Aggregate counters, timings and validation errors across jobs
    - Record the run, successful or not
    """

    def __init__(
        self,
        config: ImportConfig,
        context: Any = None,
        source_sessions: Optional[async_sessionmaker] = None,
        destination_sessions: Optional[async_sessionmaker] = None
    ):
        self.config = config
        self.context = context
        self.source_sessions = source_sessions or source_session_maker()
        self.destination_sessions = destination_sessions or destination_session_maker()

        self.dispatcher = CallbackDispatcher(context, config.callbacks)
        self.tracker = ImportRunTracker(self.destination_sessions)
        self.metrics = RunMetrics()

        self.state = EngineState.CREATED
        self.watermark: Any = None
        self.transformer: Optional[RecordTransformer] = None
        self.scrubber: Optional[DataScrubber] = None
        self.pool: Optional[WorkerPool] = None
        self._cancelled = asyncio.Event()

    @property
    def source_name(self) -> str:
        return self.config.source_model.__name__

    @property
    def destination_name(self) -> str:
        return self.config.destination_model.__name__

    def cancel(self) -> None:
        """Stop scheduling batches; queued batches are skipped"""
        logger.warning("Import cancellation requested")
        self._cancelled.set()

    # ------------------------------------------------------------------
    # setup
    # ------------------------------------------------------------------

    async def setup(self) -> None:
        """Runs once at the very beginning of the import"""
        self.state = EngineState.SETUP

        self.transformer = self._build_transformer()
        self.scrubber = DataScrubber(self.config.destination_model)
        self.watermark = await self.highest_known_destination_order_by()
        self.pool = WorkerPool(self.config.pool_size)

        await self._invoke("before_run")

    def _build_transformer(self) -> RecordTransformer:
        source_mapper = sa_inspect(self.config.source_model)
        source_columns = [prop.key for prop in source_mapper.column_attrs]

        # a custom source query may select anything, so copies are not checked
        source_attributes = (
            None if self.config.source_query is not None
            else list(source_mapper.all_orm_descriptors.keys())
        )

        resolver = FieldResolver(
            source_columns=source_columns,
            context=self.context,
            context_methods=self.config.context_methods,
            source_attributes=source_attributes
        )
        rules = resolver.resolve_all(self.config.transformations)

        return RecordTransformer(
            rules,
            {column: self.config.options_for(column) for column in rules}
        )

    async def highest_known_destination_order_by(self) -> Any:
        """The newest order value already in destination, or None"""
        config = self.config
        if config.force_full_update or config.source_query is not None or not config.source_order_by:
            return None

        async with self.destination_sessions() as session:
            destination = TableStore(session, config.destination_model)
            watermark = await destination.max_value(
                config.watermark_column,
                config.destination_order_conditions
            )

        logger.info(f"Highest known {config.watermark_column} in {self.destination_name}: {watermark}")
        return watermark

    # ------------------------------------------------------------------
    # source query
    # ------------------------------------------------------------------

    def base_query(self, select_columns: bool = True) -> Any:
        """The relation the importer pages through"""
        config = self.config
        source = config.source_model

        if config.source_query is not None:
            query = config.source_query()
        else:
            if config.source_order_by:
                order_column = getattr(source, config.source_order_by)
            else:
                order_column = sa_inspect(source).primary_key[0]
            query = select(source).order_by(order_column.asc())

            if self.watermark is not None:
                query = query.where(getattr(source, config.source_order_by) >= self.watermark)

        query = self._apply_source_conditions(query)

        if select_columns and config.source_select_columns:
            # the order column is read for progress logging
            names = dict.fromkeys(config.source_select_columns)
            if config.source_order_by and config.source_query is None:
                names[config.source_order_by] = None
            query = query.options(load_only(*(getattr(source, name) for name in names)))
        return query

    def _apply_source_conditions(self, query: Any) -> Any:
        conditions = self.config.source_conditions
        if isinstance(conditions, dict):
            for name, value in conditions.items():
                query = query.where(getattr(self.config.source_model, name) == value)
            return query
        if conditions:
            query = query.where(*conditions)
        return query

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------

    async def run(self) -> Dict[str, Any]:
        """
        Run the import.

        Returns:
            Dictionary with run statistics:
            - status: "success"
            - run_id: Primary key of the ImportRun row
            - records_fetched / records_created / records_updated
            - validation_errors: {"total": n, field: {message: count}}

        Raises:
            ConfigurationError: If a column instruction cannot be resolved
            DatabaseError: If a read or bulk write fails (run aborted)
            ImportAbortedError: If a hook aborted or the run was cancelled
        """
        start_time = time.perf_counter()
        status = RunStatus.FAILED

        await self.tracker.start(
            source_model=self.source_name,
            destination_model=self.destination_name,
            importer_version=__version__,
            started_at=datetime.utcnow()
        )

        try:
            await self.setup()
            self.state = EngineState.RUNNING

            count = await self._count_candidates()
            if count == 0:
                logger.info(f"no {self.source_name} records to import, exiting")
                await self.pool.shutdown()
            else:
                await self._run_batches(count)
                self.log_validation_errors()
                self.log_benchmarks(start_time)

            status = RunStatus.SUCCESS

        except Exception as e:
            self.state = EngineState.FAILED
            logger.error(f"Import from {self.source_name} into {self.destination_name} failed: {e}")
            await self.tracker.record_failure(e)
            raise

        finally:
            if self.pool is not None and self.pool.workers:
                # only reached when something failed while batches were queued
                self._cancelled.set()
                await self.pool.shutdown(raise_errors=False)

            await self.tracker.complete(
                status=status,
                records_created=self.metrics.records_created,
                records_updated=self.metrics.records_updated,
                duration_ms=round((time.perf_counter() - start_time) * 1000),
                validation_errors=self.metrics.validation_errors.as_dict(),
                watermark=self.watermark
            )
            if status == RunStatus.SUCCESS:
                self.state = EngineState.COMPLETED

        return self.summary(status)

    def summary(self, status: RunStatus) -> Dict[str, Any]:
        return {
            "status": status.value,
            "run_id": self.tracker.run_id,
            "records_fetched": self.metrics.records_fetched,
            "records_created": self.metrics.records_created,
            "records_updated": self.metrics.records_updated,
            "validation_errors": self.metrics.validation_errors.as_dict(),
            "watermark": str(self.watermark) if self.watermark is not None else None,
        }

    async def _count_candidates(self) -> int:
        async with self.source_sessions() as session:
            source = TableStore(session, self.config.source_model)
            return await source.count(self.base_query(select_columns=False))

    async def _run_batches(self, count: int) -> None:
        batch_size = self.config.batch_size
        total_batches = math.ceil(count / batch_size)

        logger.info(
            f"Starting import of {count} {self.source_name} records into "
            f"{self.destination_name} ({total_batches} batches)..."
        )

        for batch_number, offset in enumerate(range(0, count, batch_size), start=1):
            if self._cancelled.is_set():
                logger.warning(f"Stopped scheduling at batch {batch_number}/{total_batches}")
                break
            self.pool.schedule(
                functools.partial(self._import_batch, offset, batch_number, total_batches)
            )

        self.state = EngineState.FINALIZING
        await self.pool.shutdown()

        if self._cancelled.is_set():
            raise ImportAbortedError(
                "Import cancelled before all batches ran",
                context={"batches_completed": self.metrics.batches_completed, "batches": total_batches}
            )

    # ------------------------------------------------------------------
    # batch job
    # ------------------------------------------------------------------

    async def _import_batch(self, offset: int, batch_number: int, total_batches: int) -> None:
        """One pool job: fetch, process and persist the page at ``offset``"""
        if self._cancelled.is_set():
            logger.info(f"Skipping batch {batch_number}/{total_batches}: run cancelled")
            return

        batch_started = time.perf_counter()
        batch = BatchContext(offset=offset)

        try:
            async with self.source_sessions() as source_session, \
                    self.destination_sessions() as destination_session:
                source = TableStore(source_session, self.config.source_model)
                destination = TableStore(
                    destination_session,
                    self.config.destination_model,
                    schema=self.config.destination_schema
                )

                logger.info(
                    f"Importing from {source.table_name} into {self.destination_name} "
                    f"({batch_number}/{total_batches})"
                )
                await self._invoke("before_each_batch")

                await self._fetch_records(batch, source)
                if not batch.records:
                    return

                await self._process_batch(batch, destination)
                await self._insert_and_update_batch(batch, destination)

        except Exception:
            self._cancelled.set()
            raise

        finally:
            self.metrics.merge(batch.result)

        logger.info(f"  batch processed in {time.perf_counter() - batch_started:.3f}s")

    async def _fetch_records(self, batch: BatchContext, source: TableStore) -> None:
        started = time.perf_counter()
        batch.records = await source.fetch_page(self.base_query(), batch.offset, self.config.batch_size)
        elapsed = time.perf_counter() - started

        batch.result.timings[SOURCE_DB] = elapsed
        batch.result.records_fetched = len(batch.records)

        if not batch.records:
            return

        logger.info(f"  {len(batch.records)} source records fetched in {elapsed:.3f}s")
        order_by = self.config.source_order_by
        if order_by and self.config.source_query is None:
            first = getattr(batch.records[0], order_by, None)
            last = getattr(batch.records[-1], order_by, None)
            logger.info(f"  {order_by}: from {first} to {last}")

    async def _process_batch(self, batch: BatchContext, destination: TableStore) -> None:
        """Transform, scrub and partition every fetched record, in fetch order"""
        started = time.perf_counter()
        config = self.config
        columns = self.transformer.columns

        keys = [None] * len(batch.records)
        if config.update_on:
            keys = self.transformer.evaluate_column_for_all(config.update_on, batch.records)
            batch.existing_ids = await destination.lookup_ids(config.update_on, keys)

        for record, key in zip(batch.records, keys):
            if self._skips(await self._invoke("reject", record)):
                continue
            if await self._invoke("before_each", record) is SKIP:
                continue

            attrs = self.transformer.transform(record)
            if isinstance(attrs, Rejected):
                batch.result.failures.append({attrs.column: [attrs.message]})
                continue

            if await self._invoke("each_before_save", attrs, record) is SKIP:
                continue
            if self._skips(await self._invoke("reject_after_transform", attrs)):
                continue
            if await self._invoke("after_each", record, attrs) is SKIP:
                continue

            # matched on the raw key the lookup used, whatever hooks did to attrs
            existing_id = batch.existing_ids.get(key) if key is not None else None
            attrs = self.scrubber.scrub(attrs)

            if existing_id is not None:
                batch.update_attrs[existing_id] = attrs
            elif config.create_new_records:
                batch.new_rows.append(tuple(attrs.get(column) for column in columns))

        elapsed = time.perf_counter() - started
        batch.result.timings[PROCESSING] = elapsed
        logger.info(f"  {len(batch.records)} records processed in {elapsed:.3f}s")

    async def _insert_and_update_batch(self, batch: BatchContext, destination: TableStore) -> None:
        config = self.config
        if not config.use_db:
            return

        started = time.perf_counter()
        insert_result = None

        if config.create_new_records:
            insert_started = time.perf_counter()
            insert_result = await destination.bulk_insert(
                self.transformer.columns,
                batch.new_rows,
                validate=config.validate_rows
            )
            batch.result.timings[DATABASE_INSERT] = time.perf_counter() - insert_started
            batch.result.records_created = insert_result.inserted_count

            if insert_result.failed_rows:
                for failed in insert_result.failed_rows:
                    validation_logger.info(f"{destination.table_name} {failed.errors} {failed.row}")
                batch.result.failures.extend(failed.errors for failed in insert_result.failed_rows)
            elif config.validate_rows:
                logger.debug("  0 validation errors!")

        records_updated = 0
        if config.update_on:
            update_started = time.perf_counter()
            records_updated = await destination.bulk_update_by_id(batch.update_attrs)
            batch.result.timings[DATABASE_UPDATE] = time.perf_counter() - update_started

        elapsed = time.perf_counter() - started
        batch.result.timings[DESTINATION_DB] = elapsed

        if insert_result is not None:
            logger.info(
                f"  {insert_result.inserted_count}/{len(batch.new_rows)} new rows saved in {elapsed:.3f}s "
                f"({batch.result.timings[DATABASE_INSERT]:.3f}s db)"
            )

        if config.update_on:
            batch.result.records_updated = records_updated
            logger.info(
                f"  {records_updated} existing rows updated in "
                f"{batch.result.timings[DATABASE_UPDATE]:.3f}s"
            )

    # ------------------------------------------------------------------
    # hooks
    # ------------------------------------------------------------------

    async def _invoke(self, name: str, *args: Any) -> Any:
        result = await self.dispatcher.invoke(name, *args)
        if isinstance(result, Abort):
            raise ImportAbortedError(
                f"Import aborted by {name}: {result.reason}",
                context={"callback": name, "reason": result.reason}
            )
        return result

    @staticmethod
    def _skips(result: Any) -> bool:
        return result is SKIP or bool(result)

    # ------------------------------------------------------------------
    # reporting
    # ------------------------------------------------------------------

    def log_validation_errors(self) -> None:
        tally = self.metrics.validation_errors
        if tally.is_empty():
            return

        summary = tally.as_dict()
        logger.info("-------------------------------------------------")
        logger.info(f"{summary.pop('total')} validation errors:")
        for field_name, messages in summary.items():
            logger.info(f"  {field_name}:")
            for message, count in messages.items():
                logger.info(f"    {message} ({count})")

    def log_benchmarks(self, start_time: float) -> None:
        metrics = self.metrics
        logger.info("-------------------------------------------------")
        logger.info(
            f"Processing:      {metrics.total_seconds(PROCESSING):.3f}s total, "
            f"{metrics.seconds_per_record(PROCESSING):.6f}s per record"
        )
        logger.info(
            f"Source Database: {metrics.total_seconds(SOURCE_DB):.3f}s total, "
            f"{metrics.seconds_per_record(SOURCE_DB):.6f}s per record"
        )
        logger.info(
            f"Dest Database:   {metrics.total_seconds(DESTINATION_DB):.3f}s total, "
            f"{metrics.seconds_per_record(DESTINATION_DB):.6f}s per record"
        )
        logger.info(f"Total:           {time.perf_counter() - start_time:.3f}s elapsed")
