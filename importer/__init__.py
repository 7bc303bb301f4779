"""
Table-to-table import engine.

This package migrates rows from a source table into a destination table,
with per-column transformation rules, PII scrubbing, validation and
watermark-based incremental re-runs:

Modules:
    base: Importer base class (subclass, configure, run)
    config: Immutable ImportConfig and its builder
    engine: Batch orchestrator running jobs on the worker pool
    worker_pool: Fixed-size asyncio worker pool
    callbacks: Named hooks and their SKIP / Abort results
    metrics: Run counters, timings and validation tally
    run_tracker: Persistence of the ImportRun row
    scheduler: APScheduler integration for periodic incremental runs

Subpackages:
    transformers: Column rule resolution and record transformation
    loaders: Table reads and bulk writes
    scrubbers: PII masking for attribute maps and whole tables

Usage:
    from importer.base import Importer

    class PersonImporter(Importer):
        def configure(self, builder):
            (builder
                .transform(from_=LegacyPerson, to=Person)
                .map_attribute("ssn")
                .map_attribute("name", "fullname")
                .update_on("external_id")
                .source_order_by("updated_at"))

    result = await PersonImporter().run()
"""

__version__ = "1.0.0"

__all__ = [
    "Importer",
    "ImportConfig",
    "ImportConfigBuilder",
    "ImportEngine",
    "ImportScheduler",
    "WorkerPool",
    "SKIP",
    "Abort",
]
