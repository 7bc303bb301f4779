"""
Script to run importers, once or on the configured interval

Usage:
    python scripts/run_import.py myapp.importers:PersonImporter [...]
    python scripts/run_import.py --schedule myapp.importers:PersonImporter
"""

import asyncio
import importlib
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.logging import setup_logging
from importer.base import Importer
from importer.scheduler import ImportScheduler

logger = logging.getLogger(__name__)


def load_importer(path: str) -> Importer:
    """Instantiate ``package.module:ClassName``"""
    module_name, _, class_name = path.partition(":")
    if not class_name:
        raise ValueError(f"expected module:ClassName, got {path!r}")
    importer_class = getattr(importlib.import_module(module_name), class_name)
    return importer_class()


async def run_once(importers):
    failed = 0
    for importer in importers:
        try:
            result = await importer.run()
            logger.info(
                f"Import completed for {importer.name}: "
                f"Created={result['records_created']}, "
                f"Updated={result['records_updated']}, "
                f"Invalid={result['validation_errors']['total']}"
            )
        except Exception as e:
            logger.error(f"Import failed for {importer.name}: {str(e)}")
            failed += 1

    logger.info("All import jobs completed")
    return failed


async def run_scheduled(importers):
    scheduler = ImportScheduler(importers)
    scheduler.start()
    try:
        await scheduler.run_import_job()
        # Keep the loop alive for the interval trigger
        await asyncio.Event().wait()
    finally:
        scheduler.stop()


def main(argv):
    schedule = "--schedule" in argv
    paths = [arg for arg in argv if arg != "--schedule"]
    if not paths:
        logger.warning("No importers given. Skipping import.")
        return 0

    importers = [load_importer(path) for path in paths]

    if schedule:
        asyncio.run(run_scheduled(importers))
        return 0
    return 1 if asyncio.run(run_once(importers)) else 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(main(sys.argv[1:]))
