import logging
from typing import Any, Dict, List, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from importer.base import Importer

logger = logging.getLogger(__name__)


class ImportScheduler:
    """Re-runs a set of importers incrementally on a fixed interval"""

    def __init__(self, importers: Sequence[Importer], interval_minutes: Optional[int] = None):
        self.scheduler = AsyncIOScheduler()
        self.importers: List[Importer] = list(importers)
        self.interval_minutes = interval_minutes or settings.IMPORT_INTERVAL_MINUTES

    async def run_import_job(self) -> Dict[str, Any]:
        """Job to run every importer once; one failure does not stop the rest"""
        logger.info("Scheduler: Starting import job")
        results: Dict[str, Any] = {}

        for importer in self.importers:
            try:
                results[importer.name] = await importer.run()
            except Exception as e:
                logger.error(f"Scheduler: {importer.name} failed - {e}")
                results[importer.name] = {"status": "failed", "error": str(e)}

        return results

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_import_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="import_job",
            replace_existing=True,
            max_instances=1
        )
        self.scheduler.start()
        logger.info(f"Import Scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Import Scheduler stopped")
