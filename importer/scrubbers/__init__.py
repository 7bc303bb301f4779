from importer.scrubbers.data_scrubber import DataScrubber, scrub_text
from importer.scrubbers.database_scrubber import DatabaseScrubber

__all__ = ["DataScrubber", "DatabaseScrubber", "scrub_text"]
