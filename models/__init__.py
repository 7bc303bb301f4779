"""
SQLAlchemy ORM models owned by the importer.

Models:
    base: Base declarative class, JSON column type and shared enums (RunStatus)
    import_run: One row per import execution (counters, timing, errors)

Source and destination tables are not defined here; they belong to the
application being migrated and are handed to the importer as ORM classes.

Usage:
    from models import ImportRun
    from models.base import Base, RunStatus
"""

from models.base import Base, RunStatus
from models.import_run import ImportRun

__all__ = [
    "Base",
    "RunStatus",
    "ImportRun",
]
