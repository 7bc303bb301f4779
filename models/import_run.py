from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Integer, Text, Index
from datetime import datetime
from models.base import Base, JSONType, RunStatus


class ImportRun(Base):
    """
    Tracks metadata for each import execution.

    Purpose:
    - Audit trail of all import runs
    - Performance monitoring
    - Error tracking (a failed run still gets a complete row)

    Lifecycle:
    - Created when the run starts
    - error_trace written when the run fails
    - Counters, duration and validation summary always written at the end
    """
    __tablename__ = "import_runs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)

    # What was imported into what
    source_model = Column(String(255), nullable=False, index=True)
    destination_model = Column(String(255), nullable=False, index=True)
    importer_version = Column(String(50), nullable=False)

    status = Column(Enum(RunStatus), default=RunStatus.RUNNING, nullable=False, index=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration = Column(BigInteger, nullable=True)  # milliseconds

    # Statistics
    records_created = Column(Integer, default=0)
    records_updated = Column(Integer, default=0)
    validation_errors = Column(JSONType, nullable=True)  # {"total": n, field: {message: count}}

    # Incremental state the run started from
    watermark = Column(String(255), nullable=True)

    # Error tracking
    error_trace = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_import_run_models_started", "source_model", "destination_model", "started_at"),
    )
