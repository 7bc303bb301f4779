"""
Run-wide aggregates shared by every batch job.

Jobs never touch these directly while processing; each job collects a
BatchResult and merges it once, under a lock, when the batch is done.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping

# Timed phases, as reported in the run summary
SOURCE_DB = "source_db"
PROCESSING = "processing"
DESTINATION_DB = "destination_db"
DATABASE_INSERT = "database_insert"
DATABASE_UPDATE = "database_update"


class ValidationErrorTally:
    """Which field had which error message how many times, plus a total"""

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._total = 0

    def record(self, failures: Iterable[Mapping[str, Iterable[str]]]) -> None:
        """Count failed rows; each failure maps field -> messages"""
        failures = list(failures)
        with self._lock:
            self._total += len(failures)
            for errors in failures:
                for field_name, messages in errors.items():
                    for message in messages:
                        self._counts[field_name][message] += 1

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    def count(self, field_name: str, message: str) -> int:
        with self._lock:
            return self._counts.get(field_name, {}).get(message, 0)

    def is_empty(self) -> bool:
        return self.total == 0

    def as_dict(self) -> Dict[str, Any]:
        """``{"total": n, field: {message: count}}``, safe to store as JSON"""
        with self._lock:
            summary: Dict[str, Any] = {"total": self._total}
            for field_name, messages in self._counts.items():
                summary[str(field_name)] = dict(messages)
            return summary


@dataclass
class BatchResult:
    """What one batch job produced; merged into RunMetrics when the job ends"""
    offset: int
    records_fetched: int = 0
    records_created: int = 0
    records_updated: int = 0
    failures: List[Dict[str, List[str]]] = field(default_factory=list)
    timings: Dict[str, float] = field(default_factory=dict)


class RunMetrics:
    """Counters, benchmarks and validation tally for one run"""

    def __init__(self):
        self._lock = threading.Lock()
        self.records_fetched = 0
        self.records_created = 0
        self.records_updated = 0
        self.batches_completed = 0
        self.benchmarks: Dict[str, List[float]] = defaultdict(list)
        self.validation_errors = ValidationErrorTally()

    def merge(self, batch: BatchResult) -> None:
        with self._lock:
            self.records_fetched += batch.records_fetched
            self.records_created += batch.records_created
            self.records_updated += batch.records_updated
            self.batches_completed += 1
            for phase, seconds in batch.timings.items():
                self.benchmarks[phase].append(seconds)
        self.validation_errors.record(batch.failures)

    def total_seconds(self, phase: str) -> float:
        with self._lock:
            return sum(self.benchmarks.get(phase, []))

    def seconds_per_record(self, phase: str) -> float:
        """Average over fetched records; 0.0 when nothing was fetched"""
        with self._lock:
            fetched = self.records_fetched
        if fetched == 0:
            return 0.0
        return self.total_seconds(phase) / fetched
