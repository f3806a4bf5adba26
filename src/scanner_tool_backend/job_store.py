"""
Thread-safe store of scan jobs.

The store keeps mutable ``ScanJobRecord`` instances internally and hands out
``ScanJob`` snapshots. The only way to change a record is ``update``, which runs
a mutator inside the store's critical section.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, Optional, TypeVar
from uuid import uuid4

from .errors import ConflictError, NotFoundError
from .models import (
    ACTIVE_JOB_STATUSES,
    TERMINAL_JOB_STATUSES,
    DocumentType,
    JobStatus,
    ScanJob,
    ScanResult,
    ScanSettings,
)
from .utils import DEFAULT_LOCK_TIMEOUT, locked

T = TypeVar("T")

_RESOURCE = "job store"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScanJobRecord:
    """
    Internal, mutable representation of a scan job.

    Attributes:
        id: Unique job identifier
        scanner_id: Scanner the job runs against
        document_type: Requested document class
        scan_settings: Resolution, color mode, paper size, format and quality
        status: Current lifecycle state
        created_at: Creation timestamp (UTC)
        progress: Fraction of the scan completed, in [0.0, 1.0]
        completed_at: Set once, on the first terminal transition
        scan_result: Result descriptor attached on completion
        error: Failure reason when status is FAILED
    """

    id: str
    scanner_id: str
    document_type: DocumentType
    scan_settings: ScanSettings
    status: JobStatus
    created_at: datetime
    progress: float = 0.0
    completed_at: Optional[datetime] = None
    scan_result: Optional[ScanResult] = None
    error: Optional[str] = None

    @classmethod
    def new(cls, scanner_id: str, document_type: DocumentType, scan_settings: ScanSettings) -> "ScanJobRecord":
        return cls(
            id=str(uuid4()),
            scanner_id=scanner_id,
            document_type=document_type,
            scan_settings=scan_settings.model_copy(deep=True),
            status=JobStatus.PENDING,
            created_at=utcnow(),
        )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_JOB_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def start_scanning(self) -> None:
        if self.status != JobStatus.PENDING:
            raise ConflictError(f"Job {self.id} is {self.status.value}, only Pending jobs can be started")
        self.status = JobStatus.SCANNING
        self.progress = 0.0

    def update_progress(self, progress: float) -> bool:
        """Raise progress monotonically; returns False once the job left Scanning."""
        if self.status != JobStatus.SCANNING:
            return False
        self.progress = max(self.progress, min(max(progress, 0.0), 1.0))
        return True

    def complete(self, result: ScanResult) -> bool:
        if self.status != JobStatus.SCANNING:
            return False
        self.status = JobStatus.COMPLETED
        self.progress = 1.0
        self.scan_result = result
        self._stamp_completion()
        return True

    def fail(self, reason: str) -> bool:
        if self.status != JobStatus.SCANNING:
            return False
        self.status = JobStatus.FAILED
        self.error = reason
        self._stamp_completion()
        return True

    def cancel(self) -> JobStatus:
        """
        Force the job into CANCELLED.

        Returns:
            The status the job held before cancellation

        Raises:
            ConflictError: If the job already reached a terminal state
        """
        if self.is_terminal:
            raise ConflictError("Job cannot be cancelled in its current state")
        previous = self.status
        self.status = JobStatus.CANCELLED
        self._stamp_completion()
        return previous

    def _stamp_completion(self) -> None:
        if self.completed_at is None:
            self.completed_at = utcnow()

    def to_job(self) -> ScanJob:
        return ScanJob(
            id=self.id,
            scanner_id=self.scanner_id,
            document_type=self.document_type,
            scan_settings=self.scan_settings.model_copy(deep=True),
            status=self.status,
            progress=self.progress,
            created_at=self.created_at,
            completed_at=self.completed_at,
            scan_result=self.scan_result.model_copy() if self.scan_result else None,
            error=self.error,
        )


class JobStore:
    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._jobs: Dict[str, ScanJobRecord] = {}
        self._lock = Lock()
        self._lock_timeout = lock_timeout

    def _locked(self):
        return locked(self._lock, _RESOURCE, self._lock_timeout)

    def insert(self, record: ScanJobRecord) -> ScanJob:
        with self._locked():
            if record.id in self._jobs:
                raise ConflictError(f"Job with ID {record.id} already exists")
            self._jobs[record.id] = record
            return record.to_job()

    def get(self, job_id: str) -> ScanJob:
        with self._locked():
            record = self._jobs.get(job_id)
            if record is None:
                raise NotFoundError("Job", job_id)
            return record.to_job()

    def list(self) -> list[ScanJob]:
        """All jobs, newest first."""
        with self._locked():
            records = sorted(self._jobs.values(), key=lambda r: r.created_at, reverse=True)
            return [record.to_job() for record in records]

    def update(self, job_id: str, mutator: Callable[[ScanJobRecord], T]) -> T:
        """
        Apply ``mutator`` to a job inside the store's critical section.

        Args:
            job_id: The job to mutate
            mutator: Callable receiving the live record; its return value is passed through

        Raises:
            NotFoundError: If the job is unknown
            Any exception raised by ``mutator`` (the lock is released first)
        """
        with self._locked():
            record = self._jobs.get(job_id)
            if record is None:
                raise NotFoundError("Job", job_id)
            return mutator(record)

    def count_active(self, scanner_id: Optional[str] = None) -> int:
        return len(self.active_job_ids(scanner_id))

    def active_job_ids(self, scanner_id: Optional[str] = None) -> list[str]:
        with self._locked():
            return [
                record.id
                for record in self._jobs.values()
                if record.is_active and (scanner_id is None or record.scanner_id == scanner_id)
            ]

    def active_scanner_ids(self) -> set[str]:
        """Scanner IDs referenced by at least one non-terminal job."""
        with self._locked():
            return {record.scanner_id for record in self._jobs.values() if record.is_active}
