"""
Thread-safe registry of known scanners.

All reads and writes go through a single registry-wide lock, so callers never
observe a partially replaced scanner set. Records are copied on the way in and
on the way out; nothing outside the registry holds a live reference.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Collection, Dict, Iterable, Optional, Sequence

from .errors import ConflictError, NotFoundError
from .models import Scanner, ScannerStatus, SystemType
from .utils import DEFAULT_LOCK_TIMEOUT, locked

logger = logging.getLogger(__name__)

_RESOURCE = "scanner registry"


class ScannerRegistry:
    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._scanners: Dict[str, Scanner] = {}
        self._lock = Lock()
        self._lock_timeout = lock_timeout

    def _locked(self):
        return locked(self._lock, _RESOURCE, self._lock_timeout)

    def __len__(self) -> int:
        with self._locked():
            return len(self._scanners)

    def list(self) -> list[Scanner]:
        with self._locked():
            return [scanner.model_copy(deep=True) for scanner in self._scanners.values()]

    def list_by_system(self, system_type: SystemType) -> list[Scanner]:
        with self._locked():
            return [
                scanner.model_copy(deep=True)
                for scanner in self._scanners.values()
                if scanner.system_type == system_type
            ]

    def get(self, scanner_id: str) -> Scanner:
        with self._locked():
            scanner = self._scanners.get(scanner_id)
            if scanner is None:
                raise NotFoundError("Scanner", scanner_id)
            return scanner.model_copy(deep=True)

    def count_available(self) -> int:
        with self._locked():
            return sum(1 for scanner in self._scanners.values() if scanner.is_available())

    def replace_all(self, scanners: Iterable[Scanner], keep_ids: Collection[str] = ()) -> list[Scanner]:
        """
        Swap the whole scanner set in one critical section.

        A scanner whose ID survives the swap keeps its current status, so a
        device held Busy by an in-flight job stays Busy after rediscovery.

        Args:
            scanners: The new scanner set
            keep_ids: Scanners still referenced by active jobs; they stay
                registered with their current status even if absent from ``scanners``

        Returns:
            Copies of the installed scanners
        """
        incoming = [scanner.model_copy(deep=True) for scanner in scanners]
        with self._locked():
            previous = self._scanners
            installed: Dict[str, Scanner] = {}
            for scanner in incoming:
                existing = previous.get(scanner.id)
                if existing is not None:
                    scanner.status = existing.status
                    scanner.error = existing.error
                installed[scanner.id] = scanner
            for scanner_id in keep_ids:
                if scanner_id not in installed and scanner_id in previous:
                    installed[scanner_id] = previous[scanner_id]
            self._scanners = installed
            return [scanner.model_copy(deep=True) for scanner in installed.values()]

    def add(self, scanner: Scanner) -> str:
        with self._locked():
            if scanner.id in self._scanners:
                raise ConflictError(f"Scanner with ID {scanner.id} already exists")
            self._scanners[scanner.id] = scanner.model_copy(deep=True)
        return scanner.id

    def upsert(self, scanner: Scanner) -> None:
        with self._locked():
            self._scanners[scanner.id] = scanner.model_copy(deep=True)

    def remove(self, scanner_id: str, active_job_ids: Sequence[str] = ()) -> Scanner:
        """
        Remove a scanner unless jobs are still active against it.

        Args:
            scanner_id: The scanner to remove
            active_job_ids: Non-terminal jobs that reference the scanner

        Raises:
            NotFoundError: If the scanner is unknown
            ConflictError: If ``active_job_ids`` is non-empty or the scanner is Busy
        """
        with self._locked():
            scanner = self._scanners.get(scanner_id)
            if scanner is None:
                raise NotFoundError("Scanner", scanner_id)
            if active_job_ids:
                raise ConflictError(
                    f"Scanner has active jobs: {', '.join(active_job_ids)}",
                    active_job_ids=active_job_ids,
                )
            if scanner.status == ScannerStatus.BUSY:
                raise ConflictError("Scanner is busy")
            del self._scanners[scanner_id]
            return scanner

    def set_status(self, scanner_id: str, status: ScannerStatus, error: Optional[str] = None) -> None:
        with self._locked():
            scanner = self._scanners.get(scanner_id)
            if scanner is None:
                raise NotFoundError("Scanner", scanner_id)
            scanner.status = status
            scanner.error = error if status == ScannerStatus.ERROR else None

    def transition(
        self,
        scanner_id: str,
        status: ScannerStatus,
        allowed_from: Collection[ScannerStatus],
        error: Optional[str] = None,
    ) -> bool:
        """
        Set ``status`` only if the scanner is currently in one of ``allowed_from``.

        Returns:
            True if the status changed hands, False otherwise

        Raises:
            NotFoundError: If the scanner is unknown
        """
        with self._locked():
            scanner = self._scanners.get(scanner_id)
            if scanner is None:
                raise NotFoundError("Scanner", scanner_id)
            if scanner.status not in allowed_from:
                return False
            scanner.status = status
            scanner.error = error if status == ScannerStatus.ERROR else None
            return True

    def reserve(self, scanner_id: str) -> bool:
        """Claim an Available scanner for a job (Available -> Busy)."""
        return self.transition(scanner_id, ScannerStatus.BUSY, {ScannerStatus.AVAILABLE})

    def release(self, scanner_id: str) -> bool:
        """
        Best-effort Busy -> Available restoration.

        A missing scanner is logged and ignored. Offline/Error states set while
        the job ran are left in place.
        """
        try:
            return self.transition(scanner_id, ScannerStatus.AVAILABLE, {ScannerStatus.BUSY})
        except NotFoundError:
            logger.warning(f"Scanner {scanner_id} disappeared before it could be released")
            return False
