"""
Scanner orchestration service.

This module is the façade the HTTP layer (or any other host) calls into:
- Scanner inventory, discovery and simulated device events
- Scan job creation, start and cancellation
- Background execution of started jobs on a thread pool
- Read-only system and configuration snapshots

The ScannerService owns one ScannerRegistry and one JobStore and shares them
with the ScanLifecycle engine. It never holds the registry lock and the job
store lock at the same time.
"""

from __future__ import annotations

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Any, Callable, Optional, Union

from omegaconf import DictConfig

from .configuration import build_config_metadata, environment_overrides, make_runtime_config, platform_override
from .discovery import ConfiguredDiscovery, detect_platform
from .errors import ConflictError, NotFoundError
from .job_store import JobStore, ScanJobRecord
from .lifecycle import ScanLifecycle
from .models import (
    ConfigMetadata,
    DocumentType,
    JobStatus,
    ScanJob,
    Scanner,
    ScannerCapabilities,
    ScannerStatus,
    ScanResult,
    ScanSettings,
    SystemInfo,
    SystemType,
)
from .output import open_path, resolve_output_directory
from .scan_generator import ScanGenerator
from .scanner_registry import ScannerRegistry

logger = logging.getLogger(__name__)

# Job states in which the job holds its scanner Busy
_DEVICE_HOLDING_STATUSES = frozenset({JobStatus.SCANNING, JobStatus.PROCESSING})
_IDLE_STATUSES = frozenset({ScannerStatus.AVAILABLE, ScannerStatus.OFFLINE, ScannerStatus.ERROR})


class ScannerService:
    """
    Central coordinator for scanners and scan jobs.

    Thread Safety:
        Scanner state lives in a ScannerRegistry and job state in a JobStore,
        each behind its own lock. Started jobs run on a ThreadPoolExecutor and
        report back only through those two objects.

    Args:
        config: Runtime configuration (defaults to the packaged config.yaml)
        platform: Host platform override (defaults to the running OS)
        rng: Random source for scan, connection test and event draws
        sleep: Blocking sleep used for every simulated delay
        synthesizer: Scan file producer
        discovery: Discovery strategy (``inventory``, ``discover``, ``api_label``)
        output_directory: Callable resolving the output directory
        launcher: Callable opening a path on the host, ``launcher(path, platform)``
        max_workers: Worker threads for scan jobs (defaults to ``executor.max_workers``)
    """

    def __init__(
        self,
        config: Optional[DictConfig] = None,
        platform: Union[SystemType, str, None] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
        synthesizer: Optional[ScanGenerator] = None,
        discovery: Optional[ConfiguredDiscovery] = None,
        output_directory: Optional[Callable[[], Path]] = None,
        launcher: Callable[[Union[str, Path], SystemType], None] = open_path,
        max_workers: Optional[int] = None,
    ) -> None:
        self.config = config if config is not None else make_runtime_config()
        self.platform = detect_platform(platform)
        self.scanners = ScannerRegistry()
        self.jobs = JobStore()

        self._rng = rng or random.Random()
        self._sleep = sleep
        self._discovery = discovery or ConfiguredDiscovery(self.config, sleep=sleep)
        self._output_directory = output_directory or partial(resolve_output_directory, self.config)
        self._launcher = launcher
        self._lifecycle = ScanLifecycle(
            jobs=self.jobs,
            scanners=self.scanners,
            config=self.config,
            synthesizer=synthesizer or ScanGenerator(),
            output_directory=self._output_directory,
            rng=self._rng,
            sleep=sleep,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or int(self.config.executor.max_workers),
            thread_name_prefix="scan-job",
        )

        self.scanners.replace_all(self._discovery.inventory())
        logger.info(f"Scanner service ready on {self.platform.value} with {len(self.scanners)} scanner(s)")

    @classmethod
    def from_environment(cls, **kwargs: Any) -> "ScannerService":
        """Build a service from the packaged defaults plus SCANNER_TOOL_* environment variables."""
        config = make_runtime_config(environment_overrides())
        return cls(config=config, platform=platform_override(), **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # -- scanners ---------------------------------------------------------

    def list_scanners(self) -> list[Scanner]:
        return self.scanners.list()

    def list_scanners_by_system(self, system_type: SystemType) -> list[Scanner]:
        return self.scanners.list_by_system(system_type)

    def get_scanner(self, scanner_id: str) -> Scanner:
        return self.scanners.get(scanner_id)

    def get_scanner_capabilities(self, scanner_id: str) -> ScannerCapabilities:
        return self.scanners.get(scanner_id).capabilities

    def test_connection(self, scanner_id: str) -> bool:
        """
        Simulate a connection round-trip to a scanner.

        Waits ``connection_test.delay_seconds`` and then succeeds with the
        configured per-type success rate. Offline or faulted scanners never connect.
        """
        scanner = self.scanners.get(scanner_id)
        self._sleep(float(self.config.connection_test.delay_seconds))

        if scanner.status in (ScannerStatus.OFFLINE, ScannerStatus.ERROR):
            return False
        success_rate = float(self.config.connection_test.success_rates[scanner.scanner_type.value])
        connected = self._rng.random() < success_rate
        logger.info(f"Connection test for {scanner.name}: {'ok' if connected else 'failed'}")
        return connected

    def discover_scanners(self) -> list[Scanner]:
        """
        Enumerate scanners for the host platform and replace the registry contents.

        The swap is atomic. Scanners found again keep their current status, and
        scanners still referenced by a Pending or running job stay registered
        even when discovery no longer reports them.
        """
        found = self._discovery.discover(self.platform)
        return self.scanners.replace_all(found, keep_ids=self.jobs.active_scanner_ids())

    def add_scanner(self, scanner: Scanner) -> str:
        if scanner.system_type != self.platform:
            raise ConflictError(
                f"Scanner system {scanner.system_type.value} does not match host platform {self.platform.value}"
            )
        scanner_id = self.scanners.add(scanner)
        logger.info(f"Added scanner {scanner.name} ({scanner_id})")
        return scanner_id

    def remove_scanner(self, scanner_id: str) -> None:
        active = self.jobs.active_job_ids(scanner_id)
        removed = self.scanners.remove(scanner_id, active_job_ids=active)
        logger.info(f"Removed scanner {removed.name} ({scanner_id})")

    def reset_scanner_status(self, scanner_id: str) -> None:
        """
        Put a scanner back to Available.

        Idle states (Available, Offline, Error) are reset with a conditional
        write. A Busy scanner is only freed when no active job references it.

        Raises:
            NotFoundError: If the scanner is unknown
            ConflictError: If a job is scanning on it or holds it Busy
        """
        scanning = [
            job.id
            for job in self.jobs.list()
            if job.scanner_id == scanner_id and job.status in _DEVICE_HOLDING_STATUSES
        ]
        if scanning:
            raise ConflictError("Scanner has a scan in progress", active_job_ids=scanning)

        if not self.scanners.transition(scanner_id, ScannerStatus.AVAILABLE, allowed_from=_IDLE_STATUSES):
            holders = self.jobs.active_job_ids(scanner_id)
            if holders:
                raise ConflictError("Scanner has a scan in progress", active_job_ids=holders)
            self.scanners.release(scanner_id)
        logger.info(f"Reset scanner {scanner_id} to Available")

    def simulate_scanner_events(self) -> list[Scanner]:
        """
        Randomly move idle scanners between Available, Offline and Error.

        Busy scanners are never touched.
        """
        simulation = self.config.simulation
        offline_p = float(simulation.offline_probability)
        error_p = float(simulation.error_probability)
        reasons = list(simulation.error_reasons) or ["Unknown error"]

        for scanner in self.scanners.list():
            roll = self._rng.random()
            error: Optional[str] = None
            if roll < offline_p:
                status = ScannerStatus.OFFLINE
            elif roll < offline_p + error_p:
                status = ScannerStatus.ERROR
                error = self._rng.choice(reasons)
            else:
                status = ScannerStatus.AVAILABLE
            try:
                if self.scanners.transition(scanner.id, status, allowed_from=_IDLE_STATUSES, error=error):
                    logger.info(f"Scanner {scanner.name} is now {status.value}{f' ({error})' if error else ''}")
            except NotFoundError:
                continue
        return self.scanners.list()

    # -- jobs ---------------------------------------------------------------

    def create_job(self, scanner_id: str, document_type: DocumentType, scan_settings: Optional[ScanSettings] = None) -> str:
        """
        Register a Pending scan job against an Available scanner.

        Raises:
            NotFoundError: If the scanner is unknown
            ConflictError: If the scanner is not Available
        """
        scanner = self.scanners.get(scanner_id)
        if not scanner.is_available():
            raise ConflictError("Scanner is not available")

        record = ScanJobRecord.new(scanner_id, document_type, scan_settings or ScanSettings())
        self.jobs.insert(record)
        logger.info(f"Created scan job {record.id} on {scanner.name} for {document_type.value}")
        return record.id

    def start_job(self, job_id: str) -> None:
        """
        Move a Pending job to Scanning and hand it to the worker pool.

        Returns as soon as the job is submitted; completion is observed by
        polling ``get_job``.

        Raises:
            NotFoundError: If the job is unknown
            ConflictError: If the job is not Pending or its scanner is no longer Available
        """
        job = self.jobs.get(job_id)
        if job.status != JobStatus.PENDING:
            raise ConflictError(f"Job {job_id} is {job.status.value}, only Pending jobs can be started")

        try:
            reserved = self.scanners.reserve(job.scanner_id)
        except NotFoundError:
            logger.warning(f"Scanner {job.scanner_id} is gone; starting job {job_id} without a reservation")
            reserved = None
        if reserved is False:
            raise ConflictError("Scanner is not available")

        def begin(record: ScanJobRecord) -> ScanJob:
            record.start_scanning()
            return record.to_job()

        try:
            snapshot = self.jobs.update(job_id, begin)
        except ConflictError:
            if reserved:
                self.scanners.release(job.scanner_id)
            raise

        self._executor.submit(self._lifecycle.run, snapshot)
        logger.info(f"Started scan job {job_id}")

    def get_job(self, job_id: str) -> ScanJob:
        return self.jobs.get(job_id)

    def list_jobs(self) -> list[ScanJob]:
        return self.jobs.list()

    def get_scan_result(self, job_id: str) -> Optional[ScanResult]:
        return self.jobs.get(job_id).scan_result

    def cancel_job(self, job_id: str) -> None:
        """
        Cancel a job that has not reached a terminal state.

        The scanner is released only if this job was holding it. A running
        lifecycle notices the cancellation at its next step and stops.

        Raises:
            NotFoundError: If the job is unknown
            ConflictError: If the job is already Completed, Failed or Cancelled
        """
        def cancel(record: ScanJobRecord) -> tuple[JobStatus, str]:
            return record.cancel(), record.scanner_id

        previous, scanner_id = self.jobs.update(job_id, cancel)
        if previous in _DEVICE_HOLDING_STATUSES:
            self.scanners.release(scanner_id)
        logger.info(f"Cancelled scan job {job_id} (was {previous.value})")

    # -- host ---------------------------------------------------------------

    def system_info(self) -> SystemInfo:
        return SystemInfo(
            platform=self.platform,
            available_scanners=self.scanners.count_available(),
            total_scanners=len(self.scanners),
            active_jobs=self.jobs.count_active(),
            platform_api=self._discovery.api_label(self.platform),
        )

    def get_config_metadata(self) -> ConfigMetadata:
        return build_config_metadata()

    def open_output_directory(self) -> Path:
        output_dir = self._output_directory()
        self._launcher(output_dir, self.platform)
        return output_dir

    def preview_scan_file(self, file_path: Union[str, Path]) -> None:
        """
        Open a scan file with the host viewer.

        Only files inside the scan output directory can be previewed.

        Raises:
            NotFoundError: If the path does not exist or lies outside the output directory
        """
        output_dir = self._output_directory().resolve()
        target = Path(file_path).expanduser().resolve()
        if not target.is_relative_to(output_dir) or not target.is_file():
            logger.warning(f"Refusing to preview {file_path}: not a file under {output_dir}")
            raise NotFoundError("File", str(file_path))
        self._launcher(target, self.platform)
