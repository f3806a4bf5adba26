"""
Background lifecycle of a started scan job.

``ScanLifecycle.run`` is executed on a worker thread for every started job. It
walks the job from Scanning to a terminal state in timed progress steps,
writing through the job store and scanner registry in separate, non-nested
critical sections.

Every write the engine makes is conditional on the job still being Scanning.
A job cancelled mid-run keeps its Cancelled status and the engine stops at its
next step without touching the scanner, which cancellation already released.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from omegaconf import DictConfig

from .errors import NotFoundError
from .job_store import JobStore, ScanJobRecord
from .models import ScanJob, ScanResult
from .scan_generator import ScanGenerator, generate_filename
from .scanner_registry import ScannerRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanPlan:
    """Random draws made once at launch."""

    duration_seconds: float
    should_fail: bool


class ScanLifecycle:
    """
    Drives started jobs to a terminal state.

    Args:
        jobs: Shared job store
        scanners: Shared scanner registry
        config: Runtime config (``scan`` section)
        synthesizer: Collaborator producing the scan file
        output_directory: Callable resolving (and creating) the output directory
        rng: Random source for duration and failure draws
        sleep: Blocking sleep used between progress steps
    """

    def __init__(
        self,
        jobs: JobStore,
        scanners: ScannerRegistry,
        config: DictConfig,
        synthesizer: ScanGenerator,
        output_directory: Callable[[], Path],
        rng: random.Random,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._jobs = jobs
        self._scanners = scanners
        self._config = config.scan
        self._synthesizer = synthesizer
        self._output_directory = output_directory
        self._rng = rng
        self._sleep = sleep

    def draw_plan(self) -> ScanPlan:
        low, high = (float(value) for value in self._config.duration_seconds)
        return ScanPlan(
            duration_seconds=self._rng.uniform(low, high),
            should_fail=self._rng.random() < float(self._config.failure_probability),
        )

    def run(self, job: ScanJob) -> None:
        """
        Execute the lifecycle for a job snapshot taken when it was started.

        Never raises: unexpected errors are recorded as the job's failure reason.
        """
        try:
            self._run(job)
        except Exception as exc:
            logger.exception(f"Scan job {job.id} crashed")
            try:
                self._finish(job, lambda record: record.fail(str(exc)))
            except Exception:
                logger.exception(f"Could not record the failure of scan job {job.id}")

    def _run(self, job: ScanJob) -> None:
        # The service reserved the scanner (Available -> Busy) before submitting this run.
        try:
            self._scanners.get(job.scanner_id)
        except NotFoundError:
            logger.warning(f"Scanner {job.scanner_id} for job {job.id} is not registered; scanning anyway")

        plan = self.draw_plan()
        steps = int(self._config.steps)
        failure_after_step = int(self._config.failure_after_step)
        step_duration = plan.duration_seconds / steps
        logger.info(f"Scan job {job.id} started: {plan.duration_seconds:.2f}s over {steps} steps")

        for step in range(1, steps + 1):
            self._sleep(step_duration)

            progress = step / steps
            if not self._jobs.update(job.id, lambda record: record.update_progress(progress)):
                logger.info(f"Scan job {job.id} left Scanning at step {step}; stopping")
                return

            if plan.should_fail and step > failure_after_step:
                reason = str(self._config.failure_reason)
                logger.warning(f"Simulating scanner failure for job {job.id} at step {step}")
                self._finish(job, lambda record: record.fail(reason))
                return

        try:
            result = self._synthesize(job)
        except Exception as exc:
            logger.error(f"Failed to produce scan file for job {job.id}: {exc}")
            self._finish(job, lambda record: record.fail(str(exc)))
            return

        self._finish(job, lambda record: record.complete(result))

    def _synthesize(self, job: ScanJob) -> ScanResult:
        output_dir = self._output_directory()
        filename = generate_filename(
            job.document_type,
            job.scan_settings.output_format,
            datetime.now(timezone.utc),
        )
        return self._synthesizer.synthesize(job.document_type, job.scan_settings, output_dir / filename)

    def _finish(self, job: ScanJob, transition: Callable[[ScanJobRecord], bool]) -> None:
        """Apply a terminal transition and, if it landed, release the scanner."""
        try:
            applied = self._jobs.update(job.id, transition)
        except NotFoundError:
            logger.warning(f"Scan job {job.id} vanished before it could be finished")
            applied = False

        if not applied:
            logger.info(f"Scan job {job.id} was already terminal; leaving scanner {job.scanner_id} alone")
            return

        self._scanners.release(job.scanner_id)
        logger.info(f"Scan job {job.id} finished as {self._jobs.get(job.id).status.value}")
