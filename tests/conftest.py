"""
Pytest configuration and fixtures for Scanner Tool Backend tests.
"""

import os
import random
import shutil
import tempfile
import threading
import time

import pytest
from fastapi.testclient import TestClient
from omegaconf import OmegaConf

# Set test environment variables before importing the app
os.environ["SCANNER_TOOL_OUTPUT_DIR"] = tempfile.mkdtemp(prefix="scanner_tool_test_output_")
os.environ["SCANNER_TOOL_PLATFORM"] = "Linux"

from scanner_tool_backend.configuration import make_runtime_config
from scanner_tool_backend.main import app, get_scanner_service
from scanner_tool_backend.models import TERMINAL_JOB_STATUSES, ScannerType, SystemType
from scanner_tool_backend.scanner_service import ScannerService


class GatedSleep:
    """Sleep replacement that blocks every caller until the gate is opened."""

    def __init__(self, timeout: float = 5.0):
        self.calls = 0
        self._opened = threading.Event()
        self._timeout = timeout

    def __call__(self, seconds: float) -> None:
        self.calls += 1
        if not self._opened.wait(self._timeout):
            raise RuntimeError("gate was never opened")

    def open(self) -> None:
        self._opened.set()


class RecordingLauncher:
    def __init__(self):
        self.opened = []

    def __call__(self, path, system_type) -> None:
        self.opened.append((str(path), system_type))


@pytest.fixture(scope="session", autouse=True)
def test_dirs():
    """Cleanup the environment output directory after all tests."""
    output_dir = os.environ["SCANNER_TOOL_OUTPUT_DIR"]
    yield output_dir
    shutil.rmtree(output_dir, ignore_errors=True)


@pytest.fixture
def fast_overrides(tmp_path):
    """Config overrides that make every simulated delay near-instant."""
    return {
        "scan": {"duration_seconds": [0.02, 0.02], "failure_probability": 0.0},
        "discovery": {"initial_delay_seconds": 0.0, "per_device_delay_seconds": 0.0},
        "connection_test": {"delay_seconds": 0.0},
        "output": {"root": str(tmp_path), "directory_name": "scans"},
    }


@pytest.fixture
def fast_config(fast_overrides):
    return make_runtime_config(fast_overrides)


@pytest.fixture
def make_service(fast_overrides):
    """Factory building Linux services on the fast config; all are shut down on teardown."""
    services = []

    def factory(overrides=None, **kwargs):
        merged = make_runtime_config(OmegaConf.to_container(OmegaConf.merge(fast_overrides, overrides or {})))
        kwargs.setdefault("platform", SystemType.LINUX)
        kwargs.setdefault("rng", random.Random(1234))
        kwargs.setdefault("launcher", RecordingLauncher())
        service = ScannerService(config=merged, **kwargs)
        services.append(service)
        return service

    yield factory

    for service in services:
        service.shutdown(wait=True)


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def flatbed(service):
    """The Linux flatbed scanner from the default inventory."""
    return next(
        scanner
        for scanner in service.list_scanners_by_system(SystemType.LINUX)
        if scanner.scanner_type == ScannerType.FLATBED
    )


@pytest.fixture
def wait_for_job():
    """Poll a service until a job reaches a terminal state."""

    def wait(service, job_id, timeout=10.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            job = service.get_job(job_id)
            if job.status in TERMINAL_JOB_STATUSES:
                return job
            time.sleep(0.01)
        raise AssertionError(f"job {job_id} did not finish within {timeout}s")

    return wait


@pytest.fixture
def client(service):
    """Create a test client wired to a fast service."""
    app.dependency_overrides[get_scanner_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def gate(make_service):
    """A GatedSleep that is opened on teardown, before any service shuts down."""
    sleep = GatedSleep()
    yield sleep
    sleep.open()
