"""
Tests for Scanner Tool Backend API endpoints.

Tests cover:
- Health check and configuration defaults
- System information
- Scanner inventory, discovery and management
- Scan job lifecycle (create, start, poll, cancel, result)
- Error mapping (404 / 409 / 422)
"""

import time

import pytest

from scanner_tool_backend.models import ScannerStatus, SystemType


def first_linux_scanner(client):
    response = client.get("/scanners", params={"system_type": "Linux"})
    assert response.status_code == 200
    return response.json()[0]


def poll_job(client, job_id, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        job = client.get(f"/jobs/{job_id}").json()
        if job["status"] in ("Completed", "Failed", "Cancelled"):
            return job
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} did not finish")


class TestHealthCheck:
    """Tests for the /healthz endpoint."""

    def test_health_check_returns_ok(self, client):
        """Health check should return status ok."""
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestConfigDefaults:
    """Tests for the configuration endpoints."""

    def test_get_config_defaults(self, client):
        """Should return configuration metadata."""
        response = client.get("/config/defaults")
        assert response.status_code == 200

        data = response.json()
        assert "defaults" in data
        assert "Invoice" in data["document_types"]
        assert data["output_formats"] == ["Pdf", "Jpeg", "Png", "Tiff"]
        assert data["default_scan_settings"]["quality"] == 85

    def test_default_scan_settings(self, client):
        """Default scan settings match the documented defaults."""
        response = client.get("/scan-settings/default")
        assert response.json() == {
            "resolution": 300,
            "color_mode": "Color",
            "paper_size": "A4",
            "duplex": False,
            "output_format": "Pdf",
            "quality": 85,
        }


class TestSystemInfo:
    """Tests for the /system endpoint."""

    def test_system_info(self, client):
        """System info counts scanners and active jobs for the host."""
        response = client.get("/system")
        assert response.status_code == 200
        assert response.json() == {
            "platform": "Linux",
            "available_scanners": 6,
            "total_scanners": 6,
            "active_jobs": 0,
            "platform_api": "SANE",
        }


class TestScanners:
    """Tests for the scanner endpoints."""

    def test_list_and_filter(self, client):
        """Scanners can be listed and filtered by system."""
        assert len(client.get("/scanners").json()) == 6
        macs = client.get("/scanners", params={"system_type": "MacOS"}).json()
        assert {scanner["system_type"] for scanner in macs} == {"MacOS"}

    def test_get_unknown_scanner(self, client):
        """Unknown scanners return 404."""
        response = client.get("/scanners/nonexistent")
        assert response.status_code == 404
        assert response.json()["detail"] == "Scanner with ID nonexistent not found"

    def test_capabilities(self, client):
        """Capabilities come from the configured profile."""
        scanner = first_linux_scanner(client)
        response = client.get(f"/scanners/{scanner['id']}/capabilities")
        assert response.status_code == 200
        assert response.json() == scanner["capabilities"]

    def test_connection_test(self, client):
        """Connection tests report the scanner and a boolean."""
        scanner = first_linux_scanner(client)
        response = client.post(f"/scanners/{scanner['id']}/test-connection")
        assert response.status_code == 200
        assert response.json()["scanner_id"] == scanner["id"]
        assert isinstance(response.json()["connected"], bool)

    def test_discover_replaces_inventory(self, client):
        """Discovery leaves only host scanners."""
        response = client.post("/scanners/discover")
        assert response.status_code == 200
        assert {scanner["system_type"] for scanner in response.json()} == {"Linux"}
        assert len(client.get("/scanners").json()) == 2

    def test_add_scanner_platform_mismatch(self, client):
        """Adding a scanner for another platform returns 409."""
        response = client.post(
            "/scanners",
            json={"name": "Mac only", "scanner_type": "Flatbed", "system_type": "MacOS"},
        )
        assert response.status_code == 409

    def test_add_and_remove_scanner(self, client):
        """A scanner can be added and removed again."""
        response = client.post(
            "/scanners",
            json={"name": "Desk Handheld", "scanner_type": "Handheld", "system_type": "Linux"},
        )
        assert response.status_code == 201
        scanner_id = response.json()["id"]
        assert client.get(f"/scanners/{scanner_id}").json()["name"] == "Desk Handheld"

        assert client.delete(f"/scanners/{scanner_id}").json() == {"status": "removed"}
        assert client.get(f"/scanners/{scanner_id}").status_code == 404

    def test_remove_unknown_scanner(self, client):
        """Removing an unknown scanner returns 404."""
        assert client.delete("/scanners/nonexistent").status_code == 404

    def test_reset_scanner(self, client, service):
        """Reset returns a faulted scanner to Available."""
        scanner = first_linux_scanner(client)
        service.scanners.set_status(scanner["id"], ScannerStatus.ERROR, "Paper jam")

        response = client.post(f"/scanners/{scanner['id']}/reset")

        assert response.status_code == 200
        assert client.get(f"/scanners/{scanner['id']}").json()["status"] == "Available"

    def test_simulate_events(self, client):
        """Simulated events return the whole inventory."""
        response = client.post("/scanners/simulate-events")
        assert response.status_code == 200
        assert len(response.json()) == 6


class TestJobs:
    """Tests for the job endpoints."""

    def test_list_jobs_empty(self, client):
        """No jobs are listed before any is created."""
        response = client.get("/jobs")
        assert response.status_code == 200
        assert response.json() == []

    def test_get_nonexistent_job(self, client):
        """Job endpoints return 404 for unknown IDs."""
        assert client.get("/jobs/nonexistent-job-id").status_code == 404
        assert client.get("/jobs/nonexistent-job-id/result").status_code == 404
        assert client.post("/jobs/nonexistent-job-id/start").status_code == 404
        assert client.post("/jobs/nonexistent-job-id/cancel").status_code == 404

    def test_full_job_lifecycle(self, client):
        """Create, start and poll a job to completion."""
        scanner = first_linux_scanner(client)
        response = client.post(
            "/jobs",
            json={
                "scanner_id": scanner["id"],
                "document_type": "Invoice",
                "scan_settings": {"output_format": "Png", "color_mode": "Grayscale", "resolution": 100},
            },
        )
        assert response.status_code == 201
        job_id = response.json()["job_id"]
        assert client.get(f"/jobs/{job_id}").json()["status"] == "Pending"

        assert client.post(f"/jobs/{job_id}/start").status_code == 202
        job = poll_job(client, job_id)

        assert job["status"] == "Completed"
        assert job["progress"] == 1.0
        result = client.get(f"/jobs/{job_id}/result").json()
        assert result["format"] == "Png"
        assert result["color_mode"] == "Grayscale"
        assert client.get(f"/scanners/{scanner['id']}").json()["status"] == "Available"

        response = client.post(f"/jobs/{job_id}/cancel")
        assert response.status_code == 409
        assert response.json()["detail"] == "Job cannot be cancelled in its current state"

    def test_cancel_pending_job(self, client):
        """A Pending job can be cancelled but not started afterwards."""
        scanner = first_linux_scanner(client)
        job_id = client.post("/jobs", json={"scanner_id": scanner["id"], "document_type": "Text"}).json()["job_id"]

        assert client.post(f"/jobs/{job_id}/cancel").json() == {"status": "cancelled"}
        assert client.get(f"/jobs/{job_id}").json()["status"] == "Cancelled"
        assert client.post(f"/jobs/{job_id}/start").status_code == 409

    def test_create_job_for_unknown_scanner(self, client):
        """Creating a job on an unknown scanner returns 404."""
        response = client.post("/jobs", json={"scanner_id": "nonexistent", "document_type": "Text"})
        assert response.status_code == 404

    @pytest.mark.parametrize("quality", [0, 101])
    def test_create_job_rejects_invalid_quality(self, client, quality):
        """Quality outside 1..100 is rejected with 422."""
        scanner = first_linux_scanner(client)
        response = client.post(
            "/jobs",
            json={"scanner_id": scanner["id"], "document_type": "Text", "scan_settings": {"quality": quality}},
        )
        assert response.status_code == 422

    def test_custom_paper_size_is_accepted(self, client):
        """Custom paper sizes round-trip through the job."""
        scanner = first_linux_scanner(client)
        response = client.post(
            "/jobs",
            json={
                "scanner_id": scanner["id"],
                "document_type": "BusinessCard",
                "scan_settings": {"paper_size": {"width": 85, "height": 55}},
            },
        )
        assert response.status_code == 201
        job = client.get(f"/jobs/{response.json()['job_id']}").json()
        assert job["scan_settings"]["paper_size"] == {"width": 85, "height": 55}


class TestHostActions:
    """Tests for the output and preview endpoints."""

    def test_open_output_directory(self, client, service, tmp_path):
        """Opening the output directory returns its path."""
        response = client.post("/output/open")
        assert response.status_code == 200
        assert response.json()["path"] == str(tmp_path / "scans")
        assert service._launcher.opened == [(str(tmp_path / "scans"), SystemType.LINUX)]

    def test_preview_scan_file(self, client, service, tmp_path):
        """A scan file in the output directory is opened."""
        target = tmp_path / "scans" / "scan.png"
        target.parent.mkdir(exist_ok=True)
        target.write_bytes(b"png")

        response = client.post("/files/preview", json={"file_path": str(target)})

        assert response.status_code == 200
        assert response.json() == {"status": "opened"}
        assert service._launcher.opened == [(str(target.resolve()), SystemType.LINUX)]

    def test_preview_missing_file(self, client, tmp_path):
        """A missing file returns 404."""
        response = client.post("/files/preview", json={"file_path": str(tmp_path / "scans" / "missing.pdf")})
        assert response.status_code == 404

    def test_preview_outside_output_directory_is_refused(self, client, service, tmp_path):
        """Paths outside the output directory return 404 and are never opened."""
        outside = tmp_path / "launcher.sh"
        outside.write_text("#!/bin/sh\n")

        response = client.post("/files/preview", json={"file_path": str(outside)})

        assert response.status_code == 404
        assert service._launcher.opened == []


class TestCORS:
    """Tests for CORS handling."""

    def test_cors_headers_present(self, client):
        """CORS preflight should not be blocked."""
        response = client.options(
            "/healthz",
            headers={
                "Origin": "http://localhost:1420",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert response.status_code in [200, 400]
