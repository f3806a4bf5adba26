from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import ConflictError, IOFailureError, LockFailureError, NotFoundError
from .models import (
    ConfigMetadata,
    ConnectionTestResult,
    CreateJobRequest,
    JobCreated,
    PreviewRequest,
    ScanJob,
    Scanner,
    ScannerCapabilities,
    ScanResult,
    ScanSettings,
    SystemInfo,
    SystemType,
)
from .scanner_service import ScannerService

scanner_service = ScannerService.from_environment()


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    scanner_service.shutdown(wait=False)


app = FastAPI(title="Scanner Tool API", version="0.1.0", lifespan=lifespan)

allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_scanner_service() -> ScannerService:
    return scanner_service


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(_: Request, exc: NotFoundError) -> JSONResponse:
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(ConflictError)
async def conflict_handler(_: Request, exc: ConflictError) -> JSONResponse:
    return _error_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(IOFailureError)
async def io_failure_handler(_: Request, exc: IOFailureError) -> JSONResponse:
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)


@app.exception_handler(LockFailureError)
async def lock_failure_handler(_: Request, exc: LockFailureError) -> JSONResponse:
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, exc)


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/config/defaults", response_model=ConfigMetadata)
def get_config_defaults(service: ScannerService = Depends(get_scanner_service)) -> ConfigMetadata:
    return service.get_config_metadata()


@app.get("/scan-settings/default", response_model=ScanSettings)
def get_default_scan_settings() -> ScanSettings:
    return ScanSettings()


@app.get("/system", response_model=SystemInfo)
def get_system_info(service: ScannerService = Depends(get_scanner_service)) -> SystemInfo:
    return service.system_info()


@app.get("/scanners", response_model=list[Scanner])
def list_scanners(
    system_type: Optional[SystemType] = None,
    service: ScannerService = Depends(get_scanner_service),
) -> list[Scanner]:
    if system_type is not None:
        return service.list_scanners_by_system(system_type)
    return service.list_scanners()


@app.post("/scanners", status_code=status.HTTP_201_CREATED)
def add_scanner(scanner: Scanner, service: ScannerService = Depends(get_scanner_service)) -> Dict[str, str]:
    return {"id": service.add_scanner(scanner)}


@app.post("/scanners/discover", response_model=list[Scanner])
def discover_scanners(service: ScannerService = Depends(get_scanner_service)) -> list[Scanner]:
    return service.discover_scanners()


@app.post("/scanners/simulate-events", response_model=list[Scanner])
def simulate_scanner_events(service: ScannerService = Depends(get_scanner_service)) -> list[Scanner]:
    return service.simulate_scanner_events()


@app.get("/scanners/{scanner_id}", response_model=Scanner)
def get_scanner(scanner_id: str, service: ScannerService = Depends(get_scanner_service)) -> Scanner:
    return service.get_scanner(scanner_id)


@app.get("/scanners/{scanner_id}/capabilities", response_model=ScannerCapabilities)
def get_scanner_capabilities(scanner_id: str, service: ScannerService = Depends(get_scanner_service)) -> ScannerCapabilities:
    return service.get_scanner_capabilities(scanner_id)


@app.post("/scanners/{scanner_id}/test-connection", response_model=ConnectionTestResult)
def test_scanner_connection(scanner_id: str, service: ScannerService = Depends(get_scanner_service)) -> ConnectionTestResult:
    return ConnectionTestResult(scanner_id=scanner_id, connected=service.test_connection(scanner_id))


@app.post("/scanners/{scanner_id}/reset")
def reset_scanner_status(scanner_id: str, service: ScannerService = Depends(get_scanner_service)) -> Dict[str, str]:
    service.reset_scanner_status(scanner_id)
    return {"status": "reset"}


@app.delete("/scanners/{scanner_id}")
def remove_scanner(scanner_id: str, service: ScannerService = Depends(get_scanner_service)) -> Dict[str, str]:
    service.remove_scanner(scanner_id)
    return {"status": "removed"}


@app.get("/jobs", response_model=list[ScanJob])
def list_jobs(service: ScannerService = Depends(get_scanner_service)) -> list[ScanJob]:
    return service.list_jobs()


@app.post("/jobs", response_model=JobCreated, status_code=status.HTTP_201_CREATED)
def create_job(request: CreateJobRequest, service: ScannerService = Depends(get_scanner_service)) -> JobCreated:
    job_id = service.create_job(request.scanner_id, request.document_type, request.scan_settings)
    return JobCreated(job_id=job_id)


@app.get("/jobs/{job_id}", response_model=ScanJob)
def get_job(job_id: str, service: ScannerService = Depends(get_scanner_service)) -> ScanJob:
    return service.get_job(job_id)


@app.post("/jobs/{job_id}/start", status_code=status.HTTP_202_ACCEPTED)
def start_job(job_id: str, service: ScannerService = Depends(get_scanner_service)) -> Dict[str, str]:
    service.start_job(job_id)
    return {"status": "started"}


@app.post("/jobs/{job_id}/cancel")
def cancel_job(job_id: str, service: ScannerService = Depends(get_scanner_service)) -> Dict[str, str]:
    service.cancel_job(job_id)
    return {"status": "cancelled"}


@app.get("/jobs/{job_id}/result", response_model=Optional[ScanResult])
def get_scan_result(job_id: str, service: ScannerService = Depends(get_scanner_service)) -> Optional[ScanResult]:
    return service.get_scan_result(job_id)


@app.post("/output/open")
def open_output_directory(service: ScannerService = Depends(get_scanner_service)) -> Dict[str, str]:
    output_dir = service.open_output_directory()
    return {"status": "opened", "path": str(output_dir)}


@app.post("/files/preview")
def preview_scan_file(request: PreviewRequest, service: ScannerService = Depends(get_scanner_service)) -> Dict[str, str]:
    service.preview_scan_file(request.file_path)
    return {"status": "opened"}
