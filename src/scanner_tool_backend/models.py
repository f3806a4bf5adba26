from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field


class ScannerType(str, Enum):
    FLATBED = "Flatbed"
    DOCUMENT_FEEDER = "DocumentFeeder"
    SHEET_FED = "SheetFed"
    HANDHELD = "Handheld"
    FILM_SCANNER = "FilmScanner"
    PHOTO_SCANNER = "PhotoScanner"


class ScannerStatus(str, Enum):
    AVAILABLE = "Available"
    BUSY = "Busy"
    OFFLINE = "Offline"
    ERROR = "Error"


class SystemType(str, Enum):
    WINDOWS = "Windows"
    MACOS = "MacOS"
    LINUX = "Linux"


class ColorMode(str, Enum):
    BLACK_AND_WHITE = "BlackAndWhite"
    GRAYSCALE = "Grayscale"
    COLOR = "Color"


class PaperSize(str, Enum):
    A4 = "A4"
    A3 = "A3"
    LETTER = "Letter"
    LEGAL = "Legal"


class CustomPaperSize(BaseModel):
    """Paper dimensions in millimetres."""

    width: int = Field(gt=0)
    height: int = Field(gt=0)


PaperSpec = Union[PaperSize, CustomPaperSize]


class OutputFormat(str, Enum):
    PDF = "Pdf"
    JPEG = "Jpeg"
    PNG = "Png"
    TIFF = "Tiff"


class DocumentType(str, Enum):
    TEXT = "Text"
    IMAGE = "Image"
    MIXED = "Mixed"
    PHOTO = "Photo"
    BUSINESS_CARD = "BusinessCard"
    RECEIPT = "Receipt"
    CONTRACT = "Contract"
    INVOICE = "Invoice"


class JobStatus(str, Enum):
    PENDING = "Pending"
    SCANNING = "Scanning"
    # Reserved for post-scan phases; the lifecycle engine goes Scanning -> terminal.
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


ACTIVE_JOB_STATUSES = frozenset({JobStatus.PENDING, JobStatus.SCANNING, JobStatus.PROCESSING})
TERMINAL_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


def _default_paper_sizes() -> List[PaperSpec]:
    return [PaperSize.A4, PaperSize.A3, PaperSize.LETTER, PaperSize.LEGAL]


class ScannerCapabilities(BaseModel):
    max_resolution: int = Field(600, gt=0)
    color_modes: List[ColorMode] = Field(default_factory=lambda: list(ColorMode))
    paper_sizes: List[PaperSpec] = Field(default_factory=_default_paper_sizes)
    has_duplex: bool = True
    has_adf: bool = False


class Scanner(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    scanner_type: ScannerType
    status: ScannerStatus = ScannerStatus.AVAILABLE
    error: Optional[str] = None
    capabilities: ScannerCapabilities = Field(default_factory=ScannerCapabilities)
    system_type: SystemType

    def is_available(self) -> bool:
        return self.status == ScannerStatus.AVAILABLE


class ScanSettings(BaseModel):
    resolution: int = Field(300, gt=0)
    color_mode: ColorMode = ColorMode.COLOR
    paper_size: PaperSpec = PaperSize.A4
    duplex: bool = False
    output_format: OutputFormat = OutputFormat.PDF
    quality: int = Field(85, ge=1, le=100)


class ScanResult(BaseModel):
    file_path: str
    file_size: int
    pages: int
    resolution: int
    color_mode: ColorMode
    format: OutputFormat
    scan_time: datetime


class ScanJob(BaseModel):
    id: str
    scanner_id: str
    document_type: DocumentType
    scan_settings: ScanSettings
    status: JobStatus
    progress: float = 0.0
    created_at: datetime
    completed_at: Optional[datetime] = None
    scan_result: Optional[ScanResult] = None
    error: Optional[str] = None


class SystemInfo(BaseModel):
    platform: SystemType
    available_scanners: int
    total_scanners: int
    active_jobs: int
    platform_api: str


class ConfigMetadata(BaseModel):
    defaults: Dict[str, Any]
    document_types: List[DocumentType]
    color_modes: List[ColorMode]
    paper_sizes: List[PaperSize]
    output_formats: List[OutputFormat]
    scanner_types: List[ScannerType]
    default_scan_settings: ScanSettings


class CreateJobRequest(BaseModel):
    scanner_id: str
    document_type: DocumentType
    scan_settings: ScanSettings = Field(default_factory=ScanSettings)


class JobCreated(BaseModel):
    job_id: str


class ConnectionTestResult(BaseModel):
    scanner_id: str
    connected: bool


class PreviewRequest(BaseModel):
    file_path: str
