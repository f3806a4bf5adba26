"""
Scan artifact synthesis with Pillow.

``ScanGenerator`` renders a simulated page for a document type and writes it
in the requested output format. Randomness here is cosmetic (invoice numbers
and the like) and never decides whether synthesis succeeds.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from .errors import IOFailureError
from .models import (
    ColorMode,
    CustomPaperSize,
    DocumentType,
    OutputFormat,
    PaperSize,
    PaperSpec,
    ScanResult,
    ScanSettings,
)
from .utils import ensure_directory

logger = logging.getLogger(__name__)

MM_PER_INCH = 25.4
# Pages are rasterised at no more than this many dots per inch; the requested
# resolution is still recorded in the file metadata.
RENDER_DPI_CAP = 100

PAPER_DIMENSIONS_MM: Dict[PaperSize, Tuple[float, float]] = {
    PaperSize.A4: (210.0, 297.0),
    PaperSize.A3: (297.0, 420.0),
    PaperSize.LETTER: (215.9, 279.4),
    PaperSize.LEGAL: (215.9, 355.6),
}

FILENAME_PREFIXES: Dict[DocumentType, str] = {
    DocumentType.TEXT: "text_document",
    DocumentType.IMAGE: "scanned_image",
    DocumentType.MIXED: "mixed_content",
    DocumentType.PHOTO: "photo_scan",
    DocumentType.BUSINESS_CARD: "business_card",
    DocumentType.RECEIPT: "receipt",
    DocumentType.CONTRACT: "contract",
    DocumentType.INVOICE: "invoice",
}

FILE_EXTENSIONS: Dict[OutputFormat, str] = {
    OutputFormat.PDF: "pdf",
    OutputFormat.JPEG: "jpg",
    OutputFormat.PNG: "png",
    OutputFormat.TIFF: "tiff",
}

PIL_FORMATS: Dict[OutputFormat, str] = {
    OutputFormat.PDF: "PDF",
    OutputFormat.JPEG: "JPEG",
    OutputFormat.PNG: "PNG",
    OutputFormat.TIFF: "TIFF",
}

IMAGE_MODES: Dict[ColorMode, str] = {
    ColorMode.BLACK_AND_WHITE: "1",
    ColorMode.GRAYSCALE: "L",
    ColorMode.COLOR: "RGB",
}

MULTI_PAGE_FORMATS = frozenset({OutputFormat.PDF, OutputFormat.TIFF})

HEADER_COLOR = (32, 84, 160)


def generate_filename(document_type: DocumentType, output_format: OutputFormat, timestamp: datetime) -> str:
    return f"{FILENAME_PREFIXES[document_type]}_{timestamp.strftime('%Y%m%d_%H%M%S_%f')}.{FILE_EXTENSIONS[output_format]}"


def page_size_pixels(paper_size: PaperSpec, dpi: int) -> Tuple[int, int]:
    if isinstance(paper_size, CustomPaperSize):
        width_mm, height_mm = float(paper_size.width), float(paper_size.height)
    else:
        width_mm, height_mm = PAPER_DIMENSIONS_MM[paper_size]
    return (
        max(1, round(width_mm / MM_PER_INCH * dpi)),
        max(1, round(height_mm / MM_PER_INCH * dpi)),
    )


class ScanGenerator:
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def synthesize(self, document_type: DocumentType, settings: ScanSettings, output_path: Path) -> ScanResult:
        """
        Render and write a scan file.

        Args:
            document_type: Kind of document to simulate
            settings: Scan settings (resolution, color mode, paper, format, quality, duplex)
            output_path: Destination file

        Returns:
            ScanResult describing the written file

        Raises:
            IOFailureError: If the directory cannot be created or the file cannot be written
        """
        ensure_directory(output_path.parent)

        pages = [self._render_page(self._page_lines(document_type, settings), settings)]
        if settings.duplex and settings.output_format in MULTI_PAGE_FORMATS:
            pages.append(self._render_page(["REVERSE SIDE", "", "Duplex pass, no content detected."], settings))

        try:
            self._save(pages, settings, output_path)
            file_size = output_path.stat().st_size
        except (OSError, ValueError) as exc:
            raise IOFailureError(f"Failed to write scan file: {exc}") from exc

        logger.info(f"Wrote {len(pages)} page(s) to {output_path} ({file_size} bytes)")
        return ScanResult(
            file_path=str(output_path),
            file_size=file_size,
            pages=len(pages),
            resolution=settings.resolution,
            color_mode=settings.color_mode,
            format=settings.output_format,
            scan_time=datetime.now(timezone.utc),
        )

    def _render_page(self, lines: List[str], settings: ScanSettings) -> Image.Image:
        dpi = min(settings.resolution, RENDER_DPI_CAP)
        width, height = page_size_pixels(settings.paper_size, dpi)
        image = Image.new("RGB", (width, height), "white")
        draw = ImageDraw.Draw(image)
        font = ImageFont.load_default()

        margin = max(4, width // 12)
        line_height = 14
        header_height = line_height * 2
        title, body = lines[0], lines[1:]

        if settings.color_mode == ColorMode.COLOR:
            draw.rectangle([(0, 0), (width, header_height + margin)], fill=HEADER_COLOR)
            draw.text((margin, margin // 2 + 4), title, fill="white", font=font)
        else:
            draw.text((margin, margin // 2 + 4), title, fill="black", font=font)

        y = header_height + margin + line_height
        for line in body:
            if y > height - margin:
                break
            draw.text((margin, y), line, fill="black", font=font)
            y += line_height

        return image.convert(IMAGE_MODES[settings.color_mode])

    def _save(self, pages: List[Image.Image], settings: ScanSettings, output_path: Path) -> None:
        output_format = settings.output_format
        first, rest = pages[0], pages[1:]
        options: Dict[str, object] = {}

        if output_format == OutputFormat.PDF:
            options["resolution"] = float(settings.resolution)
        else:
            options["dpi"] = (settings.resolution, settings.resolution)

        if output_format == OutputFormat.JPEG:
            options["quality"] = settings.quality
            if first.mode == "1":
                first = first.convert("L")

        if rest:
            options["save_all"] = True
            options["append_images"] = rest

        first.save(output_path, PIL_FORMATS[output_format], **options)

    def _page_lines(self, document_type: DocumentType, settings: ScanSettings) -> List[str]:
        now = datetime.now(timezone.utc)
        paper = settings.paper_size
        paper_label = f"{paper.width}x{paper.height}mm" if isinstance(paper, CustomPaperSize) else paper.value
        footer = [
            "",
            f"[Scanned at {settings.resolution} DPI, quality {settings.quality}%, {settings.color_mode.value}]",
            f"Paper: {paper_label}  Format: {settings.output_format.value}  Duplex: {'Yes' if settings.duplex else 'No'}",
        ]

        if document_type == DocumentType.TEXT:
            body = [
                "MEMORANDUM",
                "TO: Development Team",
                "FROM: Scanner Tool Project Manager",
                f"DATE: {now:%Y-%m-%d}",
                "RE: Scanner simulation test",
                "",
                "This page was produced by the scanner simulation backend.",
                "It exercises document types, output formats and color modes.",
            ]
        elif document_type == DocumentType.INVOICE:
            body = [
                "INVOICE",
                f"Invoice #: INV-{self._rng.randint(10000, 99999)}",
                f"Date: {now:%Y-%m-%d}",
                f"Due: {now + timedelta(days=30):%Y-%m-%d}",
                "",
                "Scanner Tool License        1   $299.00   $299.00",
                "Technical Support (hrs)     5    $50.00   $250.00",
                "Implementation Services     1   $150.00   $150.00",
                "",
                "TOTAL:  $699.00",
            ]
        elif document_type == DocumentType.CONTRACT:
            body = [
                "SOFTWARE LICENSE AGREEMENT",
                f"Effective {now:%B %d, %Y}",
                "",
                "1. GRANT OF LICENSE",
                "A non-exclusive, non-transferable license to use the software.",
                "2. RESTRICTIONS",
                "No modification, reverse engineering or redistribution.",
                "",
                "Signature: ______________________",
            ]
        elif document_type == DocumentType.RECEIPT:
            body = [
                "TECH STORE RECEIPT",
                f"{now:%Y-%m-%d %H:%M:%S}",
                f"Transaction #: TX-{self._rng.randint(100000, 999999)}",
                "",
                "Scanner Tool Software     $299.00",
                "Extended Warranty          $49.99",
                "",
                "TOTAL                     $348.99",
            ]
        elif document_type == DocumentType.BUSINESS_CARD:
            body = [
                "JOHN SMITH",
                "Senior Developer",
                "Scanner Tool Corp.",
                "john.smith@example.com",
                "+1 (555) 123-4567",
            ]
        elif document_type == DocumentType.PHOTO:
            body = [
                "PHOTO SCAN",
                f"Scanned: {now:%Y-%m-%d %H:%M:%S}",
                "Dust removal: applied",
                "Color correction: auto",
                f"Noise reduction: {settings.quality}%",
            ]
        else:
            body = [
                f"{document_type.value.upper()} DOCUMENT",
                f"Scan date: {now:%Y-%m-%d %H:%M:%S}",
                "Scanner: simulated device",
                "",
                "Generated for testing and development purposes.",
            ]
        return body + footer
