"""OCR services package."""

from finance_tracker.services.ocr.extraction import extract_receipt_fields
from finance_tracker.services.ocr.mindee_service import (
    ExtractionFailedError,
    MindeeOCRService,
    OCRError,
)

__all__ = [
    "ExtractionFailedError",
    "MindeeOCRService",
    "OCRError",
    "extract_receipt_fields",
]
