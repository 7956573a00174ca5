"""
OCR Service using Mindee

DESIGN DECISION: We use Mindee because:
1. Specialized for financial documents (receipts in particular)
2. Returns the full page text alongside its own field predictions
3. Hosted, so the app needs no local OCR engine

This service handles:
1. Sending receipt image bytes to Mindee
2. Returning the recognized text
3. Reporting progress (0-100) to the caller as it goes

IMPORTANT: The only output is TEXT. Field extraction happens in
extraction.py so it stays testable without the network, and a failure
here never prevents the user from filling the form by hand.
"""

from datetime import date
from typing import Callable, Optional

from mindee import Client, product
from tenacity import retry, stop_after_attempt, wait_exponential

from finance_tracker.config import get_settings


ProgressCallback = Callable[[int], None]


class OCRError(Exception):
    """Base exception for OCR errors."""
    pass


class ExtractionFailedError(OCRError):
    """Failed to read any text from the document."""
    pass


def _report(progress: Optional[ProgressCallback], value: int) -> None:
    if progress is not None:
        progress(value)


class MindeeOCRService:
    """
    Text recognition for receipt images.

    IMPORTANT BOUNDARIES:
    1. This service ONLY recognizes text - it does NOT interpret it
    2. Errors are raised as OCRError; callers decide whether to continue
    """

    def __init__(self):
        self._settings = get_settings().mindee
        self._client: Optional[Client] = None

    def _get_client(self) -> Client:
        """Get or create Mindee client."""
        if self._client is None:
            self._client = Client(api_key=self._settings.api_key)
        return self._client

    @staticmethod
    def _text_from_prediction(prediction) -> str:
        """
        Rebuild text from Mindee's field predictions.

        Used when the response carries no full-text OCR layer. Lines are
        written so extract_receipt_fields reads them back.
        """
        lines = []

        supplier = getattr(prediction, "supplier_name", None)
        if supplier is not None and supplier.value:
            lines.append(str(supplier.value))

        receipt_date = getattr(prediction, "date", None)
        if receipt_date is not None and receipt_date.value:
            try:
                d = date.fromisoformat(str(receipt_date.value))
                lines.append(f"Date: {d.month}/{d.day}/{d.year}")
            except ValueError:
                pass

        total_tax = getattr(prediction, "total_tax", None)
        if total_tax is not None and total_tax.value is not None:
            lines.append(f"Tax: {total_tax.value:.2f}")

        total_amount = getattr(prediction, "total_amount", None)
        if total_amount is not None and total_amount.value is not None:
            lines.append(f"Total: {total_amount.value:.2f}")

        return "\n".join(lines)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _parse(self, image_bytes: bytes, filename: str):
        client = self._get_client()
        input_source = client.source_from_bytes(image_bytes, filename)
        return client.parse(product.ReceiptV5, input_source, include_words=True)

    async def recognize_text(
        self,
        image_bytes: bytes,
        filename: str,
        progress: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Recognize the text on a receipt image.

        Args:
            image_bytes: Raw image bytes
            filename: Original filename (Mindee uses it to detect the type)
            progress: Called with 0..100 as recognition advances

        Returns:
            The recognized text, lines separated by newlines

        Raises:
            ExtractionFailedError: If Mindee fails or returns no text
        """
        _report(progress, 0)

        try:
            _report(progress, 10)
            response = self._parse(image_bytes, filename)
            _report(progress, 80)

            document = response.document
            text = str(document.ocr).strip() if document.ocr else ""
            if not text:
                text = self._text_from_prediction(document.inference.prediction)
        except Exception as e:
            raise ExtractionFailedError(f"Failed to recognize receipt text: {e}")

        if not text:
            raise ExtractionFailedError("No text could be recognized on this image")

        _report(progress, 100)
        return text
