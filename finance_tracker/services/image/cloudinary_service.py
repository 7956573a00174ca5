"""
Receipt Image Hosting using Cloudinary

DESIGN DECISION: Receipt images live in Cloudinary because:
1. Public HTTPS URLs we can store next to the receipt record
2. Reliable cloud infrastructure
3. Simple API
4. Free tier sufficient for personal use

This service handles:
1. Format, size and decodability checks before upload
2. Upload under a per-owner path
3. Photo tips (low resolution, too dark) that never block the upload

Deleting a receipt record does NOT delete its image.
"""

import re
from io import BytesIO
from pathlib import Path

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
from PIL import Image, UnidentifiedImageError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finance_tracker.config import get_settings
from finance_tracker.models.finance import utcnow


class ImageUploadError(Exception):
    """Failed to upload image to Cloudinary."""
    pass


class UnsupportedImageError(ImageUploadError):
    """The file is not an image we accept (format, size, or unreadable)."""
    pass


def _safe_path_part(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "_", value).strip("_") or "receipt"


class ReceiptImageService:
    """
    Uploads receipt photos to Cloudinary.

    Flow:
    1. Receive raw image bytes
    2. Validate them locally with Pillow
    3. Upload to <folder>/<owner_id>/<timestamp>-<name>
    4. Return the public URL
    """

    def __init__(self):
        self._settings = get_settings().cloudinary
        self._app_settings = get_settings().app
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def build_public_id(self, owner_id: str, filename: str) -> str:
        """Path of the image inside the configured folder."""
        timestamp = utcnow().strftime("%Y%m%d%H%M%S%f")
        stem = _safe_path_part(Path(filename).stem)
        return f"{_safe_path_part(owner_id)}/{timestamp}-{stem}"

    def validate_image(self, image_bytes: bytes, filename: str) -> None:
        """
        Reject files we can't store.

        Raises:
            UnsupportedImageError: Wrong extension, too large, or not an image
        """
        extension = Path(filename).suffix.lower().lstrip(".")
        if extension not in self._app_settings.supported_formats_list:
            raise UnsupportedImageError(
                f"Unsupported file type '.{extension}'. "
                f"Use one of: {', '.join(self._app_settings.supported_formats_list)}"
            )

        if len(image_bytes) > self._app_settings.max_upload_size_bytes:
            raise UnsupportedImageError(
                f"File is too large (max {self._app_settings.max_upload_size_mb} MB)"
            )

        try:
            with Image.open(BytesIO(image_bytes)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise UnsupportedImageError(f"File is not a readable image: {e}")

    def photo_tips(self, image_bytes: bytes) -> list[str]:
        """
        Simple heuristics on the photo, shown as hints before OCR.

        DESIGN DECISION: Heuristics only. OCR is best-effort anyway, so a
        poor photo is never rejected, the user is just told why the
        pre-filled fields may be empty.
        """
        tips = []
        try:
            with Image.open(BytesIO(image_bytes)) as img:
                width, height = img.size
                if min(width, height) < 500:
                    tips.append("Image resolution is low, text may be hard to read")

                histogram = img.convert("L").histogram()
                total_pixels = sum(histogram) or 1
                if sum(histogram[:50]) / total_pixels > 0.7:
                    tips.append("Image is very dark, try better lighting")
                if sum(histogram[200:]) / total_pixels > 0.7:
                    tips.append("Image is overexposed, try reducing glare")
        except (UnidentifiedImageError, OSError) as e:
            tips.append(f"Could not analyze image: {e}")
        return tips

    @retry(
        retry=retry_if_exception_type(cloudinary.exceptions.Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _upload(self, image_bytes: bytes, public_id: str) -> dict:
        return cloudinary.uploader.upload(
            image_bytes,
            public_id=public_id,
            folder=self._settings.folder,
            resource_type="image",
        )

    async def upload_receipt(
        self,
        image_bytes: bytes,
        filename: str,
        owner_id: str,
    ) -> str:
        """
        Validate and upload a receipt image.

        Returns:
            The public HTTPS URL of the stored image

        Raises:
            UnsupportedImageError: If the file fails local validation
            ImageUploadError: If Cloudinary rejects or fails the upload
        """
        self.validate_image(image_bytes, filename)
        self._configure()

        try:
            result = self._upload(image_bytes, self.build_public_id(owner_id, filename))
        except cloudinary.exceptions.Error as e:
            raise ImageUploadError(f"Cloudinary error: {e}")
        except Exception as e:
            raise ImageUploadError(f"Failed to upload image: {e}")

        url = result.get("secure_url", result.get("url", ""))
        if not url:
            raise ImageUploadError("No URL returned from Cloudinary")
        return url
