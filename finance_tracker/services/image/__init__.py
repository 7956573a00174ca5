"""Receipt image hosting package."""

from finance_tracker.services.image.cloudinary_service import (
    ImageUploadError,
    ReceiptImageService,
    UnsupportedImageError,
)

__all__ = [
    "ImageUploadError",
    "ReceiptImageService",
    "UnsupportedImageError",
]
