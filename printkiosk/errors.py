"""
Error handling for the print kiosk.

Provides specific exception types for the failure modes of the
render and dispatch pipeline, with context for logging and for the
JSON responses returned to the kiosk UI.
"""

from typing import Dict, List, Any


class KioskError(Exception):
    """Base exception for all print kiosk errors."""

    def __init__(self, message: str, details: Dict[str, Any] = None, suggestions: List[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'details': self.details,
            'suggestions': self.suggestions
        }


class ValidationError(KioskError):
    """Raised when user input validation fails."""
    pass


class ConfigurationError(KioskError):
    """Raised when configuration is invalid or missing."""
    pass


class ProcessingError(KioskError):
    """Raised when processing pipeline fails."""
    pass


class RenderError(ProcessingError):
    """Raised when image rendering fails."""
    pass


class DispatchError(ProcessingError):
    """Raised when an order cannot be delivered to the hot folder."""
    pass


# Specific error classes for common failure modes

class InvalidEditParametersError(ValidationError):
    """Raised when persisted or submitted edit parameters are malformed."""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Invalid edit parameter '{field}': {reason}",
            details={
                'field': field,
                'value': value,
                'reason': reason
            },
            suggestions=[
                "Reopen the photo in the editor and save it again",
                "Reset the adjustment sliders to their defaults"
            ]
        )


class IncompleteEditError(ValidationError):
    """Raised when a cover fit is requested without a crop rectangle."""

    def __init__(self, photo_id: str = None):
        super().__init__(
            "Cover fit requires a crop rectangle",
            details={'photo_id': photo_id},
            suggestions=[
                "Move or zoom the crop frame before saving",
                "Switch the photo to 'contain' fit to print it uncropped"
            ]
        )


class InvalidImageFormatError(ValidationError):
    """Raised when an uploaded file has a format the kiosk cannot print."""

    def __init__(self, filename: str, detected_type: str = None):
        super().__init__(
            f"Invalid image format: {filename}",
            details={
                'filename': filename,
                'detected_type': detected_type
            },
            suggestions=[
                "Use JPG, PNG or HEIC photos",
                "Ensure the file is not corrupted"
            ]
        )


class FileTooLargeError(ValidationError):
    """Raised when uploaded file exceeds size limit."""

    def __init__(self, filename: str, size_mb: float, limit_mb: float):
        super().__init__(
            f"File too large: {filename} ({size_mb:.1f}MB exceeds {limit_mb:.1f}MB limit)",
            details={
                'filename': filename,
                'size_mb': size_mb,
                'limit_mb': limit_mb
            },
            suggestions=[
                f"Reduce file size to under {limit_mb:.1f}MB",
                "Send the photo at a lower resolution"
            ]
        )


class UnsupportedImageError(RenderError):
    """Raised when source bytes cannot be decoded as an image."""

    def __init__(self, source: str = None, reason: str = None):
        super().__init__(
            f"Unsupported or corrupt image: {source or '<bytes>'}",
            details={
                'source': source,
                'reason': reason
            },
            suggestions=[
                "Use JPG, PNG or HEIC photos",
                "Ensure the file was fully transferred from the device"
            ]
        )


class RenderTimeoutError(RenderError):
    """Raised when a single render exceeds the configured time budget."""

    def __init__(self, timeout_seconds: float, source: str = None):
        super().__init__(
            f"Rendering exceeded {timeout_seconds:.1f}s",
            details={
                'timeout_seconds': timeout_seconds,
                'source': source
            },
            suggestions=[
                "Check whether the photo is unusually large",
                "Raise RENDER_TIMEOUT_SECONDS in settings.yaml"
            ]
        )


class MissingSourceFileError(DispatchError):
    """Raised when a photo's source file is gone at dispatch time."""

    def __init__(self, source_path: str, photo_id: str = None):
        super().__init__(
            f"Source file not found: {source_path}",
            details={
                'source_path': source_path,
                'photo_id': photo_id
            },
            suggestions=[
                "Check that the USB drive is still connected",
                "Ask the customer to upload the photo again"
            ]
        )


class UnknownFormatError(DispatchError):
    """Raised when a SKU is not present in the format registry."""

    def __init__(self, sku: str, known: List[str] = None):
        super().__init__(
            f"Unknown print format: {sku}",
            details={
                'sku': sku,
                'known_formats': known or []
            },
            suggestions=[
                "Add the SKU to config/formats.yaml",
                "Verify the product catalogue matches the format registry"
            ]
        )


class OrderNotFoundError(DispatchError):
    """Raised when an order id does not exist."""

    def __init__(self, order_id: str):
        super().__init__(
            f"Order {order_id} not found",
            details={'order_id': order_id}
        )
