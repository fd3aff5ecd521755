"""
Exception types shared across the backend.
"""

from __future__ import annotations


class MediScanError(Exception):
    """Base class for errors raised by this package."""


class ValidationError(MediScanError):
    """Input rejected before any side effect was attempted."""


class FileValidationError(ValidationError):
    def __init__(self, title: str, description: str):
        super().__init__(description)
        self.title = title
        self.description = description


class MissingInformationError(ValidationError):
    def __init__(
        self,
        description: str = "Please select a file and scan type before analyzing.",
    ):
        super().__init__(description)
        self.title = "Missing information"
        self.description = description


class AuthApiError(MediScanError):
    """Error reported by the identity provider. `message` mirrors the backend copy."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


class DuplicateRecordError(MediScanError):
    """A row with the same unique key already exists."""
