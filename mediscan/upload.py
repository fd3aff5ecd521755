"""
File intake rules for medical image uploads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from mediscan.data_access import file_to_data_url
from mediscan.errors import FileValidationError

ALLOWED_CONTENT_TYPES = frozenset(
    {"image/jpeg", "image/png", "image/webp", "image/dicom"}
)
DICOM_EXTENSION = ".dcm"
MAX_FILE_SIZE = 50 * 1024 * 1024


@dataclass
class SelectedFile:
    filename: str
    content_type: Optional[str]
    data: bytes
    preview_url: str

    @property
    def size(self) -> int:
        return len(self.data)


def validate_file(filename: str, content_type: Optional[str], size: int) -> None:
    """Raise FileValidationError unless the file is an accepted image within the size ceiling."""
    name = (filename or "").lower()
    if content_type not in ALLOWED_CONTENT_TYPES and not name.endswith(DICOM_EXTENSION):
        raise FileValidationError(
            "Invalid file type",
            "Please upload a valid medical image (JPEG, PNG, WebP, or DICOM).",
        )
    if size > MAX_FILE_SIZE:
        raise FileValidationError(
            "File too large", "Please upload a file smaller than 50MB."
        )


def select_file(filename: str, content_type: Optional[str], data: bytes) -> SelectedFile:
    validate_file(filename, content_type, len(data))
    return SelectedFile(
        filename=filename,
        content_type=content_type,
        data=data,
        preview_url=file_to_data_url(data, content_type),
    )
