"""Server-side checks on uploaded files and storage path generation."""

import os
import time
import uuid
from typing import List, Optional

_MIME_EXTENSIONS = {
    "image/jpeg": "jpeg",
    "image/jpg": "jpg",
    "image/png": "png",
    "application/pdf": "pdf",
}


class FileValidationError(ValueError):
    """Raised when an upload is of a disallowed type or too large."""

    def __init__(self, message: str, allowed_types: Optional[List[str]] = None):
        super().__init__(message)
        self.allowed_types = allowed_types


def extension_from_type(file_type: str) -> str:
    """'image/png' -> 'png'; a bare extension such as 'PDF' -> 'pdf'."""
    file_type = file_type.strip().lower()
    if "/" in file_type:
        return _MIME_EXTENSIONS.get(file_type, file_type.split("/", 1)[1])
    return file_type.lstrip(".")


def extension_from_name(file_name: str) -> str:
    return os.path.splitext(file_name)[1].lstrip(".").lower()


def _mb(size: int) -> str:
    return f"{size / 1024 / 1024:.1f}MB"


def validate_file(extension: str, size: int, allowed_types: List[str], max_size: int) -> None:
    if not extension or extension not in allowed_types:
        raise FileValidationError(
            f"File type '{extension}' not allowed", allowed_types=allowed_types
        )
    if size > max_size:
        raise FileValidationError(
            f"File size {_mb(size)} exceeds limit of {_mb(max_size)}"
        )


def generate_file_path(original_file_name: str) -> str:
    """Unique object path: uploads/<epoch millis>-<random>.<ext>"""
    millis = int(time.time() * 1000)
    random_id = uuid.uuid4().hex[:12]
    extension = extension_from_name(original_file_name) or "bin"
    return f"uploads/{millis}-{random_id}.{extension}"
