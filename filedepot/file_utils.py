"""
Display helpers for file metadata.
"""

from __future__ import annotations

import os
import uuid
from datetime import datetime
from typing import Optional

SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]

DOCUMENT_MARKERS = ("pdf", "document", "text/", "word", "excel", "powerpoint")
ARCHIVE_MARKERS = ("zip", "rar", "7z", "tar", "gzip")


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    # 1.50 -> 1.5, 2.00 -> 2
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[exponent]}"


def file_type_category(mime_type: Optional[str]) -> str:
    if not mime_type:
        return "other"
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    if mime_type.startswith("audio/"):
        return "audio"
    if any(marker in mime_type for marker in DOCUMENT_MARKERS):
        return "document"
    if any(marker in mime_type for marker in ARCHIVE_MARKERS):
        return "archive"
    return "other"


def file_extension(filename: str) -> str:
    parts = filename.split(".")
    return parts[-1].upper() if len(parts) > 1 else ""


def generate_storage_name(original_name: str) -> str:
    """Unique object name that keeps the upload's extension."""
    _, ext = os.path.splitext(original_name)
    return f"{uuid.uuid4()}{ext}"


def format_date(value: datetime) -> str:
    return value.strftime("%Y/%m/%d %H:%M")
