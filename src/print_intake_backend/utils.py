"""
Utility functions for storage keys and human-readable sizes.

This module provides helper functions for:
- Sanitizing user-provided file names for use in object storage keys
- Building collision-resistant storage keys
- Formatting byte counts for messages
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import PurePosixPath
from uuid import uuid4

# Anything that is not alphanumeric, a dot or a hyphen
SANITIZE_PATTERN = re.compile(r"[^A-Za-z0-9.-]")
UNDERSCORE_RUN = re.compile(r"_{2,}")


def sanitize_filename(filename: str, fallback: str = "file") -> str:
    """
    Generate a storage-safe file name from user input.

    Every character outside ``[A-Za-z0-9.-]`` becomes ``_`` and runs of ``_``
    collapse into one. The extension is kept as submitted.

    Args:
        filename: The original file name (a client path is reduced to its last part)
        fallback: Value to return if nothing usable remains

    Returns:
        The sanitized name or the fallback value

    Example:
        >>> sanitize_filename("My Poster (Final)!!.PDF")
        "My_Poster_Final_.PDF"
    """
    # Browsers on Windows may send a full path
    name = PurePosixPath(filename.replace("\\", "/")).name
    cleaned = UNDERSCORE_RUN.sub("_", SANITIZE_PATTERN.sub("_", name))
    if not cleaned.strip("_."):
        return fallback
    return cleaned


def build_storage_key(filename: str, submitted_at: datetime, index: int = 0, prefix: str = "") -> str:
    """
    Build the object key a submitted file is stored under.

    The submission timestamp (milliseconds) plus a random token keep files
    from different submissions apart, even within the same millisecond; the
    index keeps same-named files within one submission apart.

    Example:
        >>> build_storage_key("flyer.pdf", datetime(2024, 1, 1, tzinfo=timezone.utc), 0, "requests")
        "requests/1704067200000-3f9a1c2e-0-flyer.pdf"
    """
    stamp = int(submitted_at.timestamp() * 1000)
    token = uuid4().hex[:8]
    name = f"{stamp}-{token}-{index}-{sanitize_filename(filename)}"
    prefix = prefix.strip("/")
    return f"{prefix}/{name}" if prefix else name


def format_size(size_bytes: int) -> str:
    """Format a byte count as e.g. ``"2.0 MB"``."""
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
