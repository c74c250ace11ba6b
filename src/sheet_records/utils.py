"""Shared helpers — column labels, hashing, timestamps."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from numbers import Integral
from pathlib import Path

from openpyxl.utils import get_column_letter


def column_label(index: int) -> str:
    """Return the spreadsheet-style label for the 1-based column *index*.

    Bijective base-26 without a zero digit: 1 -> ``A``, 26 -> ``Z``,
    27 -> ``AA``, 52 -> ``AZ``, 702 -> ``ZZ``.
    """
    if isinstance(index, bool) or not isinstance(index, Integral):
        raise TypeError("column index must be an integer")
    if index < 1:
        raise ValueError(f"column index must be >= 1, got {index}")
    return get_column_letter(int(index))


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()
