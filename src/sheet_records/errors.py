"""Exception taxonomy for file- and worksheet-level failures.

Every exception here stops processing of the current input file only.
Row-level problems (duplicate headers, failed date coercion) are never
raised; they are collected as warnings on the file's ``ImportReport``.

    SheetRecordsError
    ├── OpenError
    ├── SheetNotFoundError
    ├── EmptyWorkbookError
    ├── InvalidRangeError
    └── HeaderCountMismatchError
"""

from __future__ import annotations

from pathlib import Path


class SheetRecordsError(Exception):
    """Base class for errors that abort a single input file."""

    def __init__(self, message: str, *, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = str(path) if path is not None else None

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


class OpenError(SheetRecordsError):
    """The file is missing, locked, corrupt, or not a supported workbook."""


class SheetNotFoundError(SheetRecordsError):
    """The requested worksheet does not exist in the workbook."""


class EmptyWorkbookError(SheetRecordsError):
    """The workbook contains no worksheets."""


class InvalidRangeError(SheetRecordsError, ValueError):
    """Row/column overrides do not describe a non-empty range."""


class HeaderCountMismatchError(SheetRecordsError, ValueError):
    """Explicit header count differs from the resolved column count."""

    def __init__(
        self, expected: int, actual: int, *, path: Path | str | None = None
    ) -> None:
        super().__init__(
            f"Expected {expected} header names for the selected columns, got {actual}",
            path=path,
        )
        self.expected = expected
        self.actual = actual
