"""Data models / typed containers used across the package."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time
from numbers import Integral
from typing import Any, Protocol, Union

from sheet_records import __version__

CellValue = Union[None, str, int, float, bool, datetime, date, time]
Record = dict[str, CellValue]

REPORT_STATUSES = ("pending", "success", "failed")


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_optional_int(value: Any, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer or None")
    return int(value)


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


# ── Worksheet geometry ───────────────────────────────────────────


@dataclass(frozen=True)
class WorksheetDimension:
    """Used extent of a worksheet, as reported by the cell accessor."""

    row_count: int = 0
    column_count: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "row_count", _to_non_negative_int(self.row_count, "row_count"))
        object.__setattr__(
            self, "column_count", _to_non_negative_int(self.column_count, "column_count")
        )


@dataclass(frozen=True)
class RangeSpec:
    """Inclusive, 1-based rectangle of cells to process."""

    row_start: int
    row_end: int
    column_start: int
    column_end: int

    @property
    def row_count(self) -> int:
        return self.row_end - self.row_start + 1

    @property
    def column_count(self) -> int:
        return self.column_end - self.column_start + 1

    def columns(self) -> range:
        return range(self.column_start, self.column_end + 1)


@dataclass(frozen=True)
class CellData:
    """Everything the pipeline reads from one cell."""

    value: CellValue = None
    text: str = ""
    number_format: str = "General"


class SheetLike(Protocol):
    """Cell-level view of one worksheet consumed by the pipeline."""

    title: str
    epoch: datetime

    def dimension(self) -> WorksheetDimension: ...

    def cell(self, row: int, column: int) -> CellData: ...


# ── Options ──────────────────────────────────────────────────────


@dataclass
class ImportOptions:
    """User-tunable knobs for one conversion run.

    ``row_end`` / ``column_end`` are absolute last indices; ``None`` or a
    value ``<= 0`` means "up to the worksheet bound".
    """

    sheet: int | str = 1
    headers: list[str] = field(default_factory=list)
    first_row_is_data: bool = False
    header_row: int | None = None
    use_display_text: bool = False
    date_format: str | None = None
    row_start: int | None = None
    row_end: int | None = None
    column_start: int | None = None
    column_end: int | None = None
    shared: bool = False
    data_only: bool = False
    as_text: list[str] = field(default_factory=list)
    as_date: list[str] = field(default_factory=list)
    strict_headers: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.sheet, bool) or not isinstance(self.sheet, (int, str)):
            raise TypeError("sheet must be a 1-based index or a sheet name")
        if isinstance(self.sheet, int) and self.sheet < 1:
            raise ValueError("sheet index must be >= 1")
        self.headers = _to_string_list(self.headers, "headers")
        self.as_text = _to_string_list(self.as_text, "as_text")
        self.as_date = _to_string_list(self.as_date, "as_date")
        self.header_row = _to_optional_int(self.header_row, "header_row")
        if self.header_row is not None and self.header_row < 1:
            raise ValueError("header_row must be >= 1")
        for name in ("row_start", "row_end", "column_start", "column_end"):
            setattr(self, name, _to_optional_int(getattr(self, name), name))
        if self.date_format:
            try:
                re.compile(self.date_format)
            except re.error as exc:
                raise ValueError(f"Invalid date format pattern {self.date_format!r}: {exc}") from exc


# ── Reports ──────────────────────────────────────────────────────


@dataclass
class ImportReport:
    """Diagnostics collected while converting one input file."""

    input_path: str = ""
    sheet: str = ""
    status: str = "pending"
    rows_out: int = 0
    headers: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.status not in REPORT_STATUSES:
            raise ValueError(f"status must be one of {', '.join(REPORT_STATUSES)}")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.headers = _to_string_list(self.headers, "headers")
        self.warnings = _to_string_list(self.warnings, "warnings")
        self.errors = _to_string_list(self.errors, "errors")

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_path": self.input_path,
            "sheet": self.sheet,
            "status": self.status,
            "rows_out": self.rows_out,
            "headers": list(self.headers),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "sheet-records"
    version: str = __version__
    created_at_utc: str = ""
    options: dict[str, Any] = field(default_factory=dict)
    inputs: list[dict[str, Any]] = field(default_factory=list)
    rows_out: int = 0

    def __post_init__(self) -> None:
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "created_at_utc": self.created_at_utc,
            "options": dict(self.options),
            "inputs": [dict(item) for item in self.inputs],
            "rows_out": self.rows_out,
        }
