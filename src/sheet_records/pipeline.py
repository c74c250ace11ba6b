"""Conversion pipeline — range -> headers -> rows -> records.

Pure functions over a ``SheetLike`` cell accessor.  Nothing here opens
files; diagnostics are appended to an optional ``ImportReport``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time

from openpyxl.utils.datetime import WINDOWS_EPOCH, from_excel

from sheet_records import PLACEHOLDER_HEADER
from sheet_records.errors import HeaderCountMismatchError, InvalidRangeError
from sheet_records.models import (
    CellValue,
    ImportOptions,
    ImportReport,
    RangeSpec,
    Record,
    SheetLike,
    WorksheetDimension,
)
from sheet_records.utils import column_label

logger = logging.getLogger(__name__)

# day/month/year with an optional hour:minute, e.g. m/d/yyyy or dd/mm/yy hh:mm
GENERIC_DATE_FORMAT_RE = re.compile(r"\w{1,4}/\w{1,4}/\w{1,4}( \w{1,4}:\w{1,4})?")


def _warn(report: ImportReport | None, message: str) -> None:
    logger.debug(message)
    if report is not None:
        report.warnings.append(message)


# ── Range resolution ─────────────────────────────────────────────


def _resolve_axis(
    name: str, bound: int, start: int | None, end: int | None
) -> tuple[int, int]:
    if start is None:
        start = 1
    if start < 1:
        raise InvalidRangeError(f"{name} start must be >= 1, got {start}")
    if end is None or end <= 0 or end > bound:
        end = bound
    if start > end:
        raise InvalidRangeError(
            f"{name} range is empty: start {start} > end {end} (worksheet has {bound} {name}s)"
        )
    return start, end


def resolve_range(
    dimension: WorksheetDimension,
    row_start: int | None = None,
    row_end: int | None = None,
    column_start: int | None = None,
    column_end: int | None = None,
) -> RangeSpec:
    """Compute the inclusive rectangle to process.

    ``row_end`` / ``column_end`` are absolute indices.  Missing or
    non-positive ends default to the worksheet bound; ends past the bound
    are clamped to it.

    Raises
    ------
    InvalidRangeError
        If a start is below 1 or the resolved range is empty.
    """
    r_start, r_end = _resolve_axis("row", dimension.row_count, row_start, row_end)
    c_start, c_end = _resolve_axis("column", dimension.column_count, column_start, column_end)
    return RangeSpec(row_start=r_start, row_end=r_end, column_start=c_start, column_end=c_end)


# ── Header resolution ────────────────────────────────────────────


def sanitize_header(value: object, column: int) -> str:
    """Trim *value*, or return ``<Column N>`` when it is not a usable name."""
    if not value or not isinstance(value, str) or not value.strip():
        return PLACEHOLDER_HEADER.format(index=column)
    return value.strip()


def _read(sheet: SheetLike, row: int, column: int, *, as_text: bool) -> CellValue:
    cell = sheet.cell(row, column)
    return cell.text if as_text else cell.value


def resolve_headers(
    sheet: SheetLike,
    rng: RangeSpec,
    options: ImportOptions,
    report: ImportReport | None = None,
) -> list[str]:
    """Return one header name per column of *rng*.

    Strategy, first match wins: explicit ``options.headers``, generated
    column labels (``first_row_is_data``), ``options.header_row``, then the
    first row of the range.
    """
    if options.headers:
        if len(options.headers) != rng.column_count:
            mismatch = HeaderCountMismatchError(rng.column_count, len(options.headers))
            if options.strict_headers:
                raise mismatch
            logger.debug(str(mismatch))
            if report is not None:
                report.errors.append(str(mismatch))
        return [
            sanitize_header(name, rng.column_start + offset)
            for offset, name in enumerate(options.headers)
        ]

    if options.first_row_is_data:
        return [column_label(col) for col in rng.columns()]

    header_row = options.header_row if options.header_row is not None else rng.row_start
    return [
        sanitize_header(_read(sheet, header_row, col, as_text=options.use_display_text), col)
        for col in rng.columns()
    ]


def select_headers(headers: Sequence[str]) -> list[str]:
    """Drop repeated names, keeping the first occurrence and the order."""
    return list(dict.fromkeys(headers))


def data_row_start(rng: RangeSpec, options: ImportOptions) -> int:
    """First worksheet row that holds data rather than header names."""
    if options.first_row_is_data:
        return rng.row_start
    if options.header_row is not None and not options.headers:
        return max(rng.row_start, options.header_row + 1)
    return rng.row_start + 1


# ── Row extraction ───────────────────────────────────────────────


def is_date_format(number_format: str | None, pattern: str | None = None) -> bool:
    """True when *number_format* looks like a date, generically or per *pattern*."""
    if not number_format:
        return False
    if GENERIC_DATE_FORMAT_RE.search(number_format):
        return True
    return bool(pattern) and re.search(pattern, number_format) is not None


def coerce_date(value: CellValue, epoch: datetime = WINDOWS_EPOCH) -> CellValue:
    """Convert a serial date number to ``datetime`` (or ``time`` below 1.0).

    Values that are already dates pass through.

    Raises
    ------
    ValueError
        If *value* is not a number or lies outside the supported calendar.
    """
    if isinstance(value, (datetime, date, time)):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"not a serial date number: {value!r}")
    try:
        return from_excel(value, epoch)
    except (OverflowError, ValueError) as exc:
        raise ValueError(f"serial date out of range: {value!r}") from exc


def extract_row(
    sheet: SheetLike,
    row: int,
    rng: RangeSpec,
    headers: Sequence[str],
    options: ImportOptions,
    report: ImportReport | None = None,
) -> Record:
    """Build the record for worksheet *row*; the first value wins on duplicate names."""
    as_text = set(options.as_text)
    as_date = set(options.as_date)
    record: Record = {}

    for column, name in zip(rng.columns(), headers):
        cell = sheet.cell(row, column)
        if options.use_display_text or name in as_text:
            value: CellValue = cell.text
        else:
            value = cell.value
            if value is not None and (
                name in as_date or is_date_format(cell.number_format, options.date_format)
            ):
                try:
                    value = coerce_date(value, sheet.epoch)
                except ValueError as exc:
                    _warn(
                        report,
                        f"Date coercion failed for {name!r} at row {row}: {exc}; kept raw value",
                    )

        if name in record:
            _warn(
                report,
                f"Duplicate header {name!r} at row {row}, column {column_label(column)}: "
                f"ignored value {value!r}",
            )
            continue
        record[name] = value
    return record


def is_blank_record(record: Record) -> bool:
    return all(
        value is None or (isinstance(value, str) and not value.strip())
        for value in record.values()
    )


# ── Projection ───────────────────────────────────────────────────


def project_record(record: Record, selected: Sequence[str]) -> Record:
    """Keep only *selected* names, in that order."""
    return {name: record[name] for name in selected if name in record}


# ── Driver ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class SheetPlan:
    """Everything resolved once per worksheet before rows are read."""

    bounds: RangeSpec
    headers: list[str]
    selected: list[str]
    first_data_row: int

    @property
    def data_row_count(self) -> int:
        return max(0, self.bounds.row_end - self.first_data_row + 1)

    def describe(self) -> str:
        """A1-style reference of the data rows, e.g. ``A2:C10``."""
        return (
            f"{column_label(self.bounds.column_start)}{self.first_data_row}:"
            f"{column_label(self.bounds.column_end)}{self.bounds.row_end}"
        )


def plan_sheet(
    sheet: SheetLike,
    options: ImportOptions,
    report: ImportReport | None = None,
) -> SheetPlan:
    """Resolve range and headers for *sheet* without reading data rows.

    Raises
    ------
    InvalidRangeError
        If the overrides leave no cells to read.
    HeaderCountMismatchError
        Only with ``options.strict_headers``.
    """
    rng = resolve_range(
        sheet.dimension(),
        row_start=options.row_start,
        row_end=options.row_end,
        column_start=options.column_start,
        column_end=options.column_end,
    )
    headers = resolve_headers(sheet, rng, options, report)
    plan = SheetPlan(
        bounds=rng,
        headers=headers,
        selected=select_headers(headers),
        first_data_row=data_row_start(rng, options),
    )
    if report is not None:
        report.headers = list(plan.selected)
    logger.debug("Sheet %r: data %s, headers %s", sheet.title, plan.describe(), plan.selected)
    return plan


def iter_records(
    sheet: SheetLike,
    options: ImportOptions,
    report: ImportReport | None = None,
) -> Iterator[Record]:
    """Plan *sheet*, then lazily yield one record per data row.

    Planning happens in this call, before any record is produced, so a
    failing worksheet never emits partial output.
    """
    plan = plan_sheet(sheet, options, report)
    return _iter_rows(sheet, plan, options, report)


def _iter_rows(
    sheet: SheetLike,
    plan: SheetPlan,
    options: ImportOptions,
    report: ImportReport | None,
) -> Iterator[Record]:
    for row in range(plan.first_data_row, plan.bounds.row_end + 1):
        record = extract_row(sheet, row, plan.bounds, plan.headers, options, report)
        if options.data_only and is_blank_record(record):
            continue
        if report is not None:
            report.rows_out += 1
        yield project_record(record, plan.selected)
