"""I/O helpers — open workbooks, stream records per file, write artifacts."""

from __future__ import annotations

import json
import logging
import posixpath
import re
import warnings
import zipfile
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from io import BytesIO
from pathlib import Path
from typing import Any, BinaryIO
from xml.etree import ElementTree

import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils.datetime import WINDOWS_EPOCH
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from sheet_records.errors import (
    EmptyWorkbookError,
    OpenError,
    SheetNotFoundError,
    SheetRecordsError,
)
from sheet_records.formatting import format_cell_text
from sheet_records.models import CellData, ImportOptions, ImportReport, Record, WorksheetDimension
from sheet_records.pipeline import iter_records

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")

# ── Worksheet access ─────────────────────────────────────────────


class WorkbookSheet:
    """Cell accessor over an openpyxl worksheet.

    *raw_serials* maps coordinates of date-formatted cells that openpyxl
    replaced with ``#VALUE!`` to the number stored in the file.
    *load_warnings* holds other messages openpyxl emitted while loading.
    """

    def __init__(
        self,
        worksheet: Worksheet,
        epoch: datetime = WINDOWS_EPOCH,
        *,
        raw_serials: dict[str, int | float] | None = None,
        load_warnings: list[str] | None = None,
    ) -> None:
        self._ws = worksheet
        self.title = worksheet.title
        self.epoch = epoch
        self._raw_serials = raw_serials or {}
        self.load_warnings = list(load_warnings or [])

    def dimension(self) -> WorksheetDimension:
        ws = self._ws
        # openpyxl reports 1 x 1 for a sheet without any cells
        if ws.max_row == 1 and ws.max_column == 1 and ws.cell(row=1, column=1).value is None:
            return WorksheetDimension(row_count=0, column_count=0)
        return WorksheetDimension(row_count=ws.max_row, column_count=ws.max_column)

    def cell(self, row: int, column: int) -> CellData:
        cell = self._ws.cell(row=row, column=column)
        number_format = cell.number_format or "General"
        value = cell.value
        if cell.data_type == "e" and cell.coordinate in self._raw_serials:
            value = self._raw_serials[cell.coordinate]
        return CellData(
            value=value,
            text=format_cell_text(value, number_format, epoch=self.epoch),
            number_format=number_format,
        )


def select_worksheet(workbook: Workbook, sheet: int | str, *, path: Path | None = None) -> Worksheet:
    """Return the worksheet at 1-based index *sheet*, or the one named *sheet*.

    An integer past the last index also matches a sheet titled with its
    digits, so a sheet named ``2024`` stays reachable.
    """
    worksheets = list(workbook.worksheets)
    if not worksheets:
        raise EmptyWorkbookError("Workbook contains no worksheets", path=path)

    if isinstance(sheet, int):
        if not 1 <= sheet <= len(worksheets):
            for ws in worksheets:
                if ws.title == str(sheet):
                    return ws
            raise SheetNotFoundError(
                f"Sheet index {sheet} out of range (workbook has {len(worksheets)} sheets)",
                path=path,
            )
        return worksheets[sheet - 1]

    by_title = {ws.title: ws for ws in worksheets}
    if sheet not in by_title:
        available = ", ".join(repr(title) for title in by_title)
        raise SheetNotFoundError(f"Sheet {sheet!r} not found (available: {available})", path=path)
    return by_title[sheet]


def _check_input_path(path: Path) -> None:
    if not path.exists():
        raise OpenError("Input file not found", path=path)
    if path.is_dir():
        raise OpenError("Input path is a directory, not a file", path=path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise OpenError(
            f"Unsupported file type: {suffix!r}. Use {', '.join(SUPPORTED_SUFFIXES)}",
            path=path,
        )


# ── Raw serial recovery ──────────────────────────────────────────

# openpyxl turns date-formatted numbers outside the calendar into "#VALUE!"
_DATE_LIMIT_WARNING_RE = re.compile(
    r"Cell (?P<coordinate>[A-Z]{1,3}[0-9]+) is marked as a date but the serial value"
)

_MAIN_NS = "{http://schemas.openxmlformats.org/spreadsheetml/2006/main}"
_DOC_REL_NS = "{http://schemas.openxmlformats.org/officeDocument/2006/relationships}"
_PKG_REL_NS = "{http://schemas.openxmlformats.org/package/2006/relationships}"


def _part_relationships(archive: zipfile.ZipFile, part: str) -> list[tuple[str, str, str]]:
    """Return ``(id, type, target part)`` for each relationship of *part* ("" = package)."""
    folder, name = posixpath.split(part)
    root = ElementTree.fromstring(archive.read(posixpath.join(folder, "_rels", f"{name}.rels")))
    rels = []
    for rel in root.iter(f"{_PKG_REL_NS}Relationship"):
        target = rel.get("Target", "")
        if target.startswith("/"):
            target = target[1:]
        else:
            target = posixpath.normpath(posixpath.join(folder, target))
        rels.append((rel.get("Id", ""), rel.get("Type", ""), target))
    return rels


def _worksheet_part(archive: zipfile.ZipFile, title: str) -> str | None:
    workbook_part = next(
        (target for _, rel_type, target in _part_relationships(archive, "")
         if rel_type.endswith("/officeDocument")),
        None,
    )
    if workbook_part is None:
        return None
    targets = {rel_id: target for rel_id, _, target in _part_relationships(archive, workbook_part)}
    for sheet in ElementTree.fromstring(archive.read(workbook_part)).iter(f"{_MAIN_NS}sheet"):
        if sheet.get("name") == title:
            return targets.get(sheet.get(f"{_DOC_REL_NS}id", ""))
    return None


def _cast_number(raw: str) -> int | float:
    if "." in raw or "e" in raw or "E" in raw:
        return float(raw)
    return int(raw)


def read_raw_serials(
    source: BinaryIO, title: str, coordinates: set[str]
) -> dict[str, int | float]:
    """Read the stored numbers of *coordinates* on worksheet *title*.

    Cells that are not plain numbers in the file are left out, so genuine
    ``#VALUE!`` errors stay errors.
    """
    serials: dict[str, int | float] = {}
    with zipfile.ZipFile(source) as archive:
        part = _worksheet_part(archive, title)
        if part is None:
            return serials
        with archive.open(part) as fh:
            for _, elem in ElementTree.iterparse(fh):
                if elem.tag != f"{_MAIN_NS}c":
                    continue
                coordinate = elem.get("r")
                raw = elem.findtext(f"{_MAIN_NS}v")
                if coordinate in coordinates and elem.get("t", "n") == "n" and raw:
                    serials[coordinate] = _cast_number(raw)
                elem.clear()
    return serials


@contextmanager
def open_worksheet(
    path: Path | str, sheet: int | str = 1, *, shared: bool = False
) -> Iterator[WorkbookSheet]:
    """Open *path* and yield the selected worksheet, releasing it on every exit.

    The default mode holds the file handle until the pass is over.  With
    ``shared=True`` the bytes are snapshotted into memory first, so the
    file is released immediately and writers holding it are tolerated.

    Raises
    ------
    OpenError
        Missing file, unsupported type, unreadable or corrupt package.
    SheetNotFoundError, EmptyWorkbookError
        The requested worksheet is not available.
    """
    path = Path(path)
    _check_input_path(path)

    handle: BinaryIO | None = None
    try:
        if shared:
            source: BinaryIO = BytesIO(path.read_bytes())
        else:
            handle = open(path, "rb")
            source = handle
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            workbook = load_workbook(source, read_only=False, data_only=True)
    except (OSError, zipfile.BadZipFile, InvalidFileException, KeyError, ValueError) as exc:
        if handle is not None:
            handle.close()
        raise OpenError(f"Cannot open workbook: {exc}", path=path) from exc

    logger.debug("Opened %s (%s mode)", path, "shared" if shared else "exclusive")
    try:
        worksheet = select_worksheet(workbook, sheet, path=path)
        out_of_range: set[str] = set()
        load_warnings: list[str] = []
        for caught_warning in caught:
            message = str(caught_warning.message)
            match = _DATE_LIMIT_WARNING_RE.match(message)
            if match:
                out_of_range.add(match.group("coordinate"))
            else:
                load_warnings.append(message)

        raw_serials: dict[str, int | float] = {}
        if out_of_range:
            try:
                raw_serials = read_raw_serials(source, worksheet.title, out_of_range)
            except (KeyError, ValueError, zipfile.BadZipFile, ElementTree.ParseError) as exc:
                load_warnings.append(f"Could not recover out-of-range date serials: {exc}")
        yield WorkbookSheet(
            worksheet,
            epoch=workbook.epoch,
            raw_serials=raw_serials,
            load_warnings=load_warnings,
        )
    finally:
        workbook.close()
        if handle is not None:
            handle.close()
        logger.debug("Released %s", path)


# ── Record streams ───────────────────────────────────────────────


def iter_file_records(
    path: Path | str, options: ImportOptions, report: ImportReport | None = None
) -> Iterator[Record]:
    """Yield the records of one workbook; errors surface before the first record."""
    if report is None:
        report = ImportReport(input_path=str(path))
    with open_worksheet(path, options.sheet, shared=options.shared) as sheet:
        report.sheet = sheet.title
        report.warnings.extend(sheet.load_warnings)
        yield from iter_records(sheet, options, report)
    report.status = "success"


def iter_records_from_files(
    paths: Iterable[Path | str],
    options: ImportOptions,
    reports: list[ImportReport] | None = None,
) -> Iterator[Record]:
    """Yield records from each input in order, skipping files that fail.

    One ``ImportReport`` per path is appended to *reports*; failed files get
    ``status == "failed"`` and the error message.
    """
    for path in paths:
        report = ImportReport(input_path=str(path))
        if reports is not None:
            reports.append(report)
        try:
            yield from iter_file_records(path, options, report)
        except SheetRecordsError as exc:
            report.status = "failed"
            report.errors.append(exc.message)
            logger.warning("Skipping %s: %s", path, exc.message)


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, timedelta):
        return str(obj)
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _write_atomic(path: Path, payload: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    return _write_atomic(path, payload)


def dumps_records(records: Iterable[Record]) -> str:
    """Serialize records as a JSON array; field order is preserved."""
    return json.dumps(
        list(records), indent=2, ensure_ascii=False, default=_json_default
    ) + "\n"


def dumps_record_line(record: Record) -> str:
    return json.dumps(record, ensure_ascii=False, default=_json_default)


def records_to_csv(records: Iterable[Record], columns: Sequence[str] | None = None) -> str:
    """Render records as CSV text, one column per header in first-seen order.

    No records and no *columns* give an empty string; *columns* alone give a
    header line.
    """
    rows = list(records)
    if not rows and not columns:
        return ""
    frame = pd.DataFrame.from_records(rows, columns=columns or None)
    return frame.to_csv(index=False)


def write_records_json(path: Path, records: Iterable[Record]) -> Path:
    return _write_atomic(path, dumps_records(records))


def write_records_jsonl(path: Path, records: Iterable[Record]) -> Path:
    """Write one JSON object per line, streaming *records* into a temp file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as fh:
        for record in records:
            fh.write(dumps_record_line(record) + "\n")
    tmp_path.replace(path)
    return path


def write_records_csv(
    path: Path, records: Iterable[Record], columns: Sequence[str] | None = None
) -> Path:
    return _write_atomic(path, records_to_csv(records, columns))
