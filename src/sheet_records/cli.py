"""CLI entry point for sheet-records."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table as RichTable

from sheet_records import __version__
from sheet_records.errors import SheetRecordsError
from sheet_records.io import (
    dumps_record_line,
    dumps_records,
    iter_records_from_files,
    open_worksheet,
    records_to_csv,
    write_records_csv,
    write_records_json,
    write_records_jsonl,
)
from sheet_records.models import ImportOptions, ImportReport, Record
from sheet_records.pipeline import plan_sheet
from sheet_records.qc import build_run_manifest, write_run_manifest
from sheet_records.utils import utcnow_iso

app = typer.Typer(
    name="srecords",
    help="sheet-records — Turn spreadsheet ranges into ordered records.",
    add_completion=False,
    no_args_is_help=True,
)
# Records may go to stdout, so all chatter goes to stderr.
console = Console(stderr=True)


class OutputFormat(str, Enum):
    json = "json"
    jsonl = "jsonl"
    csv = "csv"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {escape(msg)}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"sheet-records v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )
    logging.getLogger("sheet_records").setLevel(logging.DEBUG)


def _parse_sheet(raw: str) -> int | str:
    stripped = raw.strip()
    if not stripped:
        raise ValueError("--sheet must be a 1-based index or a sheet name")
    if stripped.isdigit():
        return int(stripped)
    return raw


def _load_header_file(header_file: Path | None) -> list[str]:
    """Return header names from a file with one name per line."""
    if not header_file:
        return []
    if not header_file.exists():
        raise ValueError(f"Header file not found: {header_file} (expected one name per line)")
    if header_file.is_dir():
        raise ValueError(f"Header file is a directory, not a file: {header_file}")
    try:
        text = header_file.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read header file {header_file}: {exc}") from exc

    names: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        names.append(stripped)
    return names


def _build_options(
    *,
    sheet: str,
    headers: list[str] | None,
    header_file: Path | None,
    no_header: bool,
    header_row: int | None,
    display_text: bool,
    date_format: str | None,
    start_row: int | None,
    end_row: int | None,
    start_column: int | None,
    end_column: int | None,
    shared: bool,
    data_only: bool,
    as_text: list[str] | None,
    as_date: list[str] | None,
    strict_headers: bool,
) -> ImportOptions:
    return ImportOptions(
        sheet=_parse_sheet(sheet),
        headers=_load_header_file(header_file) + (headers or []),
        first_row_is_data=no_header,
        header_row=header_row,
        use_display_text=display_text,
        date_format=date_format,
        row_start=start_row,
        row_end=end_row,
        column_start=start_column,
        column_end=end_column,
        shared=shared,
        data_only=data_only,
        as_text=as_text or [],
        as_date=as_date or [],
        strict_headers=strict_headers,
    )


def _report_files(reports: list[ImportReport], *, quiet: bool, max_warnings: int = 5) -> None:
    echo = _printer(quiet)
    for report in reports:
        if report.failed:
            _err(f"{report.input_path}: {'; '.join(report.errors)}")
            continue
        echo(
            f"  [green]ok[/green] {escape(report.input_path)} "
            f"[dim](sheet {escape(repr(report.sheet))})[/dim]: {report.rows_out} records"
        )
        if quiet:
            continue
        for message in report.errors:
            console.print(f"  [red]![/red] {escape(message)}")
        for message in report.warnings[:max_warnings]:
            console.print(f"  [yellow]![/yellow] {escape(message)}")
        if len(report.warnings) > max_warnings:
            hidden = len(report.warnings) - max_warnings
            console.print(f"  [yellow]![/yellow] … {hidden} more warnings")


def _emit_stdout(stream: Iterable[Record], fmt: OutputFormat) -> None:
    if fmt is OutputFormat.jsonl:
        for record in stream:
            typer.echo(dumps_record_line(record))
    elif fmt is OutputFormat.csv:
        typer.echo(records_to_csv(stream), nl=False)
    else:
        typer.echo(dumps_records(stream), nl=False)


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """sheet-records CLI."""


# ── Shared options ───────────────────────────────────────────────

_INPUT_OPT = typer.Option(
    ..., "--input", "-i",
    help="Workbook to read (.xlsx/.xlsm). Repeat for several files.",
)
_SHEET_OPT = typer.Option(
    "1", "--sheet", "-s",
    help=(
        "Worksheet to read: 1-based index or name. "
        "Digits are an index first, then a sheet title."
    ),
)
_HEADER_OPT = typer.Option(
    None, "--header", "-H",
    help="Explicit header name, one per selected column. Repeat in column order.",
)
_HEADER_FILE_OPT = typer.Option(
    None, "--header-file",
    help="File with one header name per line (# comments allowed).",
)
_NO_HEADER_OPT = typer.Option(
    False, "--no-header",
    help="Treat the first row as data and name columns A, B, C …",
)
_HEADER_ROW_OPT = typer.Option(
    None, "--header-row", min=1,
    help="Row holding the header names (default: first row of the range).",
)
_DISPLAY_TEXT_OPT = typer.Option(
    False, "--display-text",
    help="Read the formatted text of each cell instead of its typed value.",
)
_DATE_FORMAT_OPT = typer.Option(
    None, "--date-format",
    help="Regex for extra number formats whose numbers are serial dates.",
)
_START_ROW_OPT = typer.Option(None, "--start-row", help="First row of the range (default 1).")
_END_ROW_OPT = typer.Option(None, "--end-row", help="Last row of the range (default: sheet end).")
_START_COL_OPT = typer.Option(
    None, "--start-column", help="First column of the range (default 1)."
)
_END_COL_OPT = typer.Option(
    None, "--end-column", help="Last column of the range (default: sheet end)."
)
_SHARED_OPT = typer.Option(
    False, "--shared",
    help="Snapshot the file into memory so files held open elsewhere can be read.",
)
_DATA_ONLY_OPT = typer.Option(False, "--data-only", help="Skip rows whose cells are all empty.")
_AS_TEXT_OPT = typer.Option(
    None, "--as-text", help="Header whose values are read as display text. Repeatable."
)
_AS_DATE_OPT = typer.Option(
    None, "--as-date", help="Header whose numbers are always read as serial dates. Repeatable."
)
_STRICT_HEADERS_OPT = typer.Option(
    False, "--strict-headers",
    help="Fail a file when the explicit header count differs from its column count.",
)
_QUIET_OPT = typer.Option(False, "--quiet", "-q", help="Suppress informational output.")
_VERBOSE_OPT = typer.Option(False, "--verbose", "-v", help="Log pipeline decisions.")


# ── convert command ──────────────────────────────────────────────


@app.command()
def convert(
    inputs: list[Path] = _INPUT_OPT,
    sheet: str = _SHEET_OPT,
    headers: list[str] | None = _HEADER_OPT,
    header_file: Path | None = _HEADER_FILE_OPT,
    no_header: bool = _NO_HEADER_OPT,
    header_row: int | None = _HEADER_ROW_OPT,
    display_text: bool = _DISPLAY_TEXT_OPT,
    date_format: str | None = _DATE_FORMAT_OPT,
    start_row: int | None = _START_ROW_OPT,
    end_row: int | None = _END_ROW_OPT,
    start_column: int | None = _START_COL_OPT,
    end_column: int | None = _END_COL_OPT,
    shared: bool = _SHARED_OPT,
    data_only: bool = _DATA_ONLY_OPT,
    as_text: list[str] | None = _AS_TEXT_OPT,
    as_date: list[str] | None = _AS_DATE_OPT,
    strict_headers: bool = _STRICT_HEADERS_OPT,
    fmt: OutputFormat = typer.Option(
        OutputFormat.json, "--format", "-f",
        help="Output format: json, jsonl, or csv.",
    ),
    out: Path | None = typer.Option(
        None, "--out", "-o",
        help="Write records to this file instead of stdout.",
    ),
    report_path: Path | None = typer.Option(
        None, "--report",
        help="Write a JSON run report (per-file status, warnings, sha256).",
    ),
    quiet: bool = _QUIET_OPT,
    verbose: bool = _VERBOSE_OPT,
) -> None:
    """Convert worksheet rows into records, one per data row, across all inputs."""
    echo = _printer(quiet)
    _configure_logging(verbose)
    created_at = utcnow_iso()
    try:
        options = _build_options(
            sheet=sheet, headers=headers, header_file=header_file, no_header=no_header,
            header_row=header_row, display_text=display_text, date_format=date_format,
            start_row=start_row, end_row=end_row, start_column=start_column,
            end_column=end_column, shared=shared, data_only=data_only, as_text=as_text,
            as_date=as_date, strict_headers=strict_headers,
        )
    except (ValueError, TypeError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    if not quiet:
        console.print(Panel(
            f"[bold]sheet-records[/bold] v{__version__}\n"
            f"Inputs: {len(inputs)}  Sheet: {options.sheet!r}  Format: {fmt.value}\n"
            f"Output: {out or 'stdout'}",
            title="Conversion Start", border_style="blue",
        ))

    reports: list[ImportReport] = []
    stream = iter_records_from_files(inputs, options, reports)
    try:
        if out is None:
            _emit_stdout(stream, fmt)
        elif fmt is OutputFormat.jsonl:
            write_records_jsonl(out, stream)
        elif fmt is OutputFormat.csv:
            write_records_csv(out, stream)
        else:
            write_records_json(out, stream)
    except Exception as exc:
        _err(f"Unexpected internal error: {exc}")
        raise typer.Exit(code=1)

    _report_files(reports, quiet=quiet)
    total = sum(report.rows_out for report in reports)
    if out is not None:
        echo(f"  Records -> {out}")

    if report_path is not None:
        manifest = build_run_manifest(reports, options, created_at=created_at)
        echo(f"  Report  -> {write_run_manifest(report_path, manifest)}")

    failed = [report for report in reports if report.failed]
    if failed:
        _err(f"{len(failed)} of {len(reports)} input files failed")
        raise typer.Exit(code=2)

    if not quiet:
        console.print(Panel(
            f"[green]Done[/green] — {total} records from {len(reports)} files",
            title="Conversion Complete", border_style="green",
        ))


# ── headers command ──────────────────────────────────────────────


@app.command()
def headers(
    inputs: list[Path] = _INPUT_OPT,
    sheet: str = _SHEET_OPT,
    header_names: list[str] | None = _HEADER_OPT,
    header_file: Path | None = _HEADER_FILE_OPT,
    no_header: bool = _NO_HEADER_OPT,
    header_row: int | None = _HEADER_ROW_OPT,
    display_text: bool = _DISPLAY_TEXT_OPT,
    start_row: int | None = _START_ROW_OPT,
    end_row: int | None = _END_ROW_OPT,
    start_column: int | None = _START_COL_OPT,
    end_column: int | None = _END_COL_OPT,
    shared: bool = _SHARED_OPT,
    strict_headers: bool = _STRICT_HEADERS_OPT,
    quiet: bool = _QUIET_OPT,
    verbose: bool = _VERBOSE_OPT,
) -> None:
    """Show the resolved data range and header names of each input without reading rows.

    Exit 0 = every file resolved, exit 2 = at least one file failed.
    """
    _configure_logging(verbose)
    try:
        options = _build_options(
            sheet=sheet, headers=header_names, header_file=header_file, no_header=no_header,
            header_row=header_row, display_text=display_text, date_format=None,
            start_row=start_row, end_row=end_row, start_column=start_column,
            end_column=end_column, shared=shared, data_only=False, as_text=None,
            as_date=None, strict_headers=strict_headers,
        )
    except (ValueError, TypeError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    tbl = RichTable(title="Resolved Headers", show_lines=True)
    tbl.add_column("File", style="bold")
    tbl.add_column("Sheet")
    tbl.add_column("Data range")
    tbl.add_column("Rows")
    tbl.add_column("Headers")

    failures = 0
    for path in inputs:
        try:
            with open_worksheet(path, options.sheet, shared=options.shared) as ws:
                report = ImportReport(input_path=str(path), sheet=ws.title)
                plan = plan_sheet(ws, options, report)
        except SheetRecordsError as exc:
            failures += 1
            tbl.add_row(Path(path).name, "-", "-", "-", f"[red]{escape(exc.message)}[/red]")
            continue
        names = escape(", ".join(plan.selected))
        if report.errors:
            names += "\n[yellow]" + escape("; ".join(report.errors)) + "[/yellow]"
        tbl.add_row(Path(path).name, escape(ws.title), plan.describe(), str(plan.data_row_count), names)

    if not quiet or failures:
        console.print(tbl)
    if failures:
        _err(f"{failures} of {len(inputs)} input files failed")
        raise typer.Exit(code=2)
