"""CLI integration tests for sheet-records."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook
from typer.testing import CliRunner

from sheet_records import __version__
from sheet_records.cli import app

runner = CliRunner()

PEOPLE = [["Name", "Age", "City"], ["Ann", 30, "NY"], ["Bo", 41, "LA"]]


def _write_xlsx(tmp_path: Path, name: str, rows: list[list[Any]], title: str = "Data") -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(row)
    path = tmp_path / name
    wb.save(path)
    return path


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_convert_writes_json_records(tmp_path: Path) -> None:
    xlsx = _write_xlsx(tmp_path, "people.xlsx", PEOPLE)
    out = tmp_path / "people.json"

    result = runner.invoke(app, ["convert", "--input", str(xlsx), "--out", str(out), "--quiet"])

    assert result.exit_code == 0
    assert json.loads(out.read_text(encoding="utf-8")) == [
        {"Name": "Ann", "Age": 30, "City": "NY"},
        {"Name": "Bo", "Age": 41, "City": "LA"},
    ]


def test_convert_quiet_stdout_is_plain_json(tmp_path: Path) -> None:
    xlsx = _write_xlsx(tmp_path, "people.xlsx", PEOPLE)

    result = runner.invoke(app, ["convert", "-i", str(xlsx), "--end-column", "2", "-q"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == [{"Name": "Ann", "Age": 30}, {"Name": "Bo", "Age": 41}]


def test_convert_jsonl_with_range_and_dates(tmp_path: Path) -> None:
    xlsx = _write_xlsx(
        tmp_path,
        "log.xlsx",
        [["Exported by ops", None], ["When", "Event"], [datetime(2024, 5, 1, 9, 30), "boot"]],
    )
    out = tmp_path / "log.jsonl"

    result = runner.invoke(
        app,
        ["convert", "-i", str(xlsx), "--start-row", "2", "--format", "jsonl", "-o", str(out), "-q"],
    )

    assert result.exit_code == 0
    lines = out.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line) for line in lines] == [
        {"When": "2024-05-01T09:30:00", "Event": "boot"}
    ]


def test_convert_csv_with_explicit_headers_and_no_header(tmp_path: Path) -> None:
    xlsx = _write_xlsx(tmp_path, "raw.xlsx", [["x1", 1], ["x2", 2]])
    out = tmp_path / "raw.csv"

    result = runner.invoke(
        app,
        [
            "convert", "-i", str(xlsx), "--no-header",
            "-H", "code", "-H", "qty",
            "--format", "csv", "-o", str(out), "-q",
        ],
    )

    assert result.exit_code == 0
    frame = pd.read_csv(out)
    assert list(frame.columns) == ["code", "qty"]
    assert frame["code"].tolist() == ["x1", "x2"]


def test_convert_header_file_supplies_names(tmp_path: Path) -> None:
    xlsx = _write_xlsx(tmp_path, "people.xlsx", PEOPLE)
    header_file = tmp_path / "headers.txt"
    header_file.write_text("# replaces row 1\nfull_name\n\nage\ncity\n", encoding="utf-8")
    out = tmp_path / "out.json"

    result = runner.invoke(
        app,
        ["convert", "-i", str(xlsx), "--header-file", str(header_file), "-o", str(out), "-q"],
    )

    assert result.exit_code == 0
    records = json.loads(out.read_text(encoding="utf-8"))
    assert records[0] == {"full_name": "Ann", "age": 30, "city": "NY"}
    assert len(records) == 2


def test_convert_header_file_not_found_exits_2(tmp_path: Path) -> None:
    xlsx = _write_xlsx(tmp_path, "people.xlsx", PEOPLE)

    result = runner.invoke(
        app,
        ["convert", "-i", str(xlsx), "--header-file", str(tmp_path / "nope.txt"), "-q"],
    )

    assert result.exit_code == 2
    assert "Header file not found" in result.output


def test_convert_skips_failed_file_and_reports(tmp_path: Path) -> None:
    good = _write_xlsx(tmp_path, "good.xlsx", PEOPLE)
    out = tmp_path / "out.json"
    report = tmp_path / "report.json"

    result = runner.invoke(
        app,
        [
            "convert", "-i", str(tmp_path / "missing.xlsx"), "-i", str(good),
            "-o", str(out), "--report", str(report),
        ],
    )

    assert result.exit_code == 2
    assert "1 of 2 input files failed" in result.output
    assert len(json.loads(out.read_text(encoding="utf-8"))) == 2
    manifest = json.loads(report.read_text(encoding="utf-8"))
    assert [entry["status"] for entry in manifest["inputs"]] == ["failed", "success"]
    assert "not found" in manifest["inputs"][0]["errors"][0]
    assert manifest["rows_out"] == 2
    assert manifest["inputs"][1]["sha256"]


def test_convert_strict_headers_fails_file(tmp_path: Path) -> None:
    xlsx = _write_xlsx(tmp_path, "people.xlsx", PEOPLE)
    out = tmp_path / "out.json"

    lenient = runner.invoke(app, ["convert", "-i", str(xlsx), "-H", "only", "-o", str(out), "-q"])
    strict = runner.invoke(
        app, ["convert", "-i", str(xlsx), "-H", "only", "--strict-headers", "-o", str(out), "-q"]
    )

    assert lenient.exit_code == 0
    assert strict.exit_code == 2
    assert json.loads(out.read_text(encoding="utf-8")) == []


def test_convert_invalid_date_format_exits_2(tmp_path: Path) -> None:
    xlsx = _write_xlsx(tmp_path, "people.xlsx", PEOPLE)

    result = runner.invoke(app, ["convert", "-i", str(xlsx), "--date-format", "([", "-q"])

    assert result.exit_code == 2
    assert "Invalid date format" in result.output


def test_convert_nonquiet_shows_panels_and_warnings(tmp_path: Path) -> None:
    xlsx = _write_xlsx(tmp_path, "dups.xlsx", [["id", "id"], [1, 2]])
    out = tmp_path / "out.json"

    result = runner.invoke(app, ["convert", "-i", str(xlsx), "-o", str(out)])

    assert result.exit_code == 0
    assert "Conversion Start" in result.output
    assert "Duplicate header" in result.output
    assert "Conversion Complete" in result.output
    assert json.loads(out.read_text(encoding="utf-8")) == [{"id": 1}]


def test_convert_sheet_by_name(tmp_path: Path) -> None:
    xlsx = _write_xlsx(tmp_path, "people.xlsx", PEOPLE, title="People")

    ok = runner.invoke(app, ["convert", "-i", str(xlsx), "--sheet", "People", "-q"])
    missing = runner.invoke(app, ["convert", "-i", str(xlsx), "--sheet", "Other", "-q"])

    assert ok.exit_code == 0
    assert missing.exit_code == 2


def test_headers_command_shows_resolved_headers(tmp_path: Path) -> None:
    xlsx = _write_xlsx(tmp_path, "people.xlsx", PEOPLE)

    result = runner.invoke(app, ["headers", "-i", str(xlsx), "--start-column", "2"])

    assert result.exit_code == 0
    assert "Resolved Headers" in result.output
    assert "Age" in result.output
    assert "City" in result.output
    assert "B2:C3" in result.output


def test_headers_command_failure_exits_2(tmp_path: Path) -> None:
    result = runner.invoke(app, ["headers", "-i", str(tmp_path / "missing.xlsx")])

    assert result.exit_code == 2
    assert "1 of 1 input files failed" in result.output
