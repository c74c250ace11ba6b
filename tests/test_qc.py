from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path

import pytest

from sheet_records.models import ImportOptions, ImportReport
from sheet_records.qc import build_run_manifest, write_run_manifest


def test_build_run_manifest_hashes_readable_inputs(tmp_path: Path) -> None:
    present = tmp_path / "a.xlsx"
    present.write_bytes(b"payload")
    reports = [
        ImportReport(input_path=str(present), sheet="S", status="success", rows_out=3),
        ImportReport(input_path=str(tmp_path / "gone.xlsx"), status="failed", errors=["nope"]),
    ]

    manifest = build_run_manifest(reports, ImportOptions(sheet="S"), created_at="2024-01-01T00:00:00")

    assert manifest.rows_out == 3
    assert manifest.created_at_utc == "2024-01-01T00:00:00"
    assert manifest.inputs[0]["sha256"] == hashlib.sha256(b"payload").hexdigest()
    assert manifest.inputs[1]["sha256"] == ""
    assert manifest.inputs[1]["errors"] == ["nope"]
    assert manifest.options["sheet"] == "S"


def test_write_run_manifest_writes_expected_contract(tmp_path: Path) -> None:
    manifest = build_run_manifest([], ImportOptions(), created_at="2024-01-01T00:00:00")

    out = write_run_manifest(tmp_path / "report.json", manifest)

    assert out == tmp_path / "report.json"
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["tool"] == "sheet-records"
    assert data["inputs"] == []
    assert data["rows_out"] == 0
    assert data["options"]["first_row_is_data"] is False


def test_build_run_manifest_logs_unhashable_inputs(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.DEBUG, logger="sheet_records.qc")
    gone = tmp_path / "gone.xlsx"

    manifest = build_run_manifest(
        [ImportReport(input_path=str(gone), status="failed")], ImportOptions()
    )

    assert manifest.inputs[0]["sha256"] == ""
    assert f"Cannot hash {gone}" in caplog.text
