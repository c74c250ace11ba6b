from __future__ import annotations

import pytest

from sheet_records.models import (
    ImportOptions,
    ImportReport,
    RangeSpec,
    RunManifest,
    WorksheetDimension,
)


def test_worksheet_dimension_rejects_negative_and_non_integer_counts() -> None:
    with pytest.raises(ValueError, match="row_count"):
        WorksheetDimension(row_count=-1, column_count=2)

    with pytest.raises(TypeError, match="column_count"):
        WorksheetDimension(row_count=1, column_count=True)  # type: ignore[arg-type]


def test_range_spec_counts_and_columns() -> None:
    rng = RangeSpec(row_start=2, row_end=5, column_start=3, column_end=4)

    assert rng.row_count == 4
    assert rng.column_count == 2
    assert list(rng.columns()) == [3, 4]


def test_import_options_validates_sheet_and_header_row() -> None:
    with pytest.raises(ValueError, match="sheet"):
        ImportOptions(sheet=0)

    with pytest.raises(TypeError, match="sheet"):
        ImportOptions(sheet=True)

    with pytest.raises(ValueError, match="header_row"):
        ImportOptions(header_row=0)

    with pytest.raises(TypeError, match="row_end"):
        ImportOptions(row_end="5")  # type: ignore[arg-type]


def test_import_options_rejects_bad_header_lists_and_patterns() -> None:
    with pytest.raises(TypeError, match="headers"):
        ImportOptions(headers="Name")  # type: ignore[arg-type]

    with pytest.raises(TypeError, match="as_text"):
        ImportOptions(as_text=["ok", 3])  # type: ignore[list-item]

    with pytest.raises(ValueError, match="Invalid date format"):
        ImportOptions(date_format="([")


def test_import_options_accepts_sheet_names_and_none_lists() -> None:
    options = ImportOptions(sheet="Data", headers=None, as_date=None)  # type: ignore[arg-type]

    assert options.sheet == "Data"
    assert options.headers == []
    assert options.as_date == []


def test_import_report_to_dict_returns_list_copies() -> None:
    report = ImportReport(
        input_path="a.xlsx",
        sheet="S",
        status="success",
        rows_out=2,
        headers=["Name"],
        warnings=["dup"],
    )

    payload = report.to_dict()
    payload["headers"].append("Other")
    payload["warnings"].append("another")

    assert report.headers == ["Name"]
    assert report.warnings == ["dup"]
    assert payload["status"] == "success"
    assert report.failed is False


def test_import_report_rejects_unknown_status_and_negative_rows() -> None:
    with pytest.raises(ValueError, match="status"):
        ImportReport(status="done")

    with pytest.raises(ValueError, match="rows_out"):
        ImportReport(rows_out=-1)


def test_run_manifest_rejects_negative_counts() -> None:
    with pytest.raises(ValueError, match="rows_out"):
        RunManifest(rows_out=-2)

    with pytest.raises(TypeError, match="rows_out"):
        RunManifest(rows_out=True)  # type: ignore[arg-type]
