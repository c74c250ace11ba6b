"""Run report persistence — per-file diagnostics + audit manifest."""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path

from sheet_records.io import write_json
from sheet_records.models import ImportOptions, ImportReport, RunManifest
from sheet_records.utils import sha256_file, utcnow_iso

logger = logging.getLogger(__name__)


def build_run_manifest(
    reports: list[ImportReport],
    options: ImportOptions,
    *,
    created_at: str | None = None,
) -> RunManifest:
    """Collect *reports* into a manifest, hashing every input that is readable."""
    inputs = []
    for report in reports:
        entry = report.to_dict()
        sha256 = ""
        try:
            sha256 = sha256_file(Path(report.input_path))
        except OSError as exc:
            logger.debug("Cannot hash %s: %s", report.input_path, exc)
        entry["sha256"] = sha256
        inputs.append(entry)
    return RunManifest(
        created_at_utc=created_at or utcnow_iso(),
        options=asdict(options),
        inputs=inputs,
        rows_out=sum(report.rows_out for report in reports),
    )


def write_run_manifest(path: Path, manifest: RunManifest) -> Path:
    """Write *manifest* as JSON to *path* and return the path."""
    return write_json(path, manifest.to_dict())
