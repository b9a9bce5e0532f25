"""Slice inventory tables and run summary artifacts."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import polars as pl

from archbundle.models import BundleManifest
from archbundle.utils.paths import atomic_temp_path, write_json_atomically

RUN_SUMMARY_FILE = "run_summary.json"
INVENTORY_PARQUET_FILE = "slices.parquet"
INVENTORY_CSV_FILE = "slices.csv"


@dataclass(frozen=True, slots=True)
class RunReportPaths:
    """Locations of the artifacts written for one run."""

    run_dir: Path
    summary_path: Path
    inventory_parquet_path: Path
    inventory_csv_path: Path


def _inventory_schema() -> dict[str, pl.DataType]:
    """Stable schema for slice inventories."""

    return {
        "identifier": pl.String,
        "architecture": pl.String,
        "platform": pl.String,
        "variant": pl.String,
        "min_os_version": pl.String,
        "library_path": pl.String,
        "sha256": pl.String,
        "size_bytes": pl.Int64,
    }


def bundle_inventory(manifest: BundleManifest, bundle_root: Path | None = None) -> pl.DataFrame:
    """One row per slice, in manifest order. ``size_bytes`` is null without a bundle root."""

    rows: list[dict[str, object]] = []
    for descriptor in manifest.slices:
        size_bytes: int | None = None
        if bundle_root is not None:
            library = bundle_root / descriptor.library_path
            if library.is_file():
                size_bytes = library.stat().st_size
        rows.append(
            {
                "identifier": descriptor.identifier,
                "architecture": descriptor.architecture,
                "platform": descriptor.platform.value,
                "variant": descriptor.variant,
                "min_os_version": descriptor.min_os_version,
                "library_path": descriptor.library_path,
                "sha256": descriptor.sha256,
                "size_bytes": size_bytes,
            }
        )
    if not rows:
        return pl.DataFrame(schema=_inventory_schema())
    return pl.DataFrame(rows, schema=_inventory_schema())


def platform_counts(inventory: pl.DataFrame) -> dict[str, int]:
    """Return slice counts per platform."""

    if inventory.height == 0:
        return {}
    result: dict[str, int] = {}
    for row in inventory.group_by("platform").len(name="count").to_dicts():
        result[str(row["platform"])] = int(row["count"])
    return dict(sorted(result.items()))


def _write_df_pair_atomically(df: pl.DataFrame, parquet_path: Path, csv_path: Path) -> tuple[Path, Path]:
    """Write dataframe as parquet and csv atomically."""

    parquet_path.parent.mkdir(parents=True, exist_ok=True)
    parquet_tmp = atomic_temp_path(parquet_path)
    csv_tmp = atomic_temp_path(csv_path)
    try:
        df.write_parquet(parquet_tmp)
        df.write_csv(csv_tmp)
        os.replace(parquet_tmp, parquet_path)
        os.replace(csv_tmp, csv_path)
    finally:
        if parquet_tmp.exists():
            parquet_tmp.unlink()
        if csv_tmp.exists():
            csv_tmp.unlink()
    return parquet_path, csv_path


def write_run_reports(
    artifacts_root: Path,
    run_id: str,
    summary: dict[str, Any],
    inventory: pl.DataFrame,
) -> RunReportPaths:
    """Persist the run summary JSON and slice inventory under ``artifacts_root/runs/<run_id>``."""

    run_dir = artifacts_root / "runs" / run_id
    parquet_path, csv_path = _write_df_pair_atomically(
        inventory,
        run_dir / INVENTORY_PARQUET_FILE,
        run_dir / INVENTORY_CSV_FILE,
    )
    summary_path = write_json_atomically(summary, run_dir / RUN_SUMMARY_FILE)
    return RunReportPaths(
        run_dir=run_dir,
        summary_path=summary_path,
        inventory_parquet_path=parquet_path,
        inventory_csv_path=csv_path,
    )
