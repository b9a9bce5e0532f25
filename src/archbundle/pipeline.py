"""End-to-end orchestration: resolve targets, assemble, publish, report."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence
from uuid import uuid4

from archbundle.assemble.assembler import AssembleOptions, StagedBundle, assemble
from archbundle.config import AppSettings
from archbundle.errors import DuplicateSliceError
from archbundle.models import ArtifactReference, BuildTarget
from archbundle.reports import RunReportPaths, bundle_inventory, platform_counts, write_run_reports
from archbundle.resolve.resolver import ResolveOptions, resolve
from archbundle.resolve.toolchain import CommandToolchain, Toolchain
from archbundle.utils.hashing import file_sha256
from archbundle.utils.clock import utc_timestamp

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BundleRunOptions:
    """Runtime options for one bundle run."""

    destination: Path | None = None
    write_reports: bool = True
    cancel_event: threading.Event | None = None


@dataclass(frozen=True, slots=True)
class BundleRunResult:
    """Return object for bundle run outcomes."""

    run_id: str
    bundle: StagedBundle
    summary: dict[str, Any]
    report_paths: RunReportPaths | None


def build_toolchain(settings: AppSettings, logger: logging.Logger | None = None) -> CommandToolchain:
    """Create the command toolchain described by settings."""

    toolchain = settings.toolchain
    return CommandToolchain(
        toolchain.command,
        toolchain.output_path,
        source_root=settings.paths.source_root,
        triples=toolchain.triples,
        variables=toolchain.variables,
        min_os_env=toolchain.min_os_env,
        env=toolchain.env,
        timeout_seconds=toolchain.timeout_seconds,
        logger=logger,
    )


def assemble_options_from_settings(settings: AppSettings) -> AssembleOptions:
    bundle = settings.bundle
    return AssembleOptions(
        name=bundle.name,
        identifier=bundle.identifier,
        version=bundle.version,
        library_name=bundle.library_name,
        allowed_architectures=tuple(settings.validation.allowed_architectures),
        emit_xcframework_plist=bundle.emit_xcframework_plist,
        apple_platform=bundle.apple_platform,
        lock_timeout_seconds=bundle.lock_timeout_seconds,
    )


def _finish_run(
    settings: AppSettings,
    *,
    run_id: str,
    mode: str,
    bundle: StagedBundle,
    started_ts: str,
    started_mono: float,
    run_options: BundleRunOptions,
    extra: dict[str, Any],
    logger: logging.Logger,
) -> BundleRunResult:
    inventory = bundle_inventory(bundle.manifest, bundle.destination)
    summary: dict[str, Any] = {
        "run_id": run_id,
        "mode": mode,
        "started_ts": started_ts,
        "finished_ts": utc_timestamp(),
        "duration_sec": round(time.monotonic() - started_mono, 3),
        "bundle_name": bundle.manifest.name,
        "destination": str(bundle.destination),
        "format_version": bundle.manifest.format_version,
        "slice_count": len(bundle.manifest.slices),
        "slices": [descriptor.identifier for descriptor in bundle.manifest.slices],
        "slices_by_platform": platform_counts(inventory),
        "replaced_existing": bundle.replaced_existing,
        **extra,
    }
    report_paths: RunReportPaths | None = None
    if run_options.write_reports:
        report_paths = write_run_reports(settings.paths.artifacts_root, run_id, summary, inventory)
        logger.info("pipeline.reports_written run_id=%s summary=%s", run_id, report_paths.summary_path)
    logger.info(
        "pipeline.done run_id=%s destination=%s slices=%s duration_sec=%s",
        run_id,
        bundle.destination,
        summary["slice_count"],
        summary["duration_sec"],
    )
    return BundleRunResult(run_id=run_id, bundle=bundle, summary=summary, report_paths=report_paths)


def run_bundle_pipeline(
    settings: AppSettings,
    targets: Sequence[BuildTarget] | None = None,
    *,
    toolchain: Toolchain | None = None,
    options: BundleRunOptions | None = None,
    logger: logging.Logger | None = None,
) -> BundleRunResult:
    """Build every target and publish one bundle. Any failure aborts the whole run."""

    effective_logger = logger or LOGGER
    run_options = options or BundleRunOptions()
    selected = list(targets) if targets is not None else settings.build_targets()
    destination = run_options.destination or settings.default_destination()
    effective_toolchain = toolchain or build_toolchain(settings, logger=effective_logger)

    run_id = f"bundle-run-{uuid4().hex[:12]}"
    started_ts = utc_timestamp()
    started_mono = time.monotonic()
    effective_logger.info("pipeline.start run_id=%s targets=%s destination=%s", run_id, len(selected), destination)

    resolved = resolve(
        selected,
        effective_toolchain,
        settings.paths.work_root,
        options=ResolveOptions(
            max_workers=settings.toolchain.max_workers,
            cancel_event=run_options.cancel_event,
            allowed_architectures=tuple(settings.validation.allowed_architectures),
        ),
        logger=effective_logger,
    )
    try:
        bundle = assemble(
            resolved.artifacts,
            destination,
            options=assemble_options_from_settings(settings),
            logger=effective_logger,
        )
    finally:
        resolved.discard()

    return _finish_run(
        settings,
        run_id=run_id,
        mode="build",
        bundle=bundle,
        started_ts=started_ts,
        started_mono=started_mono,
        run_options=run_options,
        extra={"resolve_run_id": resolved.run_id, "resolve_elapsed_sec": round(resolved.elapsed_seconds, 3)},
        logger=effective_logger,
    )


def reference_artifact(target: BuildTarget, path: Path) -> ArtifactReference:
    """Fingerprint a pre-built library for ``target``."""

    resolved = path.resolve()
    return ArtifactReference(
        architecture=target.architecture,
        platform=target.platform,
        variant=target.variant,
        path=resolved,
        fingerprint=file_sha256(resolved),
        min_os_version=target.min_os_version,
    )


def run_prebuilt_pipeline(
    settings: AppSettings,
    prebuilt: Sequence[tuple[BuildTarget, Path]],
    *,
    options: BundleRunOptions | None = None,
    logger: logging.Logger | None = None,
) -> BundleRunResult:
    """Publish a bundle from libraries that were built elsewhere."""

    effective_logger = logger or LOGGER
    run_options = options or BundleRunOptions()
    destination = run_options.destination or settings.default_destination()
    if not prebuilt:
        raise DuplicateSliceError([])

    run_id = f"bundle-run-{uuid4().hex[:12]}"
    started_ts = utc_timestamp()
    started_mono = time.monotonic()
    effective_logger.info("pipeline.start run_id=%s prebuilt=%s destination=%s", run_id, len(prebuilt), destination)

    artifacts = [reference_artifact(target, path) for target, path in prebuilt]
    bundle = assemble(
        artifacts,
        destination,
        options=assemble_options_from_settings(settings),
        logger=effective_logger,
    )
    return _finish_run(
        settings,
        run_id=run_id,
        mode="prebuilt",
        bundle=bundle,
        started_ts=started_ts,
        started_mono=started_mono,
        run_options=run_options,
        extra={},
        logger=effective_logger,
    )
