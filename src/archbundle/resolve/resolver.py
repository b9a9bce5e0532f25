"""Parallel, fail-fast resolution of build targets into artifact references."""

from __future__ import annotations

import logging
import os
import shutil
import threading
import time
from collections.abc import Collection
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence
from uuid import uuid4

from archbundle.errors import BuildError, DuplicateSliceError, ValidationError, find_duplicate_triples
from archbundle.models import ArtifactReference, BuildTarget
from archbundle.resolve.toolchain import Toolchain
from archbundle.utils.hashing import file_sha256
from archbundle.utils.paths import remove_tree
from archbundle.validate.rules import check_slice_inputs

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolveOptions:
    """Runtime options for target resolution."""

    max_workers: int | None = None
    cancel_event: threading.Event | None = None
    allowed_architectures: Collection[str] | None = None


@dataclass(frozen=True, slots=True)
class ResolveResult:
    """Artifacts of one successful resolution plus their scratch root."""

    run_id: str
    run_root: Path
    artifacts: list[ArtifactReference]
    elapsed_seconds: float

    def discard(self) -> None:
        """Remove the scratch directory holding this run's artifacts."""

        remove_tree(self.run_root)


def _worker_count(requested: int | None, target_count: int) -> int:
    limit = requested if requested is not None else (os.cpu_count() or 1)
    return max(1, min(limit, target_count))


def _collect_artifact(target: BuildTarget, produced: Path, output_dir: Path) -> ArtifactReference:
    """Copy the produced library into the run's scratch tree and fingerprint it."""

    produced = produced.resolve()
    collected = output_dir.resolve() / produced.name
    if produced != collected:
        shutil.copyfile(produced, collected)
    return ArtifactReference(
        architecture=target.architecture,
        platform=target.platform,
        variant=target.variant,
        path=collected,
        fingerprint=file_sha256(collected),
        min_os_version=target.min_os_version,
    )


def _build_one(
    toolchain: Toolchain,
    target: BuildTarget,
    output_dir: Path,
    cancel_event: threading.Event,
) -> ArtifactReference:
    if cancel_event.is_set():
        raise BuildError(target, "cancelled before start")
    output_dir.mkdir(parents=True, exist_ok=True)
    try:
        produced = toolchain.build(target, output_dir, cancel_event)
        return _collect_artifact(target, produced, output_dir)
    except BuildError:
        raise
    except Exception as exc:
        raise BuildError(target, str(exc) or type(exc).__name__) from exc


def resolve(
    targets: Sequence[BuildTarget],
    toolchain: Toolchain,
    work_root: Path,
    *,
    options: ResolveOptions | None = None,
    logger: logging.Logger | None = None,
) -> ResolveResult:
    """Build every target, returning artifacts in input order or raising on the first failure."""

    effective_logger = logger or LOGGER
    run_options = options or ResolveOptions()

    if not targets:
        raise DuplicateSliceError([])
    issues = check_slice_inputs((target.triple for target in targets), run_options.allowed_architectures)
    if issues:
        raise ValidationError(issues)
    duplicates = find_duplicate_triples(target.triple for target in targets)
    if duplicates:
        raise DuplicateSliceError(duplicates)

    run_id = f"resolve-{uuid4().hex[:12]}"
    run_root = work_root / run_id
    run_root.mkdir(parents=True, exist_ok=False)
    cancel_event = run_options.cancel_event or threading.Event()
    workers = _worker_count(run_options.max_workers, len(targets))
    started = time.monotonic()
    results: list[ArtifactReference | None] = [None] * len(targets)

    effective_logger.info(
        "resolve.start run_id=%s targets=%s workers=%s",
        run_id,
        ",".join(target.describe() for target in targets),
        workers,
    )
    try:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="archbundle-build") as pool:
            futures = {
                pool.submit(_build_one, toolchain, target, run_root / target.slice_id, cancel_event): index
                for index, target in enumerate(targets)
            }
            try:
                for future in as_completed(futures):
                    index = futures[future]
                    artifact = future.result()
                    results[index] = artifact
                    effective_logger.info(
                        "resolve.target_done target=%s sha256=%s",
                        targets[index].describe(),
                        artifact.fingerprint,
                    )
            except BaseException:
                cancel_event.set()
                for future in futures:
                    future.cancel()
                raise
    except BuildError as exc:
        effective_logger.error("resolve.failed run_id=%s target=%s cause=%s", run_id, exc.target.describe(), exc.cause)
        remove_tree(run_root)
        raise
    except BaseException:
        remove_tree(run_root)
        raise

    elapsed = time.monotonic() - started
    artifacts = [artifact for artifact in results if artifact is not None]
    effective_logger.info("resolve.done run_id=%s artifacts=%s elapsed_s=%.2f", run_id, len(artifacts), elapsed)
    return ResolveResult(run_id=run_id, run_root=run_root, artifacts=artifacts, elapsed_seconds=elapsed)
