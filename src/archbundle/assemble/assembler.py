"""Stage, verify, describe, validate, and atomically publish a bundle."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, replace
from pathlib import Path
from collections.abc import Collection
from typing import Iterable, Sequence

from archbundle.assemble.locks import destination_lock
from archbundle.assemble.publish import create_staging_dir, publish_staged, recover_interrupted_publish
from archbundle.errors import (
    AssemblyError,
    CopyIntegrityError,
    DuplicateSliceError,
    ValidationError,
    find_duplicate_triples,
)
from archbundle.metadata.generator import generate, write_metadata
from archbundle.metadata.xcframework import write_xcframework_plists
from archbundle.models import (
    DEFAULT_ALLOWED_ARCHITECTURES,
    MANIFEST_FILE,
    ArtifactReference,
    BundleManifest,
    Slice,
)
from archbundle.utils.hashing import file_sha256
from archbundle.utils.paths import remove_tree
from archbundle.validate.rules import check_slice_inputs
from archbundle.validate.validator import validate

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AssembleOptions:
    """Naming, validation, and locking options for one assembly."""

    name: str
    identifier: str | None = None
    version: str | None = None
    library_name: str | None = None
    allowed_architectures: Sequence[str] = DEFAULT_ALLOWED_ARCHITECTURES
    emit_xcframework_plist: bool = False
    apple_platform: str = "ios"
    lock_timeout_seconds: float = 60.0


@dataclass(frozen=True, slots=True)
class StagedBundle:
    """A bundle that has been validated and published to ``destination``."""

    destination: Path
    manifest: BundleManifest
    slices: list[Slice]
    replaced_existing: bool

    @property
    def manifest_path(self) -> Path:
        return self.destination / MANIFEST_FILE


def library_file_name(artifact: ArtifactReference, library_name: str | None) -> str:
    """File name of the library inside its slice directory."""

    if library_name is None:
        return artifact.path.name
    return f"lib{library_name}.a"


def copy_library(source: Path, target: Path) -> None:
    shutil.copyfile(source, target)


def check_artifacts(
    artifacts: Sequence[ArtifactReference],
    allowed_architectures: Collection[str] | None = None,
) -> None:
    """Reject empty input, unsafe or unknown names, and duplicate triples."""

    if not artifacts:
        raise DuplicateSliceError([])
    issues = check_slice_inputs((artifact.triple for artifact in artifacts), allowed_architectures)
    if issues:
        raise ValidationError(issues)
    duplicates = find_duplicate_triples(artifact.triple for artifact in artifacts)
    if duplicates:
        raise DuplicateSliceError(duplicates)


def stage_slices(
    artifacts: Sequence[ArtifactReference],
    staging_root: Path,
    *,
    library_name: str | None = None,
    logger: logging.Logger | None = None,
) -> list[Slice]:
    """Copy each artifact into its slice directory and verify the copy."""

    effective_logger = logger or LOGGER
    slices: list[Slice] = []
    for artifact in sorted(artifacts, key=lambda item: item.sort_key):
        slice_dir = staging_root / artifact.slice_id
        slice_dir.mkdir()
        file_name = library_file_name(artifact, library_name)
        target = slice_dir / file_name
        copy_library(artifact.path, target)

        actual = file_sha256(target)
        if actual != artifact.fingerprint:
            effective_logger.error(
                "assemble.copy_mismatch slice=%s expected=%s actual=%s",
                artifact.slice_id,
                artifact.fingerprint,
                actual,
            )
            raise CopyIntegrityError(artifact.path, target, artifact.fingerprint, actual)

        slices.append(
            Slice(
                identifier=artifact.slice_id,
                artifact=artifact,
                root=slice_dir,
                library_path=f"{artifact.slice_id}/{file_name}",
            )
        )
        effective_logger.info("assemble.slice_staged slice=%s bytes=%s", artifact.slice_id, target.stat().st_size)
    return slices


def assemble(
    artifacts: Iterable[ArtifactReference],
    destination: Path,
    *,
    options: AssembleOptions,
    logger: logging.Logger | None = None,
) -> StagedBundle:
    """Build the bundle in a private staging directory and publish it atomically."""

    effective_logger = logger or LOGGER
    items = list(artifacts)
    check_artifacts(items, options.allowed_architectures)
    destination = destination.absolute()

    with destination_lock(destination, options.lock_timeout_seconds):
        recover_interrupted_publish(destination, logger=effective_logger)
        staging = create_staging_dir(destination)
        effective_logger.info("assemble.start destination=%s staging=%s slices=%s", destination, staging, len(items))
        published = False
        try:
            slices = stage_slices(items, staging, library_name=options.library_name, logger=effective_logger)
            manifest = generate(
                slices,
                name=options.name,
                identifier=options.identifier,
                version=options.version,
            )
            write_metadata(manifest, staging, logger=effective_logger)
            if options.emit_xcframework_plist:
                write_xcframework_plists(manifest, staging, apple_platform=options.apple_platform)
            validate(
                manifest,
                staging,
                allowed_architectures=options.allowed_architectures,
                logger=effective_logger,
            )
            replaced = publish_staged(staging, destination, logger=effective_logger)
            published = True
        except OSError as exc:
            raise AssemblyError(f"assembly of {destination} failed: {exc}") from exc
        finally:
            if not published:
                remove_tree(staging)
                effective_logger.info("assemble.staging_discarded staging=%s", staging)

    final_slices = [replace(item, root=destination / item.identifier) for item in slices]
    effective_logger.info("assemble.done destination=%s slices=%s replaced=%s", destination, len(final_slices), replaced)
    return StagedBundle(
        destination=destination,
        manifest=manifest,
        slices=final_slices,
        replaced_existing=replaced,
    )
