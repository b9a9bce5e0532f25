"""Validate a manifest against the bundle tree it describes."""

from __future__ import annotations

import logging
from collections.abc import Collection
from pathlib import Path

from archbundle.errors import ValidationError
from archbundle.metadata.generator import load_manifest
from archbundle.models import BundleManifest
from archbundle.validate.rules import (
    check_architectures,
    check_format_version,
    check_identifiers,
    check_library_files,
    check_non_empty,
    check_slice_descriptors,
    check_slice_tokens,
    check_unique_triples,
)

LOGGER = logging.getLogger(__name__)


def validate(
    manifest: BundleManifest,
    staged_root: Path,
    *,
    allowed_architectures: Collection[str],
    verify_fingerprints: bool = True,
    logger: logging.Logger | None = None,
) -> None:
    """Raise ValidationError listing every issue found, or return None."""

    effective_logger = logger or LOGGER
    issues: list[str] = []
    issues.extend(check_non_empty(manifest))
    issues.extend(check_format_version(manifest))
    issues.extend(check_unique_triples(manifest))
    issues.extend(check_architectures(manifest, allowed_architectures))
    path_issues = check_slice_tokens(manifest) + check_identifiers(manifest)
    issues.extend(path_issues)
    if not path_issues:
        issues.extend(check_library_files(manifest, staged_root, verify_fingerprints=verify_fingerprints))
        issues.extend(check_slice_descriptors(manifest, staged_root))

    if issues:
        effective_logger.error("validate.failed root=%s issues=%s", staged_root, len(issues))
        raise ValidationError(issues)
    effective_logger.info("validate.ok root=%s slices=%s", staged_root, len(manifest.slices))


def validate_bundle(
    bundle_root: Path,
    *,
    allowed_architectures: Collection[str],
    verify_fingerprints: bool = True,
    logger: logging.Logger | None = None,
) -> BundleManifest:
    """Load a published bundle's manifest and validate it."""

    manifest = load_manifest(bundle_root)
    validate(
        manifest,
        bundle_root,
        allowed_architectures=allowed_architectures,
        verify_fingerprints=verify_fingerprints,
        logger=logger,
    )
    return manifest
