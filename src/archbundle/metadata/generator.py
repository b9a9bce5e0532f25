"""Deterministic manifest and per-slice descriptor generation."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

import pydantic

from archbundle.errors import ValidationError
from archbundle.models import (
    MANIFEST_FILE,
    MANIFEST_FORMAT_VERSION,
    SLICE_DESCRIPTOR_FILE,
    BundleManifest,
    Slice,
    SliceDescriptor,
)

LOGGER = logging.getLogger(__name__)


def render_json(payload: dict[str, Any]) -> bytes:
    """Stable JSON encoding: sorted keys, two-space indent, trailing newline."""

    return (json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode("utf-8")


def describe_slice(slice_: Slice) -> SliceDescriptor:
    """Build the descriptor for one staged slice."""

    artifact = slice_.artifact
    return SliceDescriptor(
        identifier=slice_.identifier,
        architecture=artifact.architecture,
        platform=artifact.platform,
        variant=artifact.variant,
        library_path=slice_.library_path,
        min_os_version=artifact.min_os_version,
        sha256=artifact.fingerprint,
    )


def generate(
    slices: Sequence[Slice],
    *,
    name: str,
    identifier: str | None = None,
    version: str | None = None,
) -> BundleManifest:
    """Produce the bundle manifest with slices ordered by (platform, architecture, variant)."""

    ordered = sorted(slices, key=lambda item: item.sort_key)
    return BundleManifest(
        format_version=MANIFEST_FORMAT_VERSION,
        name=name,
        identifier=identifier,
        version=version,
        slices=[describe_slice(item) for item in ordered],
    )


def render_manifest(manifest: BundleManifest) -> bytes:
    return render_json(manifest.model_dump(mode="json"))


def render_slice_descriptor(descriptor: SliceDescriptor) -> bytes:
    return render_json(descriptor.model_dump(mode="json"))


def write_metadata(
    manifest: BundleManifest,
    bundle_root: Path,
    logger: logging.Logger | None = None,
) -> list[Path]:
    """Write ``manifest.json`` and every ``slice.json`` under ``bundle_root``."""

    effective_logger = logger or LOGGER
    written: list[Path] = []
    for descriptor in manifest.slices:
        descriptor_path = bundle_root / descriptor.identifier / SLICE_DESCRIPTOR_FILE
        descriptor_path.parent.mkdir(parents=True, exist_ok=True)
        descriptor_path.write_bytes(render_slice_descriptor(descriptor))
        written.append(descriptor_path)

    manifest_path = bundle_root / MANIFEST_FILE
    manifest_path.write_bytes(render_manifest(manifest))
    written.append(manifest_path)
    effective_logger.info("metadata.written root=%s slices=%s", bundle_root, len(manifest.slices))
    return written


def load_manifest(bundle_root: Path) -> BundleManifest:
    """Parse ``manifest.json`` from a bundle, raising ValidationError when malformed."""

    manifest_path = bundle_root / MANIFEST_FILE
    if not manifest_path.is_file():
        raise ValidationError([f"missing {MANIFEST_FILE} in {bundle_root}"])
    try:
        raw = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError([f"unreadable {MANIFEST_FILE}: {exc}"]) from exc
    try:
        return BundleManifest.model_validate(raw)
    except pydantic.ValidationError as exc:
        issues = [f"{MANIFEST_FILE}: {'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
        raise ValidationError(issues) from exc


def load_slice_descriptor(path: Path) -> SliceDescriptor:
    """Parse one ``slice.json``, raising ValidationError when malformed."""

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return SliceDescriptor.model_validate(raw)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError([f"unreadable {path.name} in {path.parent.name}: {exc}"]) from exc
    except pydantic.ValidationError as exc:
        raise ValidationError([f"malformed {path.name} in {path.parent.name}: {exc.error_count()} error(s)"]) from exc
