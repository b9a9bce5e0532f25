"""Bundle-level consistency rules. Each rule returns a list of issue strings."""

from __future__ import annotations

from collections.abc import Collection, Iterable
from pathlib import Path, PurePosixPath

from archbundle.errors import ValidationError, find_duplicate_triples
from archbundle.metadata.generator import load_slice_descriptor
from archbundle.models import (
    MANIFEST_FORMAT_VERSION,
    SLICE_DESCRIPTOR_FILE,
    BundleManifest,
    SliceDescriptor,
    SliceTriple,
    slice_identifier,
    slice_token_issues,
)
from archbundle.utils.hashing import file_sha256


def check_slice_inputs(
    triples: Iterable[SliceTriple],
    allowed_architectures: Collection[str] | None = None,
) -> list[str]:
    """Reject unsafe or unrecognized names before anything is built or staged."""

    allowed = None if allowed_architectures is None else set(allowed_architectures)
    issues: list[str] = []
    for architecture, platform, variant in triples:
        problems = slice_token_issues(architecture, variant)
        if not problems and allowed is not None and architecture not in allowed:
            problems = [f"unrecognized architecture {architecture!r}"]
        issues.extend(f"{platform} target: {problem}" for problem in problems)
    return issues


def check_slice_tokens(manifest: BundleManifest) -> list[str]:
    return [
        f"slice {descriptor.identifier}: {problem}"
        for descriptor in manifest.slices
        for problem in slice_token_issues(descriptor.architecture, descriptor.variant)
    ]


def check_non_empty(manifest: BundleManifest) -> list[str]:
    if not manifest.slices:
        return ["manifest lists no slices"]
    return []


def check_format_version(manifest: BundleManifest) -> list[str]:
    if manifest.format_version != MANIFEST_FORMAT_VERSION:
        return [f"unsupported format_version {manifest.format_version!r}, expected {MANIFEST_FORMAT_VERSION!r}"]
    return []


def check_unique_triples(manifest: BundleManifest) -> list[str]:
    return [
        f"duplicate slice {architecture}/{platform}/{variant or '-'}"
        for architecture, platform, variant in find_duplicate_triples(d.triple for d in manifest.slices)
    ]


def check_architectures(manifest: BundleManifest, allowed_architectures: Collection[str]) -> list[str]:
    allowed = set(allowed_architectures)
    return [
        f"slice {descriptor.identifier} has unrecognized architecture {descriptor.architecture!r}"
        for descriptor in manifest.slices
        if descriptor.architecture not in allowed
    ]


def check_identifiers(manifest: BundleManifest) -> list[str]:
    issues: list[str] = []
    for descriptor in manifest.slices:
        expected = slice_identifier(descriptor.architecture, descriptor.platform, descriptor.variant)
        if descriptor.identifier != expected:
            issues.append(f"slice identifier {descriptor.identifier!r} should be {expected!r}")
    return issues


def resolve_library_path(descriptor: SliceDescriptor, root: Path) -> Path:
    """Resolve a descriptor's library path, rejecting absolute or escaping paths."""

    relative = PurePosixPath(descriptor.library_path)
    if relative.is_absolute() or ".." in relative.parts:
        raise ValidationError([f"slice {descriptor.identifier} library_path {descriptor.library_path!r} is not bundle-relative"])
    resolved_root = root.resolve()
    candidate = (resolved_root / Path(*relative.parts)).resolve()
    if resolved_root not in candidate.parents:
        raise ValidationError([f"slice {descriptor.identifier} library_path {descriptor.library_path!r} escapes the bundle"])
    return candidate


def check_library_files(manifest: BundleManifest, root: Path, *, verify_fingerprints: bool = True) -> list[str]:
    issues: list[str] = []
    for descriptor in manifest.slices:
        try:
            library = resolve_library_path(descriptor, root)
        except ValidationError as exc:
            issues.extend(exc.issues)
            continue
        if not library.is_file():
            issues.append(f"slice {descriptor.identifier} library {descriptor.library_path} does not exist")
            continue
        if verify_fingerprints:
            actual = file_sha256(library)
            if actual != descriptor.sha256:
                issues.append(f"slice {descriptor.identifier} library sha256 {actual} does not match {descriptor.sha256}")
    return issues


def check_slice_descriptors(manifest: BundleManifest, root: Path) -> list[str]:
    issues: list[str] = []
    for descriptor in manifest.slices:
        path = root / descriptor.identifier / SLICE_DESCRIPTOR_FILE
        if not path.is_file():
            issues.append(f"slice {descriptor.identifier} is missing {SLICE_DESCRIPTOR_FILE}")
            continue
        try:
            on_disk = load_slice_descriptor(path)
        except ValidationError as exc:
            issues.extend(exc.issues)
            continue
        if on_disk != descriptor:
            issues.append(f"slice {descriptor.identifier} {SLICE_DESCRIPTOR_FILE} disagrees with manifest")
    return issues
