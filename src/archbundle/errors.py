"""Error taxonomy for resolve, assemble, and validate failures."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

from archbundle.models import BuildTarget, SliceTriple


def _render_triple(triple: SliceTriple) -> str:
    architecture, platform, variant = triple
    return f"{architecture}/{platform}/{variant or '-'}"


class BundleError(Exception):
    """Base class for failures that abort a whole bundle run."""

    exit_code: int = 1


class BuildError(BundleError):
    """Toolchain invocation failed or produced no artifact."""

    exit_code = 3

    def __init__(self, target: BuildTarget, cause: str) -> None:
        self.target = target
        self.cause = cause
        super().__init__(f"build failed for {target.describe()}: {cause}")


class DuplicateSliceError(BundleError):
    """Two inputs map to the same (architecture, platform, variant) triple."""

    exit_code = 4

    def __init__(self, triples: Iterable[SliceTriple]) -> None:
        self.triples = sorted(set(triples), key=lambda t: (t[0], t[1], t[2] or ""))
        if self.triples:
            rendered = ", ".join(_render_triple(t) for t in self.triples)
            message = f"duplicate slices: {rendered}"
        else:
            message = "bundle must contain at least one slice"
        super().__init__(message)


class CopyIntegrityError(BundleError):
    """Copied library bytes do not match the source fingerprint."""

    exit_code = 5

    def __init__(self, source: Path, copied: Path, expected: str, actual: str) -> None:
        self.source = source
        self.copied = copied
        self.expected = expected
        self.actual = actual
        super().__init__(f"copy of {source} to {copied} has sha256 {actual}, expected {expected}")


class ValidationError(BundleError):
    """Manifest or staged tree is inconsistent."""

    exit_code = 6

    def __init__(self, issues: Sequence[str]) -> None:
        self.issues = list(issues)
        super().__init__("bundle validation failed: " + "; ".join(self.issues))


class AssemblyError(BundleError):
    """Staging or publish step failed."""

    exit_code = 7


class AssemblyLockTimeout(AssemblyError):
    """Another assembly holds the destination lock for too long."""

    def __init__(self, destination: Path, timeout: float) -> None:
        self.destination = destination
        self.timeout = timeout
        super().__init__(f"timed out after {timeout:g}s waiting for bundle lock on {destination}")


def find_duplicate_triples(triples: Iterable[SliceTriple]) -> list[SliceTriple]:
    """Return triples that occur more than once."""

    seen: set[SliceTriple] = set()
    duplicates: list[SliceTriple] = []
    for triple in triples:
        if triple in seen and triple not in duplicates:
            duplicates.append(triple)
        seen.add(triple)
    return duplicates
