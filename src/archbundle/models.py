"""Core records shared by the resolve, assemble, and metadata stages."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

MANIFEST_FORMAT_VERSION = "1"
MANIFEST_FILE = "manifest.json"
SLICE_DESCRIPTOR_FILE = "slice.json"
DEFAULT_ALLOWED_ARCHITECTURES: tuple[str, ...] = ("arm64", "arm64e", "x86_64", "armv7", "armv7s", "i386")

SliceTriple = tuple[str, str, str | None]

# Architecture and variant names become path components of the slice directory.
SLICE_TOKEN_PATTERN = re.compile(r"[A-Za-z0-9_]+(?:\.[A-Za-z0-9_]+)*")


class Platform(str, Enum):
    """Target platform family of one slice."""

    DEVICE = "device"
    SIMULATOR = "simulator"
    DESKTOP = "desktop"


def slice_identifier(architecture: str, platform: Platform | str, variant: str | None) -> str:
    """Deterministic slice directory name: ``<platform>-<arch>[-<variant>]``."""

    platform_value = platform.value if isinstance(platform, Platform) else str(platform)
    parts = [platform_value, architecture]
    if variant:
        parts.append(variant)
    return "-".join(parts)


def slice_token_problem(label: str, value: str) -> str | None:
    if SLICE_TOKEN_PATTERN.fullmatch(value):
        return None
    return f"{label} {value!r} may only contain letters, digits, '_' and single '.' separators"


def slice_token_issues(architecture: str, variant: str | None) -> list[str]:
    """Describe architecture or variant names that are unsafe as path components."""

    problems = [slice_token_problem("architecture", architecture)]
    if variant is not None:
        problems.append(slice_token_problem("variant", variant))
    return [problem for problem in problems if problem is not None]


def slice_sort_key(platform: Platform | str, architecture: str, variant: str | None) -> tuple[str, str, str]:
    """Manifest ordering key: (platform, architecture, variant)."""

    platform_value = platform.value if isinstance(platform, Platform) else str(platform)
    return (platform_value, architecture, variant or "")


@dataclass(frozen=True, slots=True)
class BuildTarget:
    """One desired toolchain output."""

    architecture: str
    platform: Platform
    variant: str | None = None
    min_os_version: str | None = None

    @property
    def triple(self) -> SliceTriple:
        return (self.architecture, self.platform.value, self.variant)

    @property
    def slice_id(self) -> str:
        return slice_identifier(self.architecture, self.platform, self.variant)

    def describe(self) -> str:
        suffix = f"@{self.min_os_version}" if self.min_os_version else ""
        return f"{self.slice_id}{suffix}"


@dataclass(frozen=True, slots=True)
class ArtifactReference:
    """A compiled static library produced for one build target."""

    architecture: str
    platform: Platform
    variant: str | None
    path: Path
    fingerprint: str
    min_os_version: str | None = None

    @property
    def triple(self) -> SliceTriple:
        return (self.architecture, self.platform.value, self.variant)

    @property
    def slice_id(self) -> str:
        return slice_identifier(self.architecture, self.platform, self.variant)

    @property
    def sort_key(self) -> tuple[str, str, str]:
        return slice_sort_key(self.platform, self.architecture, self.variant)


@dataclass(frozen=True, slots=True)
class Slice:
    """A staged slice directory holding one copied artifact."""

    identifier: str
    artifact: ArtifactReference
    root: Path
    library_path: str

    @property
    def sort_key(self) -> tuple[str, str, str]:
        return self.artifact.sort_key


class SliceDescriptor(BaseModel):
    """Per-slice descriptor, also embedded in the top-level manifest."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    identifier: str
    architecture: str = Field(min_length=1)
    platform: Platform
    variant: str | None = None
    library_path: str = Field(min_length=1)
    min_os_version: str | None = None
    sha256: str = Field(pattern=r"^[0-9a-f]{64}$")

    @property
    def triple(self) -> SliceTriple:
        return (self.architecture, self.platform.value, self.variant)


class BundleManifest(BaseModel):
    """Top-level bundle descriptor read by the integrating toolchain."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    format_version: str = MANIFEST_FORMAT_VERSION
    name: str = Field(min_length=1)
    identifier: str | None = None
    version: str | None = None
    slices: list[SliceDescriptor] = Field(default_factory=list)

    def find_slice(self, architecture: str, platform: Platform | str, variant: str | None = None) -> SliceDescriptor | None:
        """Return the slice matching one build context, if present."""

        platform_value = platform.value if isinstance(platform, Platform) else str(platform)
        for descriptor in self.slices:
            if descriptor.triple == (architecture, platform_value, variant):
                return descriptor
        return None
