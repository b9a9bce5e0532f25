"""Multi-architecture static library bundling."""

from archbundle.assemble import AssembleOptions, StagedBundle, assemble
from archbundle.errors import (
    AssemblyError,
    AssemblyLockTimeout,
    BuildError,
    BundleError,
    CopyIntegrityError,
    DuplicateSliceError,
    ValidationError,
)
from archbundle.metadata import generate, load_manifest
from archbundle.models import ArtifactReference, BuildTarget, BundleManifest, Platform, Slice, SliceDescriptor
from archbundle.resolve import CommandToolchain, ResolveOptions, ResolveResult, resolve
from archbundle.validate import validate, validate_bundle

__version__ = "0.1.0"

__all__ = [
    "AssembleOptions",
    "StagedBundle",
    "assemble",
    "AssemblyError",
    "AssemblyLockTimeout",
    "BuildError",
    "BundleError",
    "CopyIntegrityError",
    "DuplicateSliceError",
    "ValidationError",
    "generate",
    "load_manifest",
    "ArtifactReference",
    "BuildTarget",
    "BundleManifest",
    "Platform",
    "Slice",
    "SliceDescriptor",
    "CommandToolchain",
    "ResolveOptions",
    "ResolveResult",
    "resolve",
    "validate",
    "validate_bundle",
]
