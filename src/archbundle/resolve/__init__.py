"""Target resolution: drive the toolchain once per build target."""

from archbundle.resolve.resolver import ResolveOptions, ResolveResult, resolve
from archbundle.resolve.toolchain import CommandToolchain, Toolchain

__all__ = [
    "CommandToolchain",
    "Toolchain",
    "ResolveOptions",
    "ResolveResult",
    "resolve",
]
