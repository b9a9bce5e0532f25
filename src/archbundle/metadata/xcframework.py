"""XCFramework-style ``Info.plist`` descriptors for Xcode consumers."""

from __future__ import annotations

import plistlib
from pathlib import Path, PurePosixPath
from typing import Any

from archbundle.models import BundleManifest, Platform, SliceDescriptor

INFO_PLIST_FILE = "Info.plist"
XCFRAMEWORK_FORMAT_VERSION = "1.0"

_DESKTOP_PLATFORM = "macos"
_SUPPORTED_PLATFORM_NAMES = {
    "ios": ("iPhoneOS", "iPhoneSimulator"),
    "tvos": ("AppleTVOS", "AppleTVSimulator"),
    "watchos": ("WatchOS", "WatchSimulator"),
    "xros": ("XROS", "XRSimulator"),
    "macos": ("MacOSX", "MacOSX"),
}


def _render_plist(payload: dict[str, Any]) -> bytes:
    return plistlib.dumps(payload, fmt=plistlib.FMT_XML, sort_keys=True)


def _slice_platform(descriptor: SliceDescriptor, apple_platform: str) -> str:
    return _DESKTOP_PLATFORM if descriptor.platform is Platform.DESKTOP else apple_platform


def _platform_variant(descriptor: SliceDescriptor) -> str | None:
    if descriptor.platform is Platform.SIMULATOR:
        return "simulator"
    return descriptor.variant


def _library_file(descriptor: SliceDescriptor) -> str:
    return PurePosixPath(descriptor.library_path).name


def render_xcframework_plist(manifest: BundleManifest, apple_platform: str = "ios") -> bytes:
    """Top-level plist listing every available library."""

    libraries: list[dict[str, Any]] = []
    for descriptor in manifest.slices:
        entry: dict[str, Any] = {
            "LibraryIdentifier": descriptor.identifier,
            "LibraryPath": _library_file(descriptor),
            "SupportedArchitectures": [descriptor.architecture],
            "SupportedPlatform": _slice_platform(descriptor, apple_platform),
        }
        variant = _platform_variant(descriptor)
        if variant:
            entry["SupportedPlatformVariant"] = variant
        libraries.append(entry)
    return _render_plist(
        {
            "AvailableLibraries": libraries,
            "CFBundlePackageType": "XFWK",
            "XCFrameworkFormatVersion": XCFRAMEWORK_FORMAT_VERSION,
        }
    )


def render_slice_plist(manifest: BundleManifest, descriptor: SliceDescriptor, apple_platform: str = "ios") -> bytes:
    """Per-slice plist describing bundle id, version and supported platform."""

    platform = _slice_platform(descriptor, apple_platform)
    device_name, simulator_name = _SUPPORTED_PLATFORM_NAMES.get(platform, (platform, platform))
    supported = simulator_name if descriptor.platform is Platform.SIMULATOR else device_name
    executable = PurePosixPath(_library_file(descriptor)).stem
    payload: dict[str, Any] = {
        "CFBundleExecutable": executable,
        "CFBundleIdentifier": manifest.identifier or manifest.name,
        "CFBundleName": executable,
        "CFBundlePackageType": "FMWK",
        "CFBundleShortVersionString": manifest.version or "1.0",
        "CFBundleVersion": "1",
        "CFBundleSupportedPlatforms": [supported],
    }
    if descriptor.min_os_version:
        payload["MinimumOSVersion"] = descriptor.min_os_version
    return _render_plist(payload)


def write_xcframework_plists(manifest: BundleManifest, bundle_root: Path, apple_platform: str = "ios") -> list[Path]:
    """Write the top-level and per-slice ``Info.plist`` files."""

    written: list[Path] = []
    for descriptor in manifest.slices:
        slice_plist = bundle_root / descriptor.identifier / INFO_PLIST_FILE
        slice_plist.write_bytes(render_slice_plist(manifest, descriptor, apple_platform))
        written.append(slice_plist)
    top_plist = bundle_root / INFO_PLIST_FILE
    top_plist.write_bytes(render_xcframework_plist(manifest, apple_platform))
    written.append(top_plist)
    return written
