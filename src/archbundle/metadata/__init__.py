"""Bundle descriptor generation and loading."""

from archbundle.metadata.generator import (
    describe_slice,
    generate,
    load_manifest,
    load_slice_descriptor,
    render_manifest,
    render_slice_descriptor,
    write_metadata,
)
from archbundle.metadata.xcframework import (
    INFO_PLIST_FILE,
    render_slice_plist,
    render_xcframework_plist,
    write_xcframework_plists,
)

__all__ = [
    "describe_slice",
    "generate",
    "load_manifest",
    "load_slice_descriptor",
    "render_manifest",
    "render_slice_descriptor",
    "write_metadata",
    "INFO_PLIST_FILE",
    "render_slice_plist",
    "render_xcframework_plist",
    "write_xcframework_plists",
]
