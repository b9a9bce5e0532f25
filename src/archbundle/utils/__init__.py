"""Shared utility helpers."""

from archbundle.utils.clock import utc_timestamp
from archbundle.utils.hashing import file_sha256
from archbundle.utils.paths import (
    atomic_temp_path,
    remove_tree,
    sibling_path,
    write_bytes_atomically,
    write_json_atomically,
)

__all__ = [
    "utc_timestamp",
    "file_sha256",
    "atomic_temp_path",
    "remove_tree",
    "sibling_path",
    "write_bytes_atomically",
    "write_json_atomically",
]
