"""Path and filesystem helper functions."""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any
from uuid import uuid4


def atomic_temp_path(target_path: Path) -> Path:
    """Create a temp path in the target directory for atomic replacement."""

    return target_path.parent / f".{target_path.name}.{uuid4().hex}.tmp"


def write_bytes_atomically(payload: bytes, output_path: Path) -> Path:
    """Write bytes via a sibling temp file then os.replace."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = atomic_temp_path(output_path)
    try:
        temp_path.write_bytes(payload)
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def write_json_atomically(payload: dict[str, Any], output_path: Path) -> Path:
    """Write JSON payload atomically to output path."""

    rendered = json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n"
    return write_bytes_atomically(rendered.encode("utf-8"), output_path)


def sibling_path(target: Path, label: str) -> Path:
    """Hidden unique path next to ``target``, e.g. ``.name.staging-<hex>``."""

    return target.parent / f".{target.name}.{label}-{uuid4().hex[:12]}"


def remove_tree(path: Path) -> None:
    """Remove a directory tree or file if present."""

    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)
