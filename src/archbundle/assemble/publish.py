"""Staging directories, atomic publish, and recovery of interrupted swaps.

A bundle is published by renaming a fully built staging directory onto the
destination. When the destination already exists it is first renamed to a
hidden ``.<name>.previous-<hex>`` backup, the staging directory takes its
place, and only then is the backup deleted. A crash between the two renames
leaves the destination absent with the old bundle intact in the backup;
``recover_interrupted_publish`` moves it back on the next run.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from archbundle.utils.paths import remove_tree, sibling_path

LOGGER = logging.getLogger(__name__)

STAGING_LABEL = "staging"
BACKUP_LABEL = "previous"


def _siblings(destination: Path, label: str) -> list[Path]:
    if not destination.parent.exists():
        return []
    prefix = f".{destination.name}.{label}-"
    return sorted(path for path in destination.parent.iterdir() if path.name.startswith(prefix))


def create_staging_dir(destination: Path) -> Path:
    """Create a fresh staging directory beside ``destination``."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    staging = sibling_path(destination, STAGING_LABEL)
    staging.mkdir()
    return staging


def recover_interrupted_publish(destination: Path, logger: logging.Logger | None = None) -> Path | None:
    """Restore a backup left by an interrupted swap and clear stale leftovers.

    Must be called while holding the destination lock. Returns the restored
    backup path, if any.
    """

    effective_logger = logger or LOGGER
    restored: Path | None = None
    backups = _siblings(destination, BACKUP_LABEL)
    if backups and not destination.exists():
        restored = max(backups, key=lambda path: path.stat().st_mtime_ns)
        os.replace(restored, destination)
        backups.remove(restored)
        effective_logger.warning("publish.recovered_backup destination=%s backup=%s", destination, restored)

    for stale in [*backups, *_siblings(destination, STAGING_LABEL)]:
        effective_logger.info("publish.remove_stale path=%s", stale)
        remove_tree(stale)
    return restored


def publish_staged(staging: Path, destination: Path, logger: logging.Logger | None = None) -> bool:
    """Swap ``staging`` into place. Returns True when an old bundle was replaced."""

    effective_logger = logger or LOGGER
    if not destination.exists():
        os.replace(staging, destination)
        effective_logger.info("publish.created destination=%s", destination)
        return False

    backup = sibling_path(destination, BACKUP_LABEL)
    os.replace(destination, backup)
    try:
        os.replace(staging, destination)
    except BaseException:
        os.replace(backup, destination)
        raise
    remove_tree(backup)
    effective_logger.info("publish.replaced destination=%s", destination)
    return True
