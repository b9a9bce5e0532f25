"""Bundle assembly: staging, verified copies, and atomic publish."""

from archbundle.assemble.assembler import (
    DEFAULT_ALLOWED_ARCHITECTURES,
    AssembleOptions,
    StagedBundle,
    assemble,
    check_artifacts,
    library_file_name,
    stage_slices,
)
from archbundle.assemble.locks import destination_lock
from archbundle.assemble.publish import create_staging_dir, publish_staged, recover_interrupted_publish

__all__ = [
    "DEFAULT_ALLOWED_ARCHITECTURES",
    "AssembleOptions",
    "StagedBundle",
    "assemble",
    "check_artifacts",
    "library_file_name",
    "stage_slices",
    "destination_lock",
    "create_staging_dir",
    "publish_staged",
    "recover_interrupted_publish",
]
