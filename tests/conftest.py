from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Make the src-layout package importable for test runs without requiring users
# to set PYTHONPATH or install the package.
_ROOT = Path(__file__).resolve().parents[1]
_SRC = _ROOT / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from archbundle.models import ArtifactReference, BuildTarget, Platform  # noqa: E402
from archbundle.utils.hashing import file_sha256  # noqa: E402


def make_artifact(
    root: Path,
    architecture: str,
    platform: Platform,
    payload: bytes,
    *,
    variant: str | None = None,
    min_os_version: str | None = None,
    file_name: str = "lib.a",
) -> ArtifactReference:
    """Write a dummy library and return a reference to it."""

    target = BuildTarget(architecture, platform, variant, min_os_version)
    directory = root / "inputs" / target.slice_id
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / file_name
    path.write_bytes(payload)
    return ArtifactReference(
        architecture=architecture,
        platform=platform,
        variant=variant,
        path=path,
        fingerprint=file_sha256(path),
        min_os_version=min_os_version,
    )


@pytest.fixture
def artifact_factory(tmp_path: Path):
    def _factory(architecture: str, platform: Platform, payload: bytes, **kwargs) -> ArtifactReference:
        return make_artifact(tmp_path, architecture, platform, payload, **kwargs)

    return _factory


@pytest.fixture
def settings_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Minimal settings YAML rooted at tmp_path with env overrides cleared."""

    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("ARCHBUNDLE_"):
            monkeypatch.delenv(key, raising=False)
    (tmp_path / "src_root").mkdir()
    config_dir = tmp_path / "configs"
    config_dir.mkdir()
    path = config_dir / "settings.yaml"
    path.write_text(
        "\n".join(
            [
                "paths:",
                "  source_root: ./src_root",
                "  work_root: ./work",
                "  output_root: ./out",
                "  artifacts_root: ./artifacts",
                "  logs_root: ./logs",
                "bundle:",
                "  name: demo",
                "  identifier: com.example.demo",
                "  version: '1.0'",
                "  lock_timeout_seconds: 5",
                "targets:",
                "  - architecture: arm64",
                "    platform: device",
                "    min_os_version: '14.0'",
                "  - architecture: arm64",
                "    platform: simulator",
                "",
            ]
        ),
        encoding="utf-8",
    )
    return path
