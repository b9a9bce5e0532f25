from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import pytest

from archbundle.errors import BuildError, DuplicateSliceError, ValidationError
from archbundle.models import BuildTarget, Platform
from archbundle.resolve.resolver import ResolveOptions, resolve
from archbundle.resolve.toolchain import TOOLCHAIN_LOG_FILE, CommandToolchain
from archbundle.utils.hashing import file_sha256

DEVICE = BuildTarget("arm64", Platform.DEVICE, min_os_version="14.0")
SIMULATOR = BuildTarget("arm64", Platform.SIMULATOR)
SIMULATOR_X86 = BuildTarget("x86_64", Platform.SIMULATOR)


class WritingToolchain:
    """Writes the slice id as library bytes, optionally failing some targets."""

    def __init__(self, fail: set[str] | None = None, delay: float = 0.0) -> None:
        self.fail = fail or set()
        self.delay = delay
        self.calls: list[str] = []
        self.lock = threading.Lock()

    def build(self, target: BuildTarget, output_dir: Path, cancel_event: threading.Event) -> Path:
        with self.lock:
            self.calls.append(target.slice_id)
        if self.delay:
            time.sleep(self.delay)
        if target.slice_id in self.fail:
            raise BuildError(target, "compiler exploded")
        path = output_dir / "libdemo.a"
        path.write_bytes(target.slice_id.encode("utf-8"))
        return path


class WaitingToolchain:
    """Blocks until cancelled, except for one target that fails immediately."""

    def __init__(self, failing: str) -> None:
        self.failing = failing
        self.cancelled: list[str] = []
        self.started = threading.Event()

    def build(self, target: BuildTarget, output_dir: Path, cancel_event: threading.Event) -> Path:
        (output_dir / "partial.o").write_bytes(b"partial")
        if target.slice_id == self.failing:
            assert self.started.wait(timeout=5)
            raise BuildError(target, "link failed")
        self.started.set()
        if cancel_event.wait(timeout=10):
            self.cancelled.append(target.slice_id)
            raise BuildError(target, "cancelled")
        raise AssertionError("sibling build was never cancelled")


def test_resolve_returns_artifacts_in_input_order(tmp_path):
    toolchain = WritingToolchain(delay=0.01)
    targets = [SIMULATOR_X86, DEVICE, SIMULATOR]

    result = resolve(targets, toolchain, tmp_path / "work", options=ResolveOptions(max_workers=3))

    assert [artifact.slice_id for artifact in result.artifacts] == [
        "simulator-x86_64",
        "device-arm64",
        "simulator-arm64",
    ]
    device = result.artifacts[1]
    assert device.path.read_bytes() == b"device-arm64"
    assert device.fingerprint == file_sha256(device.path)
    assert device.min_os_version == "14.0"
    assert result.run_root in device.path.parents

    result.discard()
    assert not result.run_root.exists()


def test_resolve_collects_outputs_produced_outside_the_run(tmp_path):
    external = tmp_path / "target" / "libdemo.a"

    class ExternalToolchain:
        def build(self, target: BuildTarget, output_dir: Path, cancel_event: threading.Event) -> Path:
            external.parent.mkdir(parents=True, exist_ok=True)
            external.write_bytes(b"external")
            return external

    result = resolve([DEVICE], ExternalToolchain(), tmp_path / "work")

    artifact = result.artifacts[0]
    assert artifact.path != external
    assert artifact.path.read_bytes() == b"external"
    assert result.run_root in artifact.path.parents


def test_duplicate_targets_fail_before_any_build(tmp_path):
    toolchain = WritingToolchain()
    with pytest.raises(DuplicateSliceError):
        resolve([DEVICE, BuildTarget("arm64", Platform.DEVICE)], toolchain, tmp_path / "work")
    assert toolchain.calls == []


def test_empty_target_list_is_rejected(tmp_path):
    with pytest.raises(DuplicateSliceError):
        resolve([], WritingToolchain(), tmp_path / "work")


def test_failure_discards_every_artifact_of_the_attempt(tmp_path):
    work_root = tmp_path / "work"
    toolchain = WritingToolchain(fail={"simulator-arm64"})

    with pytest.raises(BuildError) as excinfo:
        resolve([DEVICE, SIMULATOR], toolchain, work_root, options=ResolveOptions(max_workers=1))

    assert excinfo.value.target == SIMULATOR
    assert excinfo.value.exit_code == 3
    assert list(work_root.iterdir()) == []


def test_failure_cancels_in_flight_siblings(tmp_path):
    work_root = tmp_path / "work"
    toolchain = WaitingToolchain(failing="device-arm64")

    with pytest.raises(BuildError) as excinfo:
        resolve([DEVICE, SIMULATOR], toolchain, work_root, options=ResolveOptions(max_workers=2))

    assert excinfo.value.target == DEVICE
    assert toolchain.cancelled == ["simulator-arm64"]
    assert list(work_root.iterdir()) == []


def test_unexpected_toolchain_exception_becomes_build_error(tmp_path):
    class BrokenToolchain:
        def build(self, target: BuildTarget, output_dir: Path, cancel_event: threading.Event) -> Path:
            raise OSError("disk full")

    with pytest.raises(BuildError, match="disk full"):
        resolve([DEVICE], BrokenToolchain(), tmp_path / "work")


def _python_toolchain(tmp_path: Path, script: str, **kwargs) -> CommandToolchain:
    return CommandToolchain(
        [sys.executable, "-c", script, "{output_dir}/lib{library_stem}.a", "{triple}"],
        "{output_dir}/lib{library_stem}.a",
        source_root=tmp_path,
        triples={"device-arm64": "aarch64-apple-ios"},
        variables={"library_stem": "demo"},
        **kwargs,
    )


def test_command_toolchain_builds_and_exports_min_os(tmp_path):
    script = "import os, sys; open(sys.argv[1], 'wb').write((sys.argv[2] + ':' + os.environ['DEPLOY_TARGET']).encode())"
    toolchain = _python_toolchain(tmp_path, script, min_os_env="DEPLOY_TARGET", timeout_seconds=30)

    result = resolve([DEVICE], toolchain, tmp_path / "work")

    assert result.artifacts[0].path.read_bytes() == b"aarch64-apple-ios:14.0"
    assert (result.run_root / "device-arm64" / TOOLCHAIN_LOG_FILE).exists()


def test_command_toolchain_nonzero_exit(tmp_path):
    script = "import sys; print('error: linker failed'); sys.exit(3)"
    toolchain = _python_toolchain(tmp_path, script, timeout_seconds=30)

    with pytest.raises(BuildError) as excinfo:
        resolve([DEVICE], toolchain, tmp_path / "work")

    assert "status 3" in excinfo.value.cause
    assert "linker failed" in excinfo.value.cause


def test_command_toolchain_missing_output(tmp_path):
    toolchain = _python_toolchain(tmp_path, "pass", timeout_seconds=30)

    with pytest.raises(BuildError, match="was not produced"):
        resolve([DEVICE], toolchain, tmp_path / "work")


def test_command_toolchain_timeout(tmp_path):
    toolchain = _python_toolchain(tmp_path, "import time; time.sleep(30)", timeout_seconds=0.5)

    started = time.monotonic()
    with pytest.raises(BuildError, match="timed out"):
        resolve([DEVICE], toolchain, tmp_path / "work")
    assert time.monotonic() - started < 20


def test_command_toolchain_missing_executable(tmp_path):
    toolchain = CommandToolchain(
        ["definitely-not-a-real-toolchain-binary"],
        "{output_dir}/lib.a",
        source_root=tmp_path,
    )

    with pytest.raises(BuildError, match="not found"):
        resolve([DEVICE], toolchain, tmp_path / "work")


def test_command_toolchain_unknown_placeholder(tmp_path):
    toolchain = CommandToolchain(["cargo", "{nope}"], "{output_dir}/lib.a", source_root=tmp_path)

    with pytest.raises(BuildError, match="placeholder"):
        toolchain.render(DEVICE, tmp_path)


def test_command_toolchain_triple_falls_back_to_slice_id(tmp_path):
    toolchain = CommandToolchain(["build", "{triple}", "{variant}"], "out/{triple}.a", source_root=tmp_path)

    argv, output, _ = toolchain.render(BuildTarget("arm64", Platform.DESKTOP, "maccatalyst"), tmp_path / "o")

    assert argv == ["build", "desktop-arm64-maccatalyst", "maccatalyst"]
    assert output == tmp_path / "out" / "desktop-arm64-maccatalyst.a"


@pytest.mark.parametrize(
    "target",
    [
        BuildTarget("arm64/../../escaped", Platform.DEVICE),
        BuildTarget("arm64-x", Platform.DEVICE),
        BuildTarget("arm64", Platform.DESKTOP, "mac/catalyst"),
        BuildTarget("..", Platform.SIMULATOR),
    ],
)
def test_unsafe_names_fail_before_any_build(tmp_path, target):
    toolchain = WritingToolchain()
    work_root = tmp_path / "work"

    with pytest.raises(ValidationError, match="may only contain"):
        resolve([DEVICE, target], toolchain, work_root)

    assert toolchain.calls == []
    assert not work_root.exists()


def test_allow_list_is_enforced_before_any_build(tmp_path):
    toolchain = WritingToolchain()

    with pytest.raises(ValidationError, match="unrecognized architecture 'x86_64'"):
        resolve(
            [DEVICE, SIMULATOR_X86],
            toolchain,
            tmp_path / "work",
            options=ResolveOptions(allowed_architectures=("arm64",)),
        )

    assert toolchain.calls == []


def test_command_toolchain_missing_source_root(tmp_path):
    toolchain = CommandToolchain([sys.executable, "-c", "pass"], "{output_dir}/lib.a", source_root=tmp_path / "absent")

    with pytest.raises(BuildError, match="source root .* does not exist"):
        resolve([DEVICE], toolchain, tmp_path / "work")


@pytest.mark.skipif(not Path("/proc").is_dir(), reason="needs /proc to inspect process state")
def test_command_toolchain_timeout_stops_spawned_processes(tmp_path):
    pid_file = tmp_path / "grandchild.pid"
    script = (
        "import subprocess, sys, time; "
        "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)']); "
        f"open({str(pid_file)!r}, 'w').write(str(child.pid)); "
        "time.sleep(60)"
    )
    toolchain = CommandToolchain([sys.executable, "-c", script], "{output_dir}/lib.a", source_root=tmp_path, timeout_seconds=3)

    with pytest.raises(BuildError, match="timed out"):
        resolve([DEVICE], toolchain, tmp_path / "work")

    pid = int(pid_file.read_text(encoding="utf-8"))
    deadline = time.monotonic() + 5
    while time.monotonic() < deadline and _is_alive(pid):
        time.sleep(0.05)
    assert not _is_alive(pid)


def _is_alive(pid: int) -> bool:
    stat = Path(f"/proc/{pid}/stat")
    try:
        fields = stat.read_text(encoding="utf-8").rsplit(")", 1)[1].split()
    except (FileNotFoundError, ProcessLookupError):
        return False
    return fields[0] not in ("Z", "X")
