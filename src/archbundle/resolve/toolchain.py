"""External toolchain adapters that turn one build target into one static library."""

from __future__ import annotations

import contextlib
import logging
import os
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Mapping, Protocol, Sequence

from archbundle.errors import BuildError
from archbundle.models import BuildTarget

LOGGER = logging.getLogger(__name__)

TOOLCHAIN_LOG_FILE = "toolchain.log"
LOG_TAIL_LINES = 20


class Toolchain(Protocol):
    def build(self, target: BuildTarget, output_dir: Path, cancel_event: threading.Event) -> Path:
        """Build ``target`` and return the path of the produced static library."""


def _log_tail(log_path: Path, lines: int = LOG_TAIL_LINES) -> str:
    """Return the last lines of a toolchain log for error messages."""

    if not log_path.exists():
        return ""
    text = log_path.read_text(encoding="utf-8", errors="replace")
    tail = [line for line in text.splitlines() if line.strip()][-lines:]
    return "\n".join(tail)


def _signal_group(proc: subprocess.Popen[bytes], signum: int) -> None:
    with contextlib.suppress(ProcessLookupError):
        os.killpg(proc.pid, signum)


def _terminate(proc: subprocess.Popen[bytes], grace_seconds: float = 5.0) -> None:
    """Stop the child's whole process group, escalating to SIGKILL.

    The child runs in its own session, so compiler processes it spawned are
    signalled too.
    """

    _signal_group(proc, signal.SIGTERM)
    try:
        proc.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        _signal_group(proc, signal.SIGKILL)
        proc.wait()
        return
    # Descendants that ignored SIGTERM outlive the group leader.
    _signal_group(proc, signal.SIGKILL)


class CommandToolchain:
    """Run a templated command line per target and pick up its output file.

    Command arguments and the output path are ``str.format`` templates. The
    available placeholders are ``architecture``, ``platform``, ``variant``,
    ``min_os_version``, ``slice_id``, ``triple``, ``source_root`` and
    ``output_dir`` plus any extra ``variables``. ``triple`` comes from the
    ``triples`` table keyed by slice id and falls back to the slice id.
    """

    def __init__(
        self,
        command: Sequence[str],
        output_path: str,
        *,
        source_root: Path,
        triples: Mapping[str, str] | None = None,
        variables: Mapping[str, str] | None = None,
        min_os_env: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout_seconds: float | None = None,
        poll_interval: float = 0.1,
        logger: logging.Logger | None = None,
    ) -> None:
        if not command:
            raise ValueError("toolchain command must not be empty")
        self.command = list(command)
        self.output_path = output_path
        self.source_root = source_root
        self.triples = dict(triples or {})
        self.variables = dict(variables or {})
        self.min_os_env = min_os_env
        self.env = dict(env or {})
        self.timeout_seconds = timeout_seconds
        self.poll_interval = poll_interval
        self.logger = logger or LOGGER

    def template_values(self, target: BuildTarget, output_dir: Path) -> dict[str, str]:
        values = dict(self.variables)
        values.update(
            {
                "architecture": target.architecture,
                "platform": target.platform.value,
                "variant": target.variant or "",
                "min_os_version": target.min_os_version or "",
                "slice_id": target.slice_id,
                "triple": self.triples.get(target.slice_id, target.slice_id),
                "source_root": str(self.source_root),
                "output_dir": str(output_dir),
            }
        )
        return values

    def render(self, target: BuildTarget, output_dir: Path) -> tuple[list[str], Path, dict[str, str]]:
        """Render argv, expected output path and child environment for one target."""

        values = self.template_values(target, output_dir)
        try:
            argv = [part.format_map(values) for part in self.command]
            output = Path(self.output_path.format_map(values))
            extra_env = {key: value.format_map(values) for key, value in self.env.items()}
        except KeyError as exc:
            raise BuildError(target, f"unknown toolchain placeholder {exc}") from exc
        if not output.is_absolute():
            output = self.source_root / output

        env = dict(os.environ)
        env.update(extra_env)
        if self.min_os_env and target.min_os_version:
            env[self.min_os_env] = target.min_os_version
        return argv, output, env

    def build(self, target: BuildTarget, output_dir: Path, cancel_event: threading.Event) -> Path:
        argv, expected_output, env = self.render(target, output_dir)
        if not self.source_root.is_dir():
            raise BuildError(target, f"source root {self.source_root} does not exist")
        output_dir.mkdir(parents=True, exist_ok=True)
        log_path = output_dir / TOOLCHAIN_LOG_FILE

        self.logger.info("toolchain.start target=%s argv=%s", target.describe(), " ".join(argv))
        started = time.monotonic()
        deadline = None if self.timeout_seconds is None else started + self.timeout_seconds

        with log_path.open("wb") as log_handle:
            try:
                proc = subprocess.Popen(
                    argv,
                    cwd=str(self.source_root),
                    env=env,
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
            except FileNotFoundError as exc:
                raise BuildError(target, f"toolchain executable not found: {argv[0]}") from exc
            except OSError as exc:
                raise BuildError(target, f"toolchain could not be started: {exc}") from exc

            while True:
                try:
                    return_code = proc.wait(timeout=self.poll_interval)
                    break
                except subprocess.TimeoutExpired:
                    if cancel_event.is_set():
                        _terminate(proc)
                        raise BuildError(target, "cancelled after a sibling build failed") from None
                    if deadline is not None and time.monotonic() >= deadline:
                        _terminate(proc)
                        raise BuildError(target, f"timed out after {self.timeout_seconds:g}s") from None

        elapsed = time.monotonic() - started
        if return_code != 0:
            tail = _log_tail(log_path)
            cause = f"toolchain exited with status {return_code}"
            if tail:
                cause = f"{cause}\n{tail}"
            raise BuildError(target, cause)
        if not expected_output.is_file():
            raise BuildError(target, f"expected output {expected_output} was not produced")

        self.logger.info(
            "toolchain.done target=%s output=%s elapsed_s=%.2f",
            target.describe(),
            expected_output,
            elapsed,
        )
        return expected_output
