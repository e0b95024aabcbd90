from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol

from rich.console import Console

from compiler_bench.core.env import merged_environment
from compiler_bench.core.records import COMPILE_ERROR, LAUNCH_ERROR, OK, TIMEOUT, CompilerSpec

DEFAULT_WRAPPER_PATH = "/usr/bin/time"
DEFAULT_COOLDOWN_S = 2.5

# %x exit code, %e elapsed wall seconds, %M max resident set size (KB)
RESULT_FORMAT = "RESULT: %x %e %M"
RESULT_PREFIX = "RESULT:"

# Exit codes GNU time reports when the inner command is not executable / not found.
LAUNCH_EXIT_CODES = frozenset({126, 127})


class ProtocolViolation(RuntimeError):
    """The time wrapper ran but did not report a parseable RESULT line."""


@dataclass(frozen=True)
class Measurement:
    status: str  # ok|compile_error|launch_error|timeout
    elapsed_s: float | None = None
    max_memory_kb: int | None = None
    message: str | None = None
    output: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status == OK


class ProcessTimer(Protocol):
    measures_memory: bool

    def measure(self, compiler: CompilerSpec, args: list[str], *, cwd: Path) -> Measurement:
        ...


@dataclass(frozen=True)
class ProcessRun:
    returncode: int | None  # None when the process was killed on timeout
    lines: tuple[str, ...]
    wall_s: float

    @property
    def timed_out(self) -> bool:
        return self.returncode is None


def _popen_group_kwargs() -> dict[str, object]:
    if os.name == "nt":
        return {"creationflags": getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)}
    return {"start_new_session": True}


def _kill_process_group(proc: subprocess.Popen) -> None:
    # The wrapper (or a compiler driver) forks the real work; kill the whole group
    # so nothing keeps the output pipe open or overlaps the next trial.
    if os.name != "nt":
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(proc.pid, signal.SIGKILL)
    with contextlib.suppress(OSError):
        proc.kill()


def run_process(
    cmd: list[str],
    *,
    cwd: Path,
    env: Mapping[str, str],
    timeout_s: float | None,
) -> ProcessRun:
    """Run `cmd` in its own process group with stdout and stderr combined.

    Raises OSError when the executable cannot be launched.
    """
    t0 = time.perf_counter()
    proc = subprocess.Popen(
        cmd,
        cwd=str(cwd),
        env=merged_environment(env),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        errors="replace",
        **_popen_group_kwargs(),
    )
    try:
        out, _ = proc.communicate(timeout=timeout_s)
    except subprocess.TimeoutExpired:
        _kill_process_group(proc)
        out, _ = proc.communicate()
        return ProcessRun(None, tuple((out or "").splitlines()), time.perf_counter() - t0)
    except BaseException:
        # The group no longer receives the terminal's Ctrl-C, so take it down here.
        _kill_process_group(proc)
        proc.wait()
        raise
    return ProcessRun(proc.returncode, tuple((out or "").splitlines()), time.perf_counter() - t0)


def parse_result_line(line: str) -> tuple[int, float, int]:
    """Parse `RESULT: <exit> <seconds> <kb>` as printed by the time wrapper."""
    if not line.startswith(RESULT_PREFIX):
        raise ProtocolViolation(f"Not a result line: {line!r}")
    parts = line[len(RESULT_PREFIX):].split()
    if len(parts) < 3:
        raise ProtocolViolation(f"Malformed result line: {line!r}")
    try:
        return int(parts[0]), float(parts[1]), int(parts[2])
    except ValueError as e:
        raise ProtocolViolation(f"Malformed result line: {line!r}") from e


def find_result_line(lines: list[str] | tuple[str, ...]) -> str | None:
    # The compiler may print after the wrapper's line is buffered, so walk back.
    for line in reversed(lines):
        if line.startswith(RESULT_PREFIX):
            return line
    return None


def wrapper_available(wrapper_path: str = DEFAULT_WRAPPER_PATH) -> bool:
    if sys.platform.startswith("win"):
        return False
    p = Path(wrapper_path)
    return p.is_file() and os.access(p, os.X_OK)


class _BaseTimer:
    measures_memory = False

    def __init__(
        self,
        *,
        console: Console,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        timeout_s: float | None = None,
    ) -> None:
        self.console = console
        self.cooldown_s = cooldown_s
        self.timeout_s = timeout_s

    def _announce(self, cmd: list[str], compiler: CompilerSpec) -> None:
        text = f'"{" ".join(cmd)}"'
        for k, v in compiler.env.items():
            text += f' and {k}="{v}"'
        self.console.print(text, markup=False, highlight=False)

    def _fail(
        self,
        compiler: CompilerSpec,
        args: list[str],
        status: str,
        message: str,
        output: tuple[str, ...] = (),
    ) -> Measurement:
        self.console.print(
            f"  ! Compilation failed for '{compiler.exe} {' '.join(args)}' ({message})",
            markup=False,
            highlight=False,
        )
        if self.cooldown_s > 0:
            # Let a runaway compiler's memory pressure settle before the next trial.
            time.sleep(self.cooldown_s)
        return Measurement(status=status, message=message, output=output)


class TimeWrapperTimer(_BaseTimer):
    """Measures through `/usr/bin/time -f "RESULT: %x %e %M"`, including peak RSS."""

    measures_memory = True

    def __init__(
        self,
        *,
        console: Console,
        wrapper_path: str = DEFAULT_WRAPPER_PATH,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        timeout_s: float | None = None,
    ) -> None:
        super().__init__(console=console, cooldown_s=cooldown_s, timeout_s=timeout_s)
        self.wrapper_path = wrapper_path

    def measure(self, compiler: CompilerSpec, args: list[str], *, cwd: Path) -> Measurement:
        cmd = [self.wrapper_path, "-f", RESULT_FORMAT, compiler.exe, *args]
        self._announce(cmd, compiler)

        try:
            run = run_process(cmd, cwd=cwd, env=compiler.env, timeout_s=self.timeout_s)
        except OSError as e:
            return self._fail(compiler, args, LAUNCH_ERROR, f"could not launch: {e}")

        if run.timed_out:
            return self._fail(compiler, args, TIMEOUT, f"timed out after {self.timeout_s}s", run.lines)

        result_line = find_result_line(run.lines)
        if result_line is None:
            if run.returncode != 0:
                return self._fail(
                    compiler, args, LAUNCH_ERROR, f"wrapper exited with {run.returncode}", run.lines
                )
            joined = "\n".join(run.lines)
            raise ProtocolViolation(
                f"Result of {self.wrapper_path} not found in output of {{{joined}}}"
            )

        exit_code, elapsed_s, max_rss_kb = parse_result_line(result_line)
        if exit_code in LAUNCH_EXIT_CODES:
            message = f"{compiler.exe} could not be run (exit code {exit_code})"
            return self._fail(compiler, args, LAUNCH_ERROR, message, run.lines)
        if exit_code != 0 or run.returncode != 0:
            code = exit_code if exit_code != 0 else run.returncode
            return self._fail(compiler, args, COMPILE_ERROR, f"exit code {code}", run.lines)

        message = None
        if elapsed_s <= 0:
            # %e has 10 ms resolution; use the wall time observed around the wrapper instead.
            elapsed_s = run.wall_s
            message = "below wrapper resolution; wall time around the wrapper"
        self.console.print(f"  - Took {elapsed_s:.2f}s MRSS {max_rss_kb}")
        return Measurement(
            status=OK, elapsed_s=elapsed_s, max_memory_kb=max_rss_kb, message=message, output=run.lines
        )


class StopwatchTimer(_BaseTimer):
    """Measures wall time around the compiler process; no memory figure."""

    def measure(self, compiler: CompilerSpec, args: list[str], *, cwd: Path) -> Measurement:
        cmd = [compiler.exe, *args]
        self._announce(cmd, compiler)

        try:
            run = run_process(cmd, cwd=cwd, env=compiler.env, timeout_s=self.timeout_s)
        except OSError as e:
            return self._fail(compiler, args, LAUNCH_ERROR, f"could not launch: {e}")

        if run.timed_out:
            return self._fail(compiler, args, TIMEOUT, f"timed out after {self.timeout_s}s", run.lines)
        if run.returncode != 0:
            return self._fail(compiler, args, COMPILE_ERROR, f"exit code {run.returncode}", run.lines)

        self.console.print(f"  - Took {run.wall_s:.3f}s")
        return Measurement(status=OK, elapsed_s=run.wall_s, output=run.lines)


def select_timer(
    strategy: str = "auto",
    *,
    console: Console,
    wrapper_path: str = DEFAULT_WRAPPER_PATH,
    cooldown_s: float = DEFAULT_COOLDOWN_S,
    timeout_s: float | None = None,
) -> TimeWrapperTimer | StopwatchTimer:
    strategy = strategy.strip().lower()
    if strategy not in {"auto", "wrapper", "stopwatch"}:
        raise ValueError(f"Unknown timing strategy: {strategy}")

    if strategy == "wrapper" and not wrapper_available(wrapper_path):
        raise ValueError(f"Time wrapper not available: {wrapper_path}")

    if strategy == "wrapper" or (strategy == "auto" and wrapper_available(wrapper_path)):
        return TimeWrapperTimer(
            console=console,
            wrapper_path=wrapper_path,
            cooldown_s=cooldown_s,
            timeout_s=timeout_s,
        )
    return StopwatchTimer(console=console, cooldown_s=cooldown_s, timeout_s=timeout_s)
