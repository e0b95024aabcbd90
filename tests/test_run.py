from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest
from rich.console import Console

from compiler_bench.cli import main
from compiler_bench.core.records import CompilerSpec
from compiler_bench.core.run import run_benchmark
from compiler_bench.core.timing import Measurement, ProtocolViolation

CONFIG = """
defaults: {start: 10, steps: 2, increment: 10, cooldown_s: 0}
compilers:
  - {language: C, extension: c, exe: failcc}
  - {language: C, extension: c, exe: okcc}
"""


class ScriptedTimer:
    measures_memory = True

    def __init__(self, violate: bool = False) -> None:
        self.violate = violate
        self.calls: list[tuple[str, int]] = []

    def measure(self, compiler: CompilerSpec, args: list[str], *, cwd: Path) -> Measurement:
        n = int(cwd.name)
        self.calls.append((compiler.exe, n))
        if self.violate and n == 20:
            raise ProtocolViolation("no RESULT line")
        if compiler.exe == "failcc":
            return Measurement(status="compile_error", message="exit code 1")
        return Measurement(status="ok", elapsed_s=n / 10.0, max_memory_kb=n * 100)


def _run(tmp_path: Path, timer: ScriptedTimer) -> dict:
    config = tmp_path / "compilers.yaml"
    config.write_text(CONFIG, encoding="utf-8")
    return run_benchmark(
        config_path=config,
        work_dir=tmp_path / "work",
        start=None,
        steps=None,
        increment=None,
        strategy=None,
        timeout_s=None,
        cooldown_s=None,
        skip_after_failure=None,
        cleanup=None,
        console=Console(file=io.StringIO()),
        timer=timer,
    )


def test_run_benchmark_writes_ongoing_and_final(tmp_path: Path) -> None:
    start_cwd = Path.cwd()
    timer = ScriptedTimer()
    result = _run(tmp_path, timer)

    assert Path.cwd() == start_cwd
    assert timer.calls == [("failcc", 10), ("okcc", 10), ("okcc", 20)]
    assert result["n_trials"] == 4
    assert result["n_failed"] == 2

    assert result["final_path"].read_text(encoding="utf-8").splitlines() == [
        "Number Functions, C (failcc []), C (okcc [])",
        "10, , 1.0",
        "20, , 2.0",
    ]
    assert result["memory_path"].read_text(encoding="utf-8").splitlines()[1:] == [
        "10, , 1000",
        "20, , 2000",
    ]
    ongoing = result["ongoing_path"].read_text(encoding="utf-8").splitlines()
    assert ongoing[0] == "Compiler, Number Functions, Time (seconds), Memory (KB)"
    assert len(ongoing) == 5

    work = tmp_path / "work"
    assert (work / "10" / "test_c_10.c").exists()
    assert list(work.glob("*_systemInfo.txt"))


def test_run_benchmark_keeps_streamed_rows_on_protocol_violation(tmp_path: Path) -> None:
    with pytest.raises(ProtocolViolation):
        _run(tmp_path, ScriptedTimer(violate=True))

    ongoing = list((tmp_path / "work").glob("*_ongoing.csv"))
    assert len(ongoing) == 1
    lines = ongoing[0].read_text(encoding="utf-8").splitlines()
    assert lines[1:] == [
        "C (failcc []), 10, , ",
        "C (okcc []), 10, 1.0, 1000",
        "C (failcc []), 20, , ",
    ]
    assert not list((tmp_path / "work").glob("*_final.csv"))


def test_cli_returns_nonzero_on_error(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    code = main(["run", "--config", str(tmp_path / "missing.yaml"), "--work-dir", str(tmp_path)])
    assert code == 1
    assert "FileNotFoundError" in capsys.readouterr().out


def test_cli_run_and_report_with_stopwatch(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    config = tmp_path / "compilers.yaml"
    config.write_text(
        "defaults: {start: 1, steps: 2, increment: 1, strategy: stopwatch, cooldown_s: 0}\n"
        "compilers:\n"
        f"  - {{language: C, extension: c, exe: '{sys.executable}', args: ['-c', 'pass']}}\n",
        encoding="utf-8",
    )

    assert main(["run", "--config", str(config), "--work-dir", str(tmp_path / "work")]) == 0

    ongoing = next((tmp_path / "work").glob("*_ongoing.csv"))
    out = tmp_path / "report.html"
    assert main(["report", "--in", str(ongoing), "--out", str(out)]) == 0
    assert out.exists()
