from __future__ import annotations

import sys
from pathlib import Path

from compiler_bench.core.records import CompilerSpec
from compiler_bench.core.sysinfo import (
    SystemInfo,
    find_system_info,
    probe_version,
    probe_versions,
    write_system_info,
)


def test_find_system_info_has_three_blocks() -> None:
    info = find_system_info()
    assert info.os.startswith("OS: ")
    assert info.cpu.startswith("CPU: ")
    assert info.memory.startswith("Memory: ")
    assert info.render().count("\n\n") == 2


def test_probe_version_reads_first_line() -> None:
    py = CompilerSpec(language="Py", extension="py", exe=sys.executable, version_args=("--version",))
    assert probe_version(py).startswith("Python ")


def test_probe_version_unknown_without_args_or_binary(tmp_path: Path) -> None:
    assert probe_version(CompilerSpec(language="C", extension="c", exe="gcc")) == "unknown"
    missing = CompilerSpec(
        language="C", extension="c", exe=str(tmp_path / "nope"), version_args=("--version",)
    )
    assert probe_version(missing) == "unknown"


def test_probe_versions_once_per_executable() -> None:
    a = CompilerSpec(language="C", extension="c", exe="cc-a")
    b = CompilerSpec(language="C", extension="c", exe="cc-a", args=("-O2",))
    assert probe_versions([a, b]) == {"cc-a": "unknown"}


def test_write_system_info_only_once(tmp_path: Path) -> None:
    path = tmp_path / "20240101_systemInfo.txt"
    info = SystemInfo(os="OS: x", cpu="CPU: y", memory="Memory: z")

    assert write_system_info(path, info, {"gcc": "gcc 13.2"}) is True
    assert path.read_text(encoding="utf-8") == "OS: x\n\nCPU: y\n\nMemory: z\n\ngcc ::: gcc 13.2\n"
    assert write_system_info(path, SystemInfo(os="a", cpu="b", memory="c"), {}) is False
    assert "OS: x" in path.read_text(encoding="utf-8")
