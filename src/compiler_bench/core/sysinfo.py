from __future__ import annotations

import os
import platform
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from compiler_bench.core.env import merged_environment
from compiler_bench.core.records import CompilerSpec


@dataclass(frozen=True)
class SystemInfo:
    os: str
    cpu: str
    memory: str

    def render(self) -> str:
        return "\n\n".join([self.os, self.cpu, self.memory])


def find_system_info() -> SystemInfo:
    os_text = f"OS: {platform.system()} {platform.release()} ({platform.platform()})"
    cpu_text = f"CPU: {_cpu_model()} x{os.cpu_count() or 1}"
    mem_kb = _total_memory_kb()
    mem_text = f"Memory: {mem_kb} kB" if mem_kb is not None else "Memory: unknown"
    return SystemInfo(os=os_text, cpu=cpu_text, memory=mem_text)


def _cpu_model() -> str:
    cpuinfo = Path("/proc/cpuinfo")
    if cpuinfo.exists():
        for line in cpuinfo.read_text(encoding="utf-8", errors="replace").splitlines():
            if line.lower().startswith("model name"):
                return line.split(":", 1)[1].strip()
    return platform.processor() or platform.machine() or "unknown"


def _total_memory_kb() -> int | None:
    meminfo = Path("/proc/meminfo")
    if meminfo.exists():
        for line in meminfo.read_text(encoding="utf-8", errors="replace").splitlines():
            if line.startswith("MemTotal:"):
                return int(line.split()[1])
    try:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES") // 1024
    except (AttributeError, ValueError, OSError):
        return None


def probe_version(compiler: CompilerSpec, timeout_s: float = 60.0) -> str:
    if not compiler.version_args:
        return "unknown"
    try:
        proc = subprocess.run(
            [compiler.exe, *compiler.version_args],
            env=merged_environment(compiler.env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            timeout=timeout_s,
        )
    except (OSError, subprocess.TimeoutExpired):
        return "unknown"
    for line in (proc.stdout or "").splitlines():
        if line.strip():
            return line.strip()
    return "unknown"


def probe_versions(compilers: Iterable[CompilerSpec]) -> dict[str, str]:
    """First configured entry per executable wins."""
    versions: dict[str, str] = {}
    for c in compilers:
        if c.exe not in versions:
            versions[c.exe] = probe_version(c)
    return versions


def write_system_info(path: Path, info: SystemInfo, versions: dict[str, str]) -> bool:
    if path.exists():
        return False
    text = info.render()
    if versions:
        text += "\n\n" + "\n".join(f"{exe} ::: {v}" for exe, v in versions.items())
    path.write_text(text + "\n", encoding="utf-8")
    return True
