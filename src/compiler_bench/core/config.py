from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from compiler_bench.core.project import DEFAULT_TARGET_FRAMEWORK, PROJECT_TEMPLATES
from compiler_bench.core.records import CompilerSpec
from compiler_bench.core.timing import DEFAULT_COOLDOWN_S, DEFAULT_WRAPPER_PATH


@dataclass(frozen=True)
class BenchmarkDefaults:
    start: int
    steps: int
    increment: int
    strategy: str
    wrapper_path: str
    timeout_s: float | None
    cooldown_s: float
    skip_after_failure: bool
    cleanup: bool
    target_framework: str = DEFAULT_TARGET_FRAMEWORK


@dataclass(frozen=True)
class BenchmarkConfig:
    defaults: BenchmarkDefaults
    compilers: list[CompilerSpec]


def load_benchmark_config(path: Path) -> BenchmarkConfig:
    if not path.exists():
        raise FileNotFoundError(f"config not found: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Config file must be a YAML mapping")

    d = raw.get("defaults") or {}
    if not isinstance(d, dict):
        raise ValueError("defaults must be a mapping")
    timeout_raw = d.get("timeout_s")
    defaults = BenchmarkDefaults(
        start=int(d.get("start", 5000)),
        steps=int(d.get("steps", 5)),
        increment=int(d.get("increment", 5000)),
        strategy=str(d.get("strategy", "auto")),
        wrapper_path=str(d.get("wrapper_path", DEFAULT_WRAPPER_PATH)),
        timeout_s=float(timeout_raw) if timeout_raw is not None else None,
        cooldown_s=float(d.get("cooldown_s", DEFAULT_COOLDOWN_S)),
        skip_after_failure=bool(d.get("skip_after_failure", True)),
        cleanup=bool(d.get("cleanup", True)),
        target_framework=str(d.get("target_framework", DEFAULT_TARGET_FRAMEWORK)),
    )

    entries = raw.get("compilers")
    if not isinstance(entries, list) or not entries:
        raise ValueError("compilers must be a non-empty list")

    compilers: list[CompilerSpec] = []
    for idx, entry in enumerate(entries):
        spec = _parse_compiler(entry, idx)
        if spec in compilers:
            # Same command line already configured; first one wins.
            continue
        compilers.append(spec)

    return BenchmarkConfig(defaults=defaults, compilers=compilers)


def _parse_compiler(entry: Any, idx: int) -> CompilerSpec:
    if not isinstance(entry, dict):
        raise ValueError(f"compilers[{idx}] must be a mapping")
    env = entry.get("env") or {}
    if not isinstance(env, dict):
        raise ValueError(f"compilers[{idx}].env must be a mapping")
    project = str(entry.get("project") or "").strip().lstrip(".") or None
    if project is not None and project not in PROJECT_TEMPLATES:
        raise ValueError(f"compilers[{idx}].project must be one of {sorted(PROJECT_TEMPLATES)}")
    try:
        return CompilerSpec(
            language=str(entry.get("language") or ""),
            extension=str(entry.get("extension") or "").lstrip("."),
            exe=str(entry.get("exe") or ""),
            args=tuple(_parse_args(entry.get("args"))),
            env={str(k): str(v) for k, v in env.items()},
            version_args=tuple(_parse_args(entry.get("version_args"))),
            project=project,
            prepare=tuple(_parse_args(entry.get("prepare"))),
        )
    except ValueError as e:
        raise ValueError(f"compilers[{idx}]: {e}") from e


def _parse_args(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list):
        return [str(x) for x in value]
    raise ValueError("Expected args to be a list or a whitespace-separated string")
