from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping


@dataclass(frozen=True, eq=False)
class CompilerSpec:
    language: str
    extension: str
    exe: str
    args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    version_args: tuple[str, ...] = ()
    project: str | None = None  # csproj|fsproj; written as CB.<project> next to the source
    prepare: tuple[str, ...] = ()  # run with the same exe before each trial, e.g. restore

    def __post_init__(self) -> None:
        for name in ("language", "extension", "exe"):
            if not str(getattr(self, name) or "").strip():
                raise ValueError(f"Compiler {name} is required")
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))
        object.__setattr__(self, "version_args", tuple(str(a) for a in self.version_args))
        object.__setattr__(self, "prepare", tuple(str(a) for a in self.prepare))
        object.__setattr__(self, "project", (self.project or "").strip().lstrip(".") or None)
        object.__setattr__(self, "env", dict(self.env))

    @property
    def args_text(self) -> str:
        # {project} is resolved so csproj and fsproj builds are distinct command lines.
        return " ".join(self._expand_project(a) for a in self.args)

    @property
    def cli_key(self) -> tuple[str, str]:
        # Identity is the command line only; language and env are not part of it.
        return (self.exe.lower(), self.args_text.lower())

    @property
    def label(self) -> str:
        return f"{self.language} ({self.exe} [{self.args_text}])"

    @property
    def project_file(self) -> str | None:
        return f"CB.{self.project}" if self.project else None

    def _expand_project(self, arg: str) -> str:
        return arg.replace("{project}", self.project_file) if self.project_file else arg

    def _expand(self, arg: str, source_name: str) -> str:
        return self._expand_project(arg.replace("{source}", source_name))

    def command_args(self, source_name: str) -> list[str]:
        expanded = [self._expand(a, source_name) for a in self.args]
        if any("{source}" in a or "{project}" in a for a in self.args):
            return expanded
        return [*expanded, source_name]

    def prepare_args(self, source_name: str) -> list[str]:
        return [self._expand(a, source_name) for a in self.prepare]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CompilerSpec):
            return NotImplemented
        return self.cli_key == other.cli_key

    def __hash__(self) -> int:
        return hash(self.cli_key)

    def __str__(self) -> str:
        return self.label


OK = "ok"
COMPILE_ERROR = "compile_error"
LAUNCH_ERROR = "launch_error"
TIMEOUT = "timeout"
SKIPPED = "skipped"

FAILURE_STATUSES = frozenset({COMPILE_ERROR, LAUNCH_ERROR, TIMEOUT, SKIPPED})


@dataclass(frozen=True)
class TrialOutcome:
    compiler: CompilerSpec
    num_functions: int
    status: str  # ok|compile_error|launch_error|timeout|skipped
    elapsed_s: float | None = None
    max_memory_kb: int | None = None
    message: str | None = None

    def __post_init__(self) -> None:
        if self.num_functions < 0:
            raise ValueError("num_functions must be >= 0")
        if self.status == OK:
            # A zero-length success means the clock could not be trusted.
            if self.elapsed_s is None or self.elapsed_s <= 0:
                raise ValueError(
                    f"Successful trial for {self.compiler.label} must have a positive elapsed time"
                )
        elif self.status in FAILURE_STATUSES:
            if self.max_memory_kb is not None:
                raise ValueError("Failed trials do not carry a memory figure")
        else:
            raise ValueError(f"Unknown trial status: {self.status}")

    @property
    def succeeded(self) -> bool:
        return self.status == OK

    @classmethod
    def success(
        cls,
        compiler: CompilerSpec,
        num_functions: int,
        elapsed_s: float,
        max_memory_kb: int | None = None,
        message: str | None = None,
    ) -> TrialOutcome:
        return cls(
            compiler=compiler,
            num_functions=num_functions,
            status=OK,
            elapsed_s=elapsed_s,
            max_memory_kb=max_memory_kb,
            message=message,
        )

    @classmethod
    def failure(
        cls,
        compiler: CompilerSpec,
        num_functions: int,
        status: str = COMPILE_ERROR,
        message: str | None = None,
    ) -> TrialOutcome:
        if status == OK:
            raise ValueError("failure() requires a failure status")
        return cls(
            compiler=compiler,
            num_functions=num_functions,
            status=status,
            message=message,
        )

