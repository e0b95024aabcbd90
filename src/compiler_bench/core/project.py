from __future__ import annotations

from pathlib import Path
from typing import Protocol

from rich.console import Console

from compiler_bench.core.records import COMPILE_ERROR, LAUNCH_ERROR, CompilerSpec
from compiler_bench.core.timing import Measurement, run_process

DEFAULT_TARGET_FRAMEWORK = "net8.0"

# MSBuild project files for compilers that build a project rather than a single source.
# A csproj picks up every *.cs in its directory; an fsproj must list its sources.
PROJECT_TEMPLATES = {
    "csproj": (
        '<Project Sdk="Microsoft.NET.Sdk"><PropertyGroup><OutputType>Exe</OutputType>'
        "<TargetFramework>{framework}</TargetFramework></PropertyGroup></Project>"
    ),
    "fsproj": (
        '<Project Sdk="Microsoft.NET.Sdk"><PropertyGroup><OutputType>Exe</OutputType>'
        "<TargetFramework>{framework}</TargetFramework></PropertyGroup>"
        '<ItemGroup><Compile Include="{source}" /></ItemGroup></Project>'
    ),
}


class TrialPreparer(Protocol):
    def prepare(self, compiler: CompilerSpec, source: Path) -> Measurement | None:
        ...


def render_project(kind: str, source_name: str, framework: str = DEFAULT_TARGET_FRAMEWORK) -> str:
    try:
        template = PROJECT_TEMPLATES[kind]
    except KeyError:
        raise ValueError(f"Unknown project kind: {kind} (expected one of {sorted(PROJECT_TEMPLATES)})") from None
    return template.format(framework=framework, source=source_name)


def write_project_file(
    compiler: CompilerSpec, source: Path, framework: str = DEFAULT_TARGET_FRAMEWORK
) -> Path | None:
    """Write `CB.<kind>` next to `source`; returns None for compilers without a project."""
    if not compiler.project_file:
        return None
    path = source.parent / compiler.project_file
    path.write_text(render_project(compiler.project, source.name, framework), encoding="utf-8")
    return path


class ProjectPreparer:
    """Writes the project file and runs the untimed prepare step (e.g. `dotnet restore`).

    `prepare` returns None when the trial may be timed, or a failed
    `Measurement` describing why it cannot.
    """

    def __init__(
        self,
        *,
        console: Console,
        framework: str = DEFAULT_TARGET_FRAMEWORK,
        timeout_s: float | None = None,
    ) -> None:
        self.console = console
        self.framework = framework
        self.timeout_s = timeout_s

    def prepare(self, compiler: CompilerSpec, source: Path) -> Measurement | None:
        write_project_file(compiler, source, self.framework)
        if not compiler.prepare:
            return None

        args = compiler.prepare_args(source.name)
        try:
            run = run_process(
                [compiler.exe, *args], cwd=source.parent, env=compiler.env, timeout_s=self.timeout_s
            )
        except OSError as e:
            return self._fail(compiler, LAUNCH_ERROR, f"could not launch prepare step: {e}")

        if run.timed_out:
            return self._fail(compiler, COMPILE_ERROR, f"prepare step timed out after {self.timeout_s}s", run.lines)
        if run.returncode != 0:
            return self._fail(
                compiler, COMPILE_ERROR, f"prepare step '{' '.join(args)}' exited with {run.returncode}", run.lines
            )
        return None

    def _fail(
        self, compiler: CompilerSpec, status: str, message: str, output: tuple[str, ...] = ()
    ) -> Measurement:
        self.console.print(f"  ! Compilation failed for '{compiler.exe}' ({message})", markup=False, highlight=False)
        return Measurement(status=status, message=message, output=output)
