from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Protocol, Sequence

from rich.console import Console

from compiler_bench.core.project import ProjectPreparer, TrialPreparer
from compiler_bench.core.records import SKIPPED, CompilerSpec, TrialOutcome
from compiler_bench.core.timing import ProcessTimer
from compiler_bench.core.workdir import clean_directory, retention_pattern


class SourceWriter(Protocol):
    def generate(self, language: str, num_functions: int, path: Path) -> Path:
        ...


@dataclass(frozen=True)
class Staircase:
    start: int
    steps: int
    increment: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.steps < 0 or self.increment < 0:
            raise ValueError("start, steps and increment must be >= 0")
        if self.increment == 0 and self.steps > 1:
            # Every step would be the same size and each trial would run more than once.
            raise ValueError("increment must be > 0 when steps > 1")

    def sizes(self) -> list[int]:
        return [self.start + i * self.increment for i in range(self.steps)]


def group_by_language(compilers: Sequence[CompilerSpec]) -> list[tuple[str, list[CompilerSpec]]]:
    groups: dict[str, list[CompilerSpec]] = {}
    for c in compilers:
        groups.setdefault(c.language, []).append(c)
    return list(groups.items())


def source_file_name(extension: str, num_functions: int) -> str:
    ext = extension.lstrip(".")
    return f"test_{ext}_{num_functions}.{ext}"


class TrialSequencer:
    """Walks every language's size staircase and times each compiler on it.

    Sizes are visited in ascending order per language. Once a compiler fails
    at some size it is not run again for larger sizes (when
    `skip_after_failure` is on); a `skipped` outcome is reported instead.
    """

    def __init__(
        self,
        compilers: Sequence[CompilerSpec],
        *,
        timer: ProcessTimer,
        generator: SourceWriter,
        work_root: Path,
        staircase: Staircase,
        console: Console,
        skip_after_failure: bool = True,
        cleanup: bool = True,
        preparer: TrialPreparer | None = None,
    ) -> None:
        self.compilers = list(compilers)
        self.timer = timer
        self.generator = generator
        self.work_root = work_root
        self.staircase = staircase
        self.console = console
        self.skip_after_failure = skip_after_failure
        self.cleanup = cleanup
        self.preparer = preparer or ProjectPreparer(console=console)
        self.failed: set[CompilerSpec] = set()
        self._keep = retention_pattern(c.extension for c in self.compilers)

    @property
    def total_trials(self) -> int:
        return len(self.compilers) * self.staircase.steps

    def run(self) -> Iterator[TrialOutcome]:
        for language, group in group_by_language(self.compilers):
            self.console.print(f"Benchmarking {language}:", markup=False)
            ext = group[0].extension
            for n in self.staircase.sizes():
                size_dir = self.work_root / str(n)
                size_dir.mkdir(parents=True, exist_ok=True)
                source = size_dir / source_file_name(ext, n)

                self.console.print(f"- Generating {language} with {n} functions", markup=False)
                self.generator.generate(language, n, source)

                for compiler in group:
                    yield self._run_trial(compiler, n, source, size_dir)

    def _run_trial(
        self, compiler: CompilerSpec, n: int, source: Path, size_dir: Path
    ) -> TrialOutcome:
        if self.skip_after_failure and compiler in self.failed:
            return TrialOutcome.failure(
                compiler, n, status=SKIPPED, message="failed at a smaller size"
            )

        m = self.preparer.prepare(compiler, source)
        if m is None:
            self.console.print(f"  - Running with {n}: ", end="", markup=False)
            m = self.timer.measure(compiler, compiler.command_args(source.name), cwd=size_dir)

        if self.cleanup:
            clean_directory(size_dir, self._keep)

        if not m.ok:
            self.failed.add(compiler)
            return TrialOutcome.failure(compiler, n, status=m.status, message=m.message)
        return TrialOutcome.success(compiler, n, m.elapsed_s, m.max_memory_kb, message=m.message)
