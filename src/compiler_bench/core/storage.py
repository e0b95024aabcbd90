from __future__ import annotations

from pathlib import Path
from types import TracebackType
from typing import Iterator, TextIO

from compiler_bench.core.records import TrialOutcome

DELIMITER = ", "
ONGOING_HEADER = ["Compiler", "Number Functions", "Time (seconds)"]
MEMORY_HEADER = "Memory (KB)"


def format_seconds(value: float | None) -> str:
    if value is None:
        return ""
    return str(round(value, 3))


def format_memory(value: int | None) -> str:
    return "" if value is None else str(value)


class OngoingLog:
    """Append-only running log; one line per trial, flushed as it is written."""

    def __init__(self, path: Path, *, with_memory: bool) -> None:
        self.path = path
        self.with_memory = with_memory
        self._f: TextIO | None = None
        self.n_written = 0

    def __enter__(self) -> OngoingLog:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._f = self.path.open("a", encoding="utf-8", newline="\n")
        header = list(ONGOING_HEADER)
        if self.with_memory:
            header.append(MEMORY_HEADER)
        self._write(DELIMITER.join(header))
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._f is not None:
            self._f.flush()
            self._f.close()
            self._f = None

    def append(self, outcome: TrialOutcome) -> None:
        row = [
            outcome.compiler.label,
            str(outcome.num_functions),
            format_seconds(outcome.elapsed_s) if outcome.succeeded else "",
        ]
        if self.with_memory:
            row.append(format_memory(outcome.max_memory_kb))
        self._write(DELIMITER.join(row))
        self.n_written += 1

    def _write(self, line: str) -> None:
        if self._f is None:
            raise RuntimeError("OngoingLog is not open")
        self._f.write(line + "\n")
        self._f.flush()


def read_ongoing_csv(path: Path) -> Iterator[dict[str, str]]:
    with path.open("r", encoding="utf-8") as f:
        header: list[str] | None = None
        for line in f:
            line = line.rstrip("\n")
            if not line.strip():
                continue
            cells = [c.strip() for c in line.split(",")]
            if header is None:
                header = cells
                continue
            # Labels never contain commas, but be tolerant of short rows.
            cells += [""] * (len(header) - len(cells))
            yield dict(zip(header, cells))
