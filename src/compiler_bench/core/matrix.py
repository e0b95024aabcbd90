from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from compiler_bench.core.records import CompilerSpec, TrialOutcome
from compiler_bench.core.storage import DELIMITER, format_memory, format_seconds

SIZE_COLUMN = "Number Functions"


@dataclass(frozen=True)
class ResultMatrix:
    header: list[str]
    rows: list[list[str]]


def elapsed_cell(outcome: TrialOutcome) -> str:
    return format_seconds(outcome.elapsed_s) if outcome.succeeded else ""


def memory_cell(outcome: TrialOutcome) -> str:
    return format_memory(outcome.max_memory_kb) if outcome.succeeded else ""


def pivot_outcomes(
    outcomes: Iterable[TrialOutcome],
    value: Callable[[TrialOutcome], str] = elapsed_cell,
) -> ResultMatrix:
    """One row per number of functions (ascending), one column per compiler.

    Columns follow the order in which compilers first appear. Cells for failed,
    skipped or missing trials are empty strings.
    """
    columns: list[CompilerSpec] = []
    seen: set[CompilerSpec] = set()
    by_size: dict[int, dict[CompilerSpec, TrialOutcome]] = {}

    for o in outcomes:
        if o.compiler not in seen:
            seen.add(o.compiler)
            columns.append(o.compiler)
        by_size.setdefault(o.num_functions, {})[o.compiler] = o

    header = [SIZE_COLUMN] + [c.label for c in columns]
    rows: list[list[str]] = []
    for n in sorted(by_size):
        cells = by_size[n]
        row = [str(n)]
        for c in columns:
            o = cells.get(c)
            row.append(value(o) if o is not None else "")
        rows.append(row)
    return ResultMatrix(header=header, rows=rows)


def render_matrix(matrix: ResultMatrix) -> str:
    lines = [DELIMITER.join(matrix.header)]
    lines += [DELIMITER.join(r) for r in matrix.rows]
    return "\n".join(lines)


def write_matrix_csv(matrix: ResultMatrix, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_matrix(matrix) + "\n", encoding="utf-8")
    return path
