from __future__ import annotations

import io
from pathlib import Path

import pytest
from rich.console import Console

from compiler_bench.core.records import CompilerSpec, TrialOutcome
from compiler_bench.core.storage import OngoingLog
from compiler_bench.reporting.html_report import build_html_report

GCC = CompilerSpec(language="C", extension="c", exe="gcc")
CLANG = CompilerSpec(language="C", extension="c", exe="clang")


def test_build_html_report(tmp_path: Path) -> None:
    csv_path = tmp_path / "results_ongoing.csv"
    with OngoingLog(csv_path, with_memory=True) as log:
        log.append(TrialOutcome.success(GCC, 10, 1.0, 2048))
        log.append(TrialOutcome.success(CLANG, 10, 0.8, 1024))
        log.append(TrialOutcome.success(GCC, 20, 2.0, 4096))
        log.append(TrialOutcome.failure(CLANG, 20))

    out = tmp_path / "report.html"
    report = build_html_report(csv_path=csv_path, out_html_path=out, console=Console(file=io.StringIO()))

    assert report == {"n_records": 4, "n_series": 2}
    html = out.read_text(encoding="utf-8")
    assert "compiler-bench report" in html
    assert "Peak memory" in html
    assert "Failed or skipped: 1" in html


def test_build_html_report_without_memory(tmp_path: Path) -> None:
    csv_path = tmp_path / "results_ongoing.csv"
    with OngoingLog(csv_path, with_memory=False) as log:
        log.append(TrialOutcome.success(GCC, 10, 1.0))

    out = tmp_path / "report.html"
    build_html_report(csv_path=csv_path, out_html_path=out, console=Console(file=io.StringIO()))

    assert "Peak memory" not in out.read_text(encoding="utf-8")


def test_build_html_report_empty(tmp_path: Path) -> None:
    csv_path = tmp_path / "empty.csv"
    csv_path.write_text("Compiler, Number Functions, Time (seconds)\n", encoding="utf-8")
    with pytest.raises(ValueError, match="No records"):
        build_html_report(
            csv_path=csv_path, out_html_path=tmp_path / "r.html", console=Console(file=io.StringIO())
        )
