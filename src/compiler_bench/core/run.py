from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from tqdm import tqdm

from compiler_bench.core.codegen import SourceGenerator
from compiler_bench.core.config import load_benchmark_config
from compiler_bench.core.matrix import memory_cell, pivot_outcomes, write_matrix_csv
from compiler_bench.core.project import ProjectPreparer
from compiler_bench.core.records import TrialOutcome
from compiler_bench.core.sequencer import SourceWriter, Staircase, TrialSequencer
from compiler_bench.core.storage import OngoingLog
from compiler_bench.core.sysinfo import find_system_info, probe_versions, write_system_info
from compiler_bench.core.timing import ProcessTimer, select_timer
from compiler_bench.core.workdir import pushd, remove_if_exists


def default_work_dir() -> Path:
    return Path.home() / "testfiles"


def run_benchmark(
    *,
    config_path: Path,
    work_dir: Path | None,
    start: int | None,
    steps: int | None,
    increment: int | None,
    strategy: str | None,
    timeout_s: float | None,
    cooldown_s: float | None,
    skip_after_failure: bool | None,
    cleanup: bool | None,
    console: Console,
    timer: ProcessTimer | None = None,
    generator: SourceWriter | None = None,
) -> dict[str, Any]:
    cfg = load_benchmark_config(config_path)
    d = cfg.defaults

    staircase = Staircase(
        start=d.start if start is None else start,
        steps=d.steps if steps is None else steps,
        increment=d.increment if increment is None else increment,
    )

    if timer is None:
        timer = select_timer(
            strategy or d.strategy,
            console=console,
            wrapper_path=d.wrapper_path,
            cooldown_s=d.cooldown_s if cooldown_s is None else cooldown_s,
            timeout_s=d.timeout_s if timeout_s is None else timeout_s,
        )
    console.print(f"Timing with {type(timer).__name__}")

    versions = probe_versions(cfg.compilers)
    for exe, version in versions.items():
        console.print(f"Found compiler: {exe} ::: {version}", markup=False, highlight=False)
    console.print()

    root = (work_dir or default_work_dir()).expanduser().resolve()
    root.mkdir(parents=True, exist_ok=True)

    now = datetime.now()
    base = f"results_{now.strftime('%Y-%m-%d %H%M')}"
    outcomes: list[TrialOutcome] = []

    with pushd(root):
        write_system_info(Path(f"{now.strftime('%Y%m%d')}_systemInfo.txt"), find_system_info(), versions)

        ongoing_path = root / f"{base}_ongoing.csv"
        final_path = root / f"{base}_final.csv"
        memory_path = root / f"{base}_final_memory.csv"
        for p in (ongoing_path, final_path, memory_path):
            remove_if_exists(p)

        sequencer = TrialSequencer(
            cfg.compilers,
            timer=timer,
            generator=generator or SourceGenerator(),
            work_root=root,
            staircase=staircase,
            console=console,
            skip_after_failure=d.skip_after_failure if skip_after_failure is None else skip_after_failure,
            cleanup=d.cleanup if cleanup is None else cleanup,
            preparer=ProjectPreparer(
                console=console,
                framework=d.target_framework,
                timeout_s=d.timeout_s if timeout_s is None else timeout_s,
            ),
        )

        pbar = tqdm(total=sequencer.total_trials, unit="trial", desc="Benchmark", dynamic_ncols=True)
        try:
            with OngoingLog(ongoing_path, with_memory=timer.measures_memory) as log:
                for outcome in sequencer.run():
                    outcomes.append(outcome)
                    log.append(outcome)
                    pbar.set_postfix_str(f"{outcome.compiler.exe} n={outcome.num_functions}")
                    pbar.update(1)
        finally:
            pbar.close()

        written_memory: Path | None = None
        if outcomes:
            write_matrix_csv(pivot_outcomes(outcomes), final_path)
            console.print(f"Wrote benchmark results to {final_path}")
            if timer.measures_memory:
                written_memory = write_matrix_csv(pivot_outcomes(outcomes, memory_cell), memory_path)

    return {
        "ongoing_path": ongoing_path,
        "final_path": final_path if outcomes else None,
        "memory_path": written_memory,
        "n_trials": len(outcomes),
        "n_failed": sum(1 for o in outcomes if not o.succeeded),
    }
