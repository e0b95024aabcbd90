from __future__ import annotations

import argparse
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from compiler_bench.core.env import load_dotenv_if_present
from compiler_bench.core.run import run_benchmark
from compiler_bench.reporting.html_report import build_html_report


def _cmd_run(args: argparse.Namespace, console: Console) -> int:
    result = run_benchmark(
        config_path=Path(args.config),
        work_dir=Path(args.work_dir) if args.work_dir else None,
        start=args.start,
        steps=args.steps,
        increment=args.increment,
        strategy=args.strategy,
        timeout_s=args.timeout_s,
        cooldown_s=args.cooldown_s,
        skip_after_failure=args.skip_after_failure,
        cleanup=args.cleanup,
        console=console,
    )

    console.print(
        f"Ran {result['n_trials']} trials ({result['n_failed']} failed or skipped); "
        f"running log at {result['ongoing_path']}"
    )
    return 0


def _cmd_report(args: argparse.Namespace, console: Console) -> int:
    in_path = Path(args.input)
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    report = build_html_report(
        csv_path=in_path,
        out_html_path=out_path,
        console=console,
    )

    console.print(
        f"Wrote report to {out_path} (records={report['n_records']}, series={report['n_series']})"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    # Load .env early so toolchain PATH entries and JAVA_OPTS reach the compilers.
    load_dotenv_if_present()

    parser = argparse.ArgumentParser(prog="compiler-bench")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Benchmark compilers and write CSV results")
    p_run.add_argument("--config", required=True, help="Path to compilers YAML")
    p_run.add_argument(
        "--work-dir",
        default=None,
        help="Directory for generated sources and results (default: ~/testfiles)",
    )
    p_run.add_argument("--start", type=int, default=None, help="Functions in the first step")
    p_run.add_argument("--steps", type=int, default=None, help="Number of steps")
    p_run.add_argument("--increment", type=int, default=None, help="Functions added per step")
    p_run.add_argument(
        "--strategy",
        choices=["auto", "wrapper", "stopwatch"],
        default=None,
        help="How to time compilers; auto uses /usr/bin/time when available",
    )
    p_run.add_argument("--timeout-s", type=float, default=None)
    p_run.add_argument("--cooldown-s", type=float, default=None)
    p_run.add_argument(
        "--no-skip-after-failure",
        dest="skip_after_failure",
        action="store_const",
        const=False,
        default=None,
        help="Keep running a compiler at larger sizes after it failed",
    )
    p_run.add_argument(
        "--keep-artifacts",
        dest="cleanup",
        action="store_const",
        const=False,
        default=None,
        help="Do not delete build outputs between trials",
    )
    p_run.set_defaults(func=_cmd_run)

    p_report = sub.add_parser("report", help="Generate an interactive HTML report")
    p_report.add_argument("--in", dest="input", required=True, help="Running log CSV path")
    p_report.add_argument("--out", required=True, help="Output HTML path")
    p_report.set_defaults(func=_cmd_report)

    args = parser.parse_args(argv)
    console = Console()
    try:
        return int(args.func(args, console))
    except Exception as e:
        console.print(f"[red]error:[/red] {type(e).__name__}: {escape(str(e))}")
        return 1
