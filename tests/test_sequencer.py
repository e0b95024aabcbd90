from __future__ import annotations

import io
from pathlib import Path

import pytest
from rich.console import Console

from compiler_bench.core.records import CompilerSpec
from compiler_bench.core.sequencer import Staircase, TrialSequencer, group_by_language
from compiler_bench.core.timing import Measurement, ProtocolViolation

CSHARP = CompilerSpec(
    language="CSharp",
    extension="cs",
    exe="dotnet",
    args=("build", "--no-restore", "{project}"),
    project="csproj",
    prepare=("restore", "{project}"),
)
FSHARP = CompilerSpec(
    language="FSharp", extension="fs", exe="dotnet", args=("build", "-c", "release", "{project}"), project="fsproj"
)


class FakeTimer:
    measures_memory = True

    def __init__(self, fail_from: dict[str, int] | None = None, violate_at: int | None = None) -> None:
        # exe -> smallest size at which that compiler fails
        self.fail_from = fail_from or {}
        self.violate_at = violate_at
        self.calls: list[tuple[str, int, list[str]]] = []

    def measure(self, compiler: CompilerSpec, args: list[str], *, cwd: Path) -> Measurement:
        n = int(cwd.name)
        self.calls.append((compiler.exe, n, args))
        (cwd / "a.out").write_text("binary", encoding="utf-8")
        if self.violate_at is not None and n >= self.violate_at:
            raise ProtocolViolation("no RESULT line")
        limit = self.fail_from.get(compiler.exe)
        if limit is not None and n >= limit:
            return Measurement(status="compile_error", message="exit code 1")
        return Measurement(status="ok", elapsed_s=0.1 + n / 1000.0, max_memory_kb=1000 + n)


class FakePreparer:
    def __init__(self, fail_at: int | None = None) -> None:
        self.fail_at = fail_at
        self.calls: list[tuple[str, int]] = []

    def prepare(self, compiler: CompilerSpec, source: Path) -> Measurement | None:
        n = int(source.parent.name)
        self.calls.append((compiler.exe, n))
        if self.fail_at is not None and n >= self.fail_at:
            return Measurement(status="compile_error", message="prepare step 'restore CB.csproj' exited with 1")
        return None


class FakeGenerator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int, Path]] = []

    def generate(self, language: str, num_functions: int, path: Path) -> Path:
        self.calls.append((language, num_functions, path))
        if not path.exists():
            path.write_text(f"// {language} {num_functions}\n", encoding="utf-8")
        return path


C_GCC = CompilerSpec(language="C", extension="c", exe="gcc")
C_CLANG = CompilerSpec(language="C", extension="c", exe="clang")
RUST = CompilerSpec(language="Rust", extension="rs", exe="rustc")


def _sequencer(tmp_path: Path, timer: FakeTimer, generator: FakeGenerator, **kwargs) -> TrialSequencer:
    return TrialSequencer(
        kwargs.pop("compilers", [C_GCC, C_CLANG, RUST]),
        timer=timer,
        generator=generator,
        work_root=tmp_path,
        staircase=kwargs.pop("staircase", Staircase(start=10, steps=4, increment=10)),
        console=Console(file=io.StringIO()),
        **kwargs,
    )


def test_staircase_sizes() -> None:
    assert Staircase(start=5000, steps=5, increment=5000).sizes() == [5000, 10000, 15000, 20000, 25000]
    assert Staircase(start=5, steps=1, increment=0).sizes() == [5]
    assert Staircase(start=1, steps=0, increment=1).sizes() == []
    with pytest.raises(ValueError):
        Staircase(start=-1, steps=1, increment=1)


def test_staircase_rejects_repeated_sizes() -> None:
    with pytest.raises(ValueError, match="increment must be > 0"):
        Staircase(start=5, steps=2, increment=0)


def test_group_by_language_keeps_configured_order() -> None:
    groups = group_by_language([RUST, C_GCC, C_CLANG])
    assert [lang for lang, _ in groups] == ["Rust", "C"]
    assert groups[1][1] == [C_GCC, C_CLANG]


def test_failed_compiler_is_never_rerun_at_larger_sizes(tmp_path: Path) -> None:
    timer = FakeTimer(fail_from={"gcc": 20})
    seq = _sequencer(tmp_path, timer, FakeGenerator())
    outcomes = list(seq.run())

    gcc_calls = [n for exe, n, _ in timer.calls if exe == "gcc"]
    assert gcc_calls == [10, 20]

    gcc = [o for o in outcomes if o.compiler == C_GCC]
    assert [o.status for o in gcc] == ["ok", "compile_error", "skipped", "skipped"]
    assert seq.failed == {C_GCC}


def test_skip_policy_can_be_disabled(tmp_path: Path) -> None:
    timer = FakeTimer(fail_from={"gcc": 20})
    outcomes = list(_sequencer(tmp_path, timer, FakeGenerator(), skip_after_failure=False).run())

    assert [n for exe, n, _ in timer.calls if exe == "gcc"] == [10, 20, 30, 40]
    assert "skipped" not in {o.status for o in outcomes}


def test_sizes_ascend_within_each_language(tmp_path: Path) -> None:
    timer = FakeTimer()
    outcomes = list(_sequencer(tmp_path, timer, FakeGenerator()).run())

    assert len(outcomes) == 12
    for spec in (C_GCC, C_CLANG, RUST):
        sizes = [o.num_functions for o in outcomes if o.compiler == spec]
        assert sizes == [10, 20, 30, 40]
    # Languages run one after another, not interleaved.
    assert [o.compiler.language for o in outcomes] == ["C"] * 8 + ["Rust"] * 4


def test_source_generated_once_per_language_and_size(tmp_path: Path) -> None:
    gen = FakeGenerator()
    timer = FakeTimer()
    list(_sequencer(tmp_path, timer, gen).run())

    assert [(lang, n) for lang, n, _ in gen.calls] == [
        ("C", 10), ("C", 20), ("C", 30), ("C", 40),
        ("Rust", 10), ("Rust", 20), ("Rust", 30), ("Rust", 40),
    ]
    assert gen.calls[0][2] == tmp_path / "10" / "test_c_10.c"
    # gcc and clang compile the same file
    c10_args = [args for exe, n, args in timer.calls if n == 10 and exe in {"gcc", "clang"}]
    assert c10_args == [["test_c_10.c"], ["test_c_10.c"]]


def test_cleanup_keeps_sources_and_removes_artifacts(tmp_path: Path) -> None:
    staircase = Staircase(start=10, steps=1, increment=0)
    list(_sequencer(tmp_path, FakeTimer(), FakeGenerator(), staircase=staircase).run())

    remaining = sorted(p.name for p in (tmp_path / "10").iterdir())
    assert remaining == ["test_c_10.c", "test_rs_10.rs"]


def test_keep_artifacts(tmp_path: Path) -> None:
    staircase = Staircase(start=10, steps=1, increment=0)
    list(_sequencer(tmp_path, FakeTimer(), FakeGenerator(), staircase=staircase, cleanup=False).run())

    assert (tmp_path / "10" / "a.out").exists()


def test_protocol_violation_aborts_the_run(tmp_path: Path) -> None:
    timer = FakeTimer(violate_at=20)
    seen = []
    with pytest.raises(ProtocolViolation):
        for o in _sequencer(tmp_path, timer, FakeGenerator()).run():
            seen.append(o)

    # Everything before the violation was already streamed.
    assert [(o.compiler.exe, o.num_functions) for o in seen] == [("gcc", 10), ("clang", 10)]


def test_total_trials(tmp_path: Path) -> None:
    seq = _sequencer(tmp_path, FakeTimer(), FakeGenerator())
    assert seq.total_trials == 12


def test_failed_prepare_step_is_a_failure_and_skips_the_timer(tmp_path: Path) -> None:
    timer = FakeTimer()
    preparer = FakePreparer(fail_at=20)
    seq = _sequencer(tmp_path, timer, FakeGenerator(), compilers=[CSHARP], preparer=preparer)

    outcomes = list(seq.run())

    assert [(o.num_functions, o.status) for o in outcomes] == [
        (10, "ok"),
        (20, "compile_error"),
        (30, "skipped"),
        (40, "skipped"),
    ]
    assert "restore" in outcomes[1].message
    assert [n for _, n, _ in timer.calls] == [10]
    assert preparer.calls == [("dotnet", 10), ("dotnet", 20)]
    assert CSHARP in seq.failed


def test_project_file_is_written_and_built_instead_of_the_source(tmp_path: Path) -> None:
    timer = FakeTimer()
    staircase = Staircase(start=10, steps=1, increment=0)
    seq = _sequencer(tmp_path, timer, FakeGenerator(), compilers=[FSHARP], staircase=staircase, cleanup=False)

    [outcome] = list(seq.run())

    assert outcome.succeeded
    assert timer.calls == [("dotnet", 10, ["build", "-c", "release", "CB.fsproj"])]
    project = (tmp_path / "10" / "CB.fsproj").read_text(encoding="utf-8")
    assert '<Compile Include="test_fs_10.fs" />' in project


def test_success_keeps_the_timer_message(tmp_path: Path) -> None:
    class CoarseTimer(FakeTimer):
        def measure(self, compiler: CompilerSpec, args: list[str], *, cwd: Path) -> Measurement:
            return Measurement(status="ok", elapsed_s=0.004, message="below wrapper resolution")

    staircase = Staircase(start=10, steps=1, increment=0)
    [outcome] = list(_sequencer(tmp_path, CoarseTimer(), FakeGenerator(), compilers=[C_GCC], staircase=staircase).run())

    assert outcome.elapsed_s == 0.004
    assert outcome.message == "below wrapper resolution"
