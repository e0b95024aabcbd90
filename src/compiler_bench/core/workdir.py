from __future__ import annotations

import os
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator


@contextmanager
def pushd(path: Path) -> Iterator[Path]:
    prev = Path.cwd()
    os.chdir(path)
    try:
        yield path
    finally:
        os.chdir(prev)


def retention_pattern(extensions: Iterable[str]) -> re.Pattern[str]:
    """Files that survive cleanup: generated sources and the csv/txt reports."""
    exts = sorted({e.lstrip(".") for e in extensions if e})
    alternatives = [rf"\d\.{re.escape(e)}$" for e in exts] + [r"\.csv$", r"\.txt$"]
    return re.compile("|".join(alternatives))


def clean_directory(path: Path, keep: re.Pattern[str]) -> int:
    removed = 0
    for p in sorted(path.rglob("*")):
        if not p.is_file() or keep.search(p.name):
            continue
        p.unlink()
        removed += 1
    return removed


def remove_if_exists(path: Path) -> bool:
    if path.exists():
        path.unlink()
        return True
    return False
