# helpers/safe_io.py — Atomic writers for planner run artifacts (CSV and text).
#
# Every write goes to a temp file in the same directory, then os.replace()
# swaps it into place, so a crash mid-run never leaves a half-written report.

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Callable, Iterable, IO

import pandas as pd

_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _sanitize_csv_value(v):
    """Prefix string values that could trigger formula injection in Excel."""
    if isinstance(v, str) and v and v[0] in _FORMULA_PREFIXES:
        return "'" + v
    return v


def _atomic_write(path: Path | str, writer: Callable[[IO[str]], None]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            writer(f)
        os.replace(tmp, str(path))
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
    return path


def safe_write_csv(
    df: pd.DataFrame,
    path: Path | str,
    *,
    sanitize: bool = True,
    **to_csv_kwargs,
) -> Path:
    """Write *df* to *path* atomically.

    When *sanitize* is True (default), string cells starting with ``=``,
    ``+``, ``-``, ``@``, tab, or CR are prefixed with a single-quote so part
    numbers copied out of the ERP cannot run as spreadsheet formulas.
    """
    to_csv_kwargs.setdefault("index", False)
    if sanitize:
        obj_cols = df.select_dtypes(include=["object"]).columns
        if len(obj_cols):
            df = df.copy()
            df[obj_cols] = df[obj_cols].map(_sanitize_csv_value)
    return _atomic_write(path, lambda f: df.to_csv(f, **to_csv_kwargs))


def safe_write_lines(lines: Iterable[str], path: Path | str) -> Path:
    """Write *lines* (newline-terminated, trailing whitespace stripped) atomically."""
    text = "".join(ln.rstrip() + "\n" for ln in lines)
    return _atomic_write(path, lambda f: f.write(text))
