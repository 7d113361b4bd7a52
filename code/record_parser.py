# record_parser.py — Positional MRP export rows -> stock item seeds + transactions.
#
# Row layout: type, item, due date, part number, quantity[, vendor, PO number, category, ...]
# Rows are folded in order; every non-seed row attaches to the last seeded item.

from __future__ import annotations
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date
from functools import reduce
from typing import Iterable, List, Optional, Sequence, Tuple

from helpers.dates import resolve_today
from ledger import StockItem, TransactionRecord, TxType

logger = logging.getLogger(__name__)

MIN_FIELDS = 5

_MDY_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$")
_YMD_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_ALL_ZERO_RE = re.compile(r"^[0\W_]+$")
_FLOAT_PREFIX_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_INT_PREFIX_RE = re.compile(r"^\s*([+-]?\d+)")


# ── Normalizers ───────────────────────────────────────────────────────────


def _expand_year(raw: str) -> int:
    year = int(raw)
    if len(raw) == 2:
        # Two-digit years: 00-49 -> 2000s, 50-99 -> 1900s
        return 2000 + year if year < 50 else 1900 + year
    return year


def normalize_date(raw: Optional[str], today: Optional[date] = None) -> Tuple[date, bool]:
    """Return (date, coerced). Missing, sentinel or invalid input becomes *today*."""
    fallback = resolve_today(today)
    s = "" if raw is None else str(raw).strip()
    if not s or "00/00" in s or _ALL_ZERO_RE.match(s):
        return fallback, True
    m = _MDY_RE.match(s)
    try:
        if m:
            return date(_expand_year(m.group(3)), int(m.group(1)), int(m.group(2))), False
        m = _YMD_RE.match(s)
        if m:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3))), False
    except ValueError:
        # 2/30/24 and friends
        pass
    return fallback, True


def parse_float_prefix(raw) -> float:
    """Leading numeric prefix of *raw* as a float ("12.5 EA" -> 12.5)."""
    m = _FLOAT_PREFIX_RE.match(str(raw))
    if not m:
        raise ValueError(f"not a number: {raw!r}")
    value = float(m.group(1))
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"not a finite number: {raw!r}")
    return value


def ceiling_round(raw) -> int:
    """Round up to the next whole unit, however small the fraction."""
    return int(math.ceil(parse_float_prefix(raw)))


def normalize_quantity(raw, keep_sign: bool = False) -> int:
    """Ceiling-rounded quantity. Strips quote noise and the minus sign unless *keep_sign*."""
    s = "" if raw is None else str(raw)
    if not keep_sign:
        s = s.replace('"', "").replace("'", "").replace("-", "", 1)
    return ceiling_round(s)


def parse_type(raw) -> int:
    m = _INT_PREFIX_RE.match(str(raw))
    if not m:
        raise ValueError(f"not a type code: {raw!r}")
    return int(m.group(1))


# ── Fold ──────────────────────────────────────────────────────────────────


@dataclass
class RowSkipped:
    row_number: int
    reason: str
    fields: List[str] = field(default_factory=list)


@dataclass
class ParseReport:
    rows_read: int = 0
    skipped: List[RowSkipped] = field(default_factory=list)
    dates_coerced: int = 0
    duplicates: int = 0
    min_balance_rows: int = 0

    @property
    def rows_skipped(self) -> int:
        return len(self.skipped)


@dataclass
class _FoldState:
    items: List[StockItem]
    current: Optional[StockItem]
    report: ParseReport
    today: date
    min_fields: int


def _field(row: Sequence[str], idx: int) -> str:
    if idx < len(row) and row[idx] is not None:
        return str(row[idx])
    return ""


def _skip(state: _FoldState, row_number: int, row: Sequence[str], reason: str) -> _FoldState:
    logger.debug("row %d skipped: %s", row_number, reason)
    state.report.skipped.append(RowSkipped(row_number, reason, [str(v) for v in row]))
    return state


def _consume_row(state: _FoldState, numbered: Tuple[int, Sequence[str]]) -> _FoldState:
    row_number, row = numbered
    state.report.rows_read += 1
    if len(row) < state.min_fields:
        return _skip(state, row_number, row, f"only {len(row)} field(s)")
    try:
        tx_type = parse_type(row[0])
    except ValueError:
        return _skip(state, row_number, row, f"unparseable type {row[0]!r}")
    if tx_type == TxType.MIN_BALANCE:
        state.report.min_balance_rows += 1
        return state

    is_seed = tx_type == TxType.BEGINNING_BALANCE
    try:
        quantity = normalize_quantity(row[4], keep_sign=is_seed)
    except ValueError:
        if is_seed:
            # rows that follow belong to the rejected item, not the previous one
            state.current = None
        return _skip(state, row_number, row, f"unparseable quantity {row[4]!r}")

    vendor = _field(row, 5)
    po_number = _field(row, 6)
    category = _field(row, 7)

    if is_seed:
        state.current = StockItem(
            item=_field(row, 1),
            starting_balance=quantity,
            vendor=vendor,
            category=category,
        )
        state.items.append(state.current)
        return state

    if state.current is None:
        return _skip(state, row_number, row, "no beginning balance row before this one")

    due, coerced = normalize_date(row[2], state.today)
    if coerced:
        state.report.dates_coerced += 1
        logger.debug("row %d: date %r coerced to %s", row_number, row[2], due)

    t = TransactionRecord(
        type=tx_type,
        due_date=due,
        quantity=quantity,
        part_number=po_number if tx_type == TxType.OPEN_PO else _field(row, 3),
    )
    if not state.current.attach(t):
        state.report.duplicates += 1
    return state


def parse_rows(
    rows: Iterable[Sequence[str]],
    today: Optional[date] = None,
    min_fields: int = MIN_FIELDS,
) -> Tuple[List[StockItem], ParseReport]:
    """Fold raw rows into stock items. Bad rows are reported, never raised."""
    start = _FoldState(
        items=[],
        current=None,
        report=ParseReport(),
        today=resolve_today(today),
        min_fields=min_fields,
    )
    final = reduce(_consume_row, enumerate(rows, start=1), start)
    return final.items, final.report
