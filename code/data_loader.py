# data_loader.py — Params, config file, and MRP export ingestion for the planner.

from __future__ import annotations
import io
import logging
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from balance_projector import project_item
from coverage_matcher import match_work_orders
from helpers.dates import GROUP_BY_CHOICES
from ledger import StockItem
from record_parser import MIN_FIELDS, ParseReport, parse_rows

logger = logging.getLogger(__name__)

CONFIG_NAME = "mrp_planner.toml"
# widest row the export is expected to produce
MAX_FIELDS = 64


class IngestionError(ValueError):
    """The export could not be read or split into fields at all."""


@dataclass
class Params:
    group_by: str = "week"
    lead_time_weeks: int = 7
    # Use the per-category supplier lead time instead of lead_time_weeks
    lead_time_by_category: bool = False
    # Real POs due within this many days count as stock on hand when recommending
    upcoming_po_days: int = 7
    # Window for the "PO arriving soon" attention signal on short items
    attention_window_days: int = 14
    # Pins "today" (YYYY-MM-DD); empty means the real current date
    as_of_date: str = ""
    reserved_prefix: str = "UI-"
    import_prefix: str = "IMP-"
    min_fields: int = MIN_FIELDS

    def __post_init__(self) -> None:
        if self.group_by not in GROUP_BY_CHOICES:
            raise ValueError(f"group_by must be one of {GROUP_BY_CHOICES}, got {self.group_by!r}")
        self.as_of()

    def as_of(self) -> Optional[date]:
        if not self.as_of_date:
            return None
        try:
            return datetime.strptime(self.as_of_date, "%Y-%m-%d").date()
        except ValueError:
            raise ValueError(f"as_of_date must be YYYY-MM-DD, got {self.as_of_date!r}") from None


def _load_toml(path: Path) -> dict:
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore
    if not path.exists():
        return {}
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_params(path: Optional[Path] = None, **overrides: Any) -> Params:
    """Build Params from the [planner] and [worklist] tables of a TOML file.

    Keyword overrides (e.g. from CLI flags) win over the file; None values are ignored.
    """
    cfg = _load_toml(Path(path)) if path is not None else {}
    known = {f.name for f in fields(Params)}
    values: Dict[str, Any] = {}
    for table in ("planner", "worklist"):
        for k, v in cfg.get(table, {}).items():
            if k in known:
                values[k] = v
    values.update({k: v for k, v in overrides.items() if v is not None and k in known})
    return Params(**values)


# ── Raw text -> rows ──────────────────────────────────────────────────────


def split_rows(raw_text: str) -> List[List[str]]:
    """Split headerless, ragged CSV text into lists of string fields.

    A row's width runs to its last non-empty field; trailing empty fields and
    the padding pandas adds to short rows are dropped alike.
    """
    if not raw_text or not raw_text.strip():
        return []
    try:
        df = pd.read_csv(
            io.StringIO(raw_text),
            header=None,
            names=list(range(MAX_FIELDS)),
            index_col=False,
            dtype=str,
            keep_default_na=False,
            na_values=[""],
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError:
        return []
    except pd.errors.ParserError as exc:
        raise IngestionError(f"Could not split MRP export into fields: {exc}") from exc
    rows: List[List[str]] = []
    for rec in df.itertuples(index=False, name=None):
        values = list(rec)
        while values and pd.isna(values[-1]):
            values.pop()
        rows.append(["" if pd.isna(v) else v for v in values])
    return rows


def read_mrp_file(path: Path | str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise IngestionError(f"Could not read MRP export {path}: {exc}") from exc


# ── Ingestion ─────────────────────────────────────────────────────────────


@dataclass
class IngestResult:
    items: List[StockItem] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    vendors: List[str] = field(default_factory=list)
    report: ParseReport = field(default_factory=ParseReport)


def _unique(values) -> List[str]:
    seen: Dict[str, None] = {}
    for v in values:
        if v and v not in seen:
            seen[v] = None
    return list(seen)


def _merge_repeated_items(items: List[StockItem]) -> List[StockItem]:
    """Fold a second block for an item code into the first one."""
    by_code: Dict[str, StockItem] = {}
    out: List[StockItem] = []
    for it in items:
        first = by_code.get(it.item)
        if first is None:
            by_code[it.item] = it
            out.append(it)
            continue
        logger.warning("item %s appears twice in the export; merging its transactions", it.item)
        for t in it.transactions:
            first.attach(t)
    return out


def ingest(raw_text: str, params: Optional[Params] = None, today: Optional[date] = None) -> IngestResult:
    """Parse, build ledgers, match coverage and project every item of an MRP export."""
    params = params or Params()
    today = today if today is not None else params.as_of()
    rows = split_rows(raw_text)
    items, report = parse_rows(rows, today=today, min_fields=params.min_fields)
    items = _merge_repeated_items(items)
    for it in items:
        it.normalize()
        match_work_orders(it)
        project_item(it, params.group_by, today)
    result = IngestResult(
        items=items,
        categories=_unique(it.category for it in items),
        vendors=_unique(it.vendor for it in items),
        report=report,
    )
    logger.info(
        "ingested %d item(s) from %d row(s); %d skipped, %d date(s) coerced, %d duplicate(s)",
        len(items), report.rows_read, report.rows_skipped, report.dates_coerced, report.duplicates,
    )
    return result
