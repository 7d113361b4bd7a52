# diagnostics.py — Attention signals and dashboard summary frames for ingested items.

from __future__ import annotations
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from helpers.dates import resolve_today
from helpers.safe_io import safe_write_csv
from ledger import StockItem, TransactionRecord, TxType
from recommendation import balance_after_work_orders

logger = logging.getLogger(__name__)

TOP_CRITICAL = 10
USAGE_TYPES = (TxType.OPEN_SALE, TxType.ISSUED_WO)


def _open_pos(item: StockItem) -> List[TransactionRecord]:
    return sorted(
        (t for t in item.transactions if t.type == TxType.OPEN_PO),
        key=lambda t: t.due_date,
    )


def overdue_po(item: StockItem, today: Optional[date] = None) -> Optional[TransactionRecord]:
    """Earliest open PO whose due date is already behind us."""
    today = resolve_today(today)
    return next((t for t in _open_pos(item) if t.due_date < today), None)


def upcoming_po(item: StockItem, today: Optional[date] = None, window_days: int = 14) -> Optional[TransactionRecord]:
    """Earliest PO landing within *window_days*, only for items short after work orders."""
    if balance_after_work_orders(item) >= 0:
        return None
    today = resolve_today(today)
    horizon = today + timedelta(days=window_days)
    return next((t for t in _open_pos(item) if today <= t.due_date <= horizon), None)


def attention_frame(items: Iterable[StockItem], today: Optional[date] = None, window_days: int = 14) -> pd.DataFrame:
    rows = []
    for it in items:
        late = overdue_po(it, today)
        soon = upcoming_po(it, today, window_days)
        rows.append(dict(
            item=it.item,
            vendor=it.vendor,
            category=it.category,
            starting_balance=it.starting_balance,
            balance_after_wo=balance_after_work_orders(it),
            order_count=len(it.orders),
            overdue_po=late.part_number if late else "",
            overdue_po_date=late.due_date if late else None,
            upcoming_po=soon.part_number if soon else "",
            upcoming_po_date=soon.due_date if soon else None,
        ))
    return pd.DataFrame(rows, columns=[
        "item", "vendor", "category", "starting_balance", "balance_after_wo", "order_count",
        "overdue_po", "overdue_po_date", "upcoming_po", "upcoming_po_date",
    ])


# ── Dashboard ─────────────────────────────────────────────────────────────


def summarize(items: List[StockItem]) -> Dict[str, int]:
    return {
        "total_items": len(items),
        "negative_balance": sum(1 for it in items if it.starting_balance < 0),
        "requiring_order": sum(1 for it in items if it.orders),
    }


def critical_items(items: List[StockItem], limit: int = TOP_CRITICAL) -> List[StockItem]:
    """Negative-balance items first, then by number of shortfall orders."""
    flagged = [it for it in items if it.starting_balance < 0 or it.orders]
    flagged.sort(key=lambda it: (it.starting_balance < 0, len(it.orders)), reverse=True)
    return flagged[:limit]


def category_breakdown(items: List[StockItem]) -> pd.DataFrame:
    df = pd.DataFrame(
        [dict(category=it.category or "Uncategorized", orders=len(it.orders)) for it in items],
        columns=["category", "orders"],
    )
    if df.empty:
        return pd.DataFrame(columns=["category", "count", "total_orders"])
    out = df.groupby("category", sort=False).agg(count=("orders", "size"), total_orders=("orders", "sum"))
    return out.reset_index()


def monthly_usage(items: List[StockItem]) -> pd.DataFrame:
    """Demand quantity (open sales and issued WOs) per calendar month."""
    rows = [
        dict(month=f"{t.due_date.year}-{t.due_date.month:02d}", quantity=t.quantity)
        for it in items
        for t in it.transactions
        if t.type in USAGE_TYPES
    ]
    if not rows:
        return pd.DataFrame(columns=["month", "quantity", "transaction_count"])
    df = pd.DataFrame(rows)
    out = df.groupby("month").agg(quantity=("quantity", "sum"), transaction_count=("quantity", "size"))
    return out.reset_index().sort_values("month", ignore_index=True)


def run_diagnostics(items: List[StockItem], data_dir: Path, today: Optional[date] = None, window_days: int = 14) -> List[Path]:
    """Write diag_attention.csv, diag_critical.csv, diag_categories.csv and diag_monthly_usage.csv."""
    data_dir = Path(data_dir)
    written = [
        safe_write_csv(attention_frame(items, today, window_days), data_dir / "diag_attention.csv"),
        safe_write_csv(
            pd.DataFrame(
                [dict(item=it.item, category=it.category, starting_balance=it.starting_balance, orders=len(it.orders))
                 for it in critical_items(items)],
                columns=["item", "category", "starting_balance", "orders"],
            ),
            data_dir / "diag_critical.csv",
        ),
        safe_write_csv(category_breakdown(items), data_dir / "diag_categories.csv"),
        safe_write_csv(monthly_usage(items), data_dir / "diag_monthly_usage.csv"),
    ]
    logger.info("diagnostics written to %s", data_dir)
    return written
