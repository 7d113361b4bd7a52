# coverage_matcher.py — Net work-order supply/consumption against open sales for the same part.
# An issued or released work order and an open sale often describe the same
# physical demand; a covered sale is later skipped by the balance projector.

from __future__ import annotations
import logging
from typing import List

from ledger import (
    COVER_ISSUED,
    COVER_RELEASED,
    OpenSaleView,
    StockItem,
    WorkOrderView,
)

logger = logging.getLogger(__name__)


def _candidate_sales(work_order: WorkOrderView, sales: List[OpenSaleView]) -> List[OpenSaleView]:
    """Uncovered sales for the work order's part; substring match when no exact match exists."""
    wo_part = str(work_order.part_number)
    exact = [s for s in sales if not s.covered and str(s.part_number) == wo_part]
    if exact:
        candidates = exact
    else:
        candidates = [
            s for s in sales
            if not s.covered and (wo_part in str(s.part_number) or str(s.part_number) in wo_part)
        ]
        if candidates:
            logger.debug(
                "work order %s matched %d sale(s) by part-number containment",
                wo_part, len(candidates),
            )
    return sorted(candidates, key=lambda s: s.due_date)


def match_work_orders(item: StockItem) -> int:
    """Mark open sales covered by work orders, earliest due date first.

    Mutates the item's side views and their transactions in place and returns
    the number of sales newly covered. Running it again is harmless: covered
    sales are never re-covered and the ledger is re-deduplicated at the end.
    """
    item.work_orders.sort(key=lambda w: w.due_date)
    covered_count = 0
    for wo in item.work_orders:
        if not wo.part_number or not wo.quantity:
            continue
        # leftover from an earlier pass; equals quantity on the first one
        remaining = wo.available_quantity
        for sale in _candidate_sales(wo, item.open_sales):
            if remaining <= 0:
                break
            if sale.covered:
                continue
            consumed = min(remaining, sale.quantity)
            sale.covered = True
            sale.cover_type = COVER_RELEASED if wo.is_released else COVER_ISSUED
            sale.remaining_quantity = sale.quantity - consumed
            remaining -= consumed
            covered_count += 1

            t = sale.transaction
            if not t.covered:
                t.covered = True
                t.cover_type = sale.cover_type
                t.available_quantity = sale.remaining_quantity

        wo.available_quantity = remaining
        wo.transaction.available_quantity = remaining

    item.normalize()
    return covered_count
