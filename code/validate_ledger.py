# validate_ledger.py -- Post-run invariant checks for planner state.
# Checks: ledger order/uniqueness, coverage conservation, projection drift,
# worklist mirror. Import validate_all() or run via run_planner --validate.

from __future__ import annotations
from pathlib import Path
from typing import Iterable, List, Optional

from balance_projector import balance_delta
from helpers.safe_io import safe_write_lines
from ledger import StockItem, TxType, transaction_key
from worklist import OrderWorklist

_VIEW_TYPES = (TxType.OPEN_PO, TxType.RELEASED_WO, TxType.OPEN_SALE, TxType.ISSUED_WO)


# ---------------------------------------------------------------------------
# Check 1: transactions sorted, unique, side views in sync
# ---------------------------------------------------------------------------
def check_sorted_unique(items: Iterable[StockItem]) -> List[str]:
    issues: List[str] = []
    for it in items:
        dates = [t.due_date for t in it.transactions]
        if dates != sorted(dates):
            issues.append(f"ORDER: {it.item} transactions are not sorted by due date")
        keys = [transaction_key(t) for t in it.transactions]
        if len(keys) != len(set(keys)):
            issues.append(f"DUPLICATE: {it.item} has {len(keys) - len(set(keys))} duplicate transaction(s)")

        alive = {id(t) for t in it.transactions}
        views = (
            [v.transaction for v in it.purchase_orders]
            + [v.transaction for v in it.work_orders]
            + [v.transaction for v in it.open_sales]
        )
        orphans = [t for t in views if id(t) not in alive]
        if orphans:
            issues.append(f"VIEW: {it.item} has {len(orphans)} side view(s) with no transaction")
        viewed = {id(t) for t in views}
        missing = [t for t in it.transactions if t.type in _VIEW_TYPES and id(t) not in viewed]
        if missing:
            issues.append(f"VIEW: {it.item} has {len(missing)} transaction(s) with no side view")
    if not issues:
        issues.append("LEDGER: All items sorted, unique, views in sync. OK.")
    return issues


# ---------------------------------------------------------------------------
# Check 2: coverage never consumes more than a work order supplies
# ---------------------------------------------------------------------------
def check_coverage(items: Iterable[StockItem]) -> List[str]:
    issues: List[str] = []
    for it in items:
        supplied = 0
        for wo in it.work_orders:
            if not 0 <= wo.available_quantity <= wo.quantity:
                issues.append(
                    f"COVERAGE: {it.item} WO {wo.part_number} available={wo.available_quantity} "
                    f"outside 0..{wo.quantity}"
                )
            supplied += wo.quantity - wo.available_quantity
        consumed = 0
        for s in it.open_sales:
            if not 0 <= s.remaining_quantity <= s.quantity:
                issues.append(
                    f"COVERAGE: {it.item} sale {s.part_number} remaining={s.remaining_quantity} "
                    f"outside 0..{s.quantity}"
                )
            if s.covered:
                consumed += s.quantity - s.remaining_quantity
        if consumed > supplied:
            issues.append(f"COVERAGE: {it.item} sales consumed {consumed} but work orders supplied {supplied}")
    if not issues:
        issues.append("COVERAGE: Work-order consumption conserved. OK.")
    return issues


# ---------------------------------------------------------------------------
# Check 3: running totals match the ledger
# ---------------------------------------------------------------------------
def check_projection(items: Iterable[StockItem]) -> List[str]:
    issues: List[str] = []
    for it in items:
        if len(it.running_totals) != len(it.transactions):
            issues.append(
                f"PROJECTION: {it.item} has {len(it.running_totals)} running total(s) "
                f"for {len(it.transactions)} transaction(s)"
            )
            continue
        if not it.running_totals:
            continue
        expected = it.starting_balance + sum(balance_delta(t) for t in it.transactions)
        final = it.running_totals[-1].balance
        if final != expected:
            issues.append(f"PROJECTION: {it.item} final balance {final} != {expected}")
    if not issues:
        issues.append("PROJECTION: Running totals consistent with ledger. OK.")
    return issues


# ---------------------------------------------------------------------------
# Check 4: one synthetic PO per worklist entry and vice versa
# ---------------------------------------------------------------------------
def check_worklist_mirror(worklist: OrderWorklist) -> List[str]:
    issues: List[str] = []
    ids = {e.id for e in worklist.entries}
    for e in worklist.entries:
        item = worklist.items.get(e.item)
        if item is None:
            issues.append(f"MIRROR: order {e.id} refers to unknown item {e.item}")
            continue
        pos = [po for po in item.purchase_orders if po.transaction.order_id == e.id]
        if len(pos) != 1:
            issues.append(f"MIRROR: order {e.id} on {e.item} has {len(pos)} synthetic PO(s)")
            continue
        po = pos[0]
        if (po.quantity, po.due_date) != (e.quantity, e.due_date) or (
            po.transaction.quantity, po.transaction.due_date
        ) != (e.quantity, e.due_date):
            issues.append(
                f"MIRROR: order {e.id} is {e.quantity} on {e.due_date} but its PO is "
                f"{po.transaction.quantity} on {po.transaction.due_date}"
            )
    for item in worklist.items.values():
        for t in item.transactions:
            if t.order_id and t.order_id not in ids:
                issues.append(f"MIRROR: {item.item} PO {t.part_number} has no worklist entry")
    if not issues:
        issues.append("MIRROR: Worklist and synthetic POs match one-to-one. OK.")
    return issues


# ---------------------------------------------------------------------------
# Summary report
# ---------------------------------------------------------------------------
def validate_all(
    items: List[StockItem],
    worklist: Optional[OrderWorklist] = None,
    out_path: Optional[Path] = None,
) -> List[str]:
    """Run all checks and return the report lines; also written to *out_path* if given."""
    report: List[str] = ["=" * 60, "MRP Planner Validation Report", "=" * 60, ""]
    sections = [
        ("Ledger Order and Uniqueness", check_sorted_unique(items)),
        ("Coverage Conservation", check_coverage(items)),
        ("Projection Consistency", check_projection(items)),
    ]
    if worklist is not None:
        sections.append(("Worklist Mirror", check_worklist_mirror(worklist)))

    all_issues: List[str] = []
    for title, issues in sections:
        report.append(f"--- {title} ---")
        report.extend(issues)
        report.append("")
        all_issues.extend(issues)

    n_ok = sum(1 for i in all_issues if i.endswith("OK."))
    n_problems = sum(1 for i in all_issues if not i.endswith("OK."))
    report.append("=" * 60)
    report.append(f"Checks passed: {n_ok}/{len(sections)}    Issues found: {n_problems}")
    report.append("=" * 60)

    if out_path is not None:
        safe_write_lines(report, out_path)
    return report
