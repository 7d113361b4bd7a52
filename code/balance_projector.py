# balance_projector.py — Running balance trace and greedy shortfall orders per item.
# Two walks over the same sorted ledger: the trace keeps the signed balance,
# the order pass resets to zero after each shortfall (order arrives instantly).

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from helpers.dates import bucket_key, bucket_start, check_group_by, resolve_today
from ledger import (
    GroupedOrder,
    RunningTotal,
    ShortfallOrder,
    StockItem,
    TransactionRecord,
    TxType,
    describe_type,
)

NEGATIVE_BALANCE_REF = "Negative Balance"


@dataclass
class Projection:
    running_totals: List[RunningTotal] = field(default_factory=list)
    orders: List[ShortfallOrder] = field(default_factory=list)
    grouped_orders: List[GroupedOrder] = field(default_factory=list)


def balance_delta(t: TransactionRecord) -> int:
    """Signed effect of one transaction on on-hand balance."""
    if t.type in (TxType.OPEN_PO, TxType.RELEASED_WO):
        return t.quantity
    if t.type == TxType.OPEN_SALE:
        # covered demand was already netted against a work order
        return 0 if t.covered else -t.available_quantity
    if t.type == TxType.ISSUED_WO:
        return -t.quantity
    return 0


def shortfall_orders(item: StockItem, today: Optional[date] = None) -> List[ShortfallOrder]:
    orders: List[ShortfallOrder] = []
    balance = item.starting_balance
    if balance < 0:
        orders.append(ShortfallOrder(
            due_date=resolve_today(today),
            quantity=abs(balance),
            part_number=NEGATIVE_BALANCE_REF,
            vendor=item.vendor,
            category=item.category,
        ))
        balance = 0
    for t in item.transactions:
        balance += balance_delta(t)
        if balance < 0:
            orders.append(ShortfallOrder(
                due_date=t.due_date,
                quantity=abs(balance),
                part_number=t.part_number,
                vendor=item.vendor,
                category=item.category,
            ))
            balance = 0
    return orders


def running_totals(item: StockItem) -> List[RunningTotal]:
    out: List[RunningTotal] = []
    balance = item.starting_balance
    for t in item.transactions:
        balance += balance_delta(t)
        out.append(RunningTotal(
            date=t.due_date,
            balance=balance,
            type=int(t.type),
            description=describe_type(t.type),
        ))
    return out


def group_orders(
    orders: List[ShortfallOrder],
    group_by: str = "week",
    vendor: str = "",
    category: str = "",
) -> List[GroupedOrder]:
    """Sum shortfall quantities per week (Monday) or month bucket, earliest first."""
    check_group_by(group_by)
    groups: Dict[str, GroupedOrder] = {}
    for o in orders:
        key = bucket_key(o.due_date, group_by)
        g = groups.get(key)
        if g is None:
            groups[key] = GroupedOrder(
                group_key=key,
                group_date=bucket_start(o.due_date, group_by),
                group_by=group_by,
                due_date=o.due_date,
                quantity=o.quantity,
                vendor=vendor,
                category=category,
            )
        else:
            g.quantity += o.quantity
    return sorted(groups.values(), key=lambda g: g.group_date)


def project_item(item: StockItem, group_by: str = "week", today: Optional[date] = None) -> Projection:
    """Recompute and store running totals, shortfall orders and grouped orders on *item*."""
    orders = shortfall_orders(item, today)
    proj = Projection(
        running_totals=running_totals(item),
        orders=orders,
        grouped_orders=group_orders(orders, group_by, item.vendor, item.category),
    )
    item.running_totals = proj.running_totals
    item.orders = proj.orders
    item.grouped_orders = proj.grouped_orders
    return proj
