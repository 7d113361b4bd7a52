# ledger.py — Stock item aggregate: transactions, side views, dedup and sort.
# Side views (purchase orders, work orders, open sales) are only ever changed
# through StockItem methods so they cannot drift from the transaction list.

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from enum import IntEnum
from typing import Dict, Iterator, List, Optional, Tuple


class TxType(IntEnum):
    BEGINNING_BALANCE = 0
    OPEN_PO = 1
    OPEN_WO = 2
    RELEASED_WO = 3
    OPEN_SALE = 4
    PLANNED_REQUIREMENT = 5
    ISSUED_WO = 6
    QUOTE = 7
    MIN_BALANCE = 8


TYPE_DESCRIPTIONS = {
    TxType.BEGINNING_BALANCE: "Beginning Balance",
    TxType.OPEN_PO: "Open PO",
    TxType.OPEN_WO: "Open WO",
    TxType.RELEASED_WO: "Released WO",
    TxType.OPEN_SALE: "Open Sale",
    TxType.PLANNED_REQUIREMENT: "Planned Requirement",
    TxType.ISSUED_WO: "Issued",
    TxType.QUOTE: "Quote",
    TxType.MIN_BALANCE: "Min Balance",
}

COVER_RELEASED = "released"
COVER_ISSUED = "issued"


def describe_type(code) -> str:
    try:
        return TYPE_DESCRIPTIONS[TxType(int(code))]
    except (ValueError, TypeError):
        return "Unknown"


@dataclass(eq=False)
class TransactionRecord:
    """One ledger entry. Identity matters: side views point at the instance."""
    type: int
    due_date: date
    quantity: int
    part_number: str = ""
    covered: bool = False
    cover_type: Optional[str] = None
    available_quantity: Optional[int] = None
    order_id: Optional[str] = None  # worklist entry mirrored by this PO

    def __post_init__(self) -> None:
        self.part_number = "" if self.part_number is None else str(self.part_number)
        if self.available_quantity is None:
            self.available_quantity = self.quantity

    @property
    def description(self) -> str:
        return describe_type(self.type)


TxKey = Tuple[int, str, date, int]


def transaction_key(t: TransactionRecord) -> TxKey:
    return (int(t.type), str(t.part_number), t.due_date, t.quantity)


def dedup_transactions(transactions: List[TransactionRecord]) -> List[TransactionRecord]:
    """Keep the first occurrence of each (type, part number, due date, quantity)."""
    seen = set()
    out: List[TransactionRecord] = []
    for t in transactions:
        k = transaction_key(t)
        if k in seen:
            continue
        seen.add(k)
        out.append(t)
    return out


def sort_transactions(transactions: List[TransactionRecord]) -> List[TransactionRecord]:
    # sorted() is stable: same-day entries keep input order
    return sorted(transactions, key=lambda t: t.due_date)


# ── Side views ────────────────────────────────────────────────────────────


@dataclass(eq=False)
class PurchaseOrderView:
    purchase_order_number: str
    due_date: date
    quantity: int
    transaction: TransactionRecord


@dataclass(eq=False)
class WorkOrderView:
    part_number: str
    due_date: date
    quantity: int
    available_quantity: int
    is_released: bool
    transaction: TransactionRecord


@dataclass(eq=False)
class OpenSaleView:
    part_number: str
    due_date: date
    quantity: int
    transaction: TransactionRecord
    covered: bool = False
    cover_type: Optional[str] = None
    remaining_quantity: Optional[int] = None

    def __post_init__(self) -> None:
        if self.remaining_quantity is None:
            self.remaining_quantity = self.quantity


# ── Projection output records ─────────────────────────────────────────────


@dataclass
class ShortfallOrder:
    due_date: date
    quantity: int
    part_number: str
    vendor: str = ""
    category: str = ""


@dataclass
class GroupedOrder:
    group_key: str
    group_date: date
    group_by: str
    due_date: date
    quantity: int
    vendor: str = ""
    category: str = ""


@dataclass
class RunningTotal:
    date: date
    balance: int
    type: int
    description: str


# ── Aggregate root ────────────────────────────────────────────────────────


@dataclass(eq=False)
class StockItem:
    item: str
    starting_balance: int
    vendor: str = ""
    category: str = ""
    transactions: List[TransactionRecord] = field(default_factory=list)
    purchase_orders: List[PurchaseOrderView] = field(default_factory=list)
    work_orders: List[WorkOrderView] = field(default_factory=list)
    open_sales: List[OpenSaleView] = field(default_factory=list)
    orders: List[ShortfallOrder] = field(default_factory=list)
    grouped_orders: List[GroupedOrder] = field(default_factory=list)
    running_totals: List[RunningTotal] = field(default_factory=list)
    _keys: Dict[TxKey, TransactionRecord] = field(default_factory=dict, repr=False)

    def attach(self, t: TransactionRecord) -> bool:
        """Append *t* and its side view. Returns False if it duplicates an existing entry."""
        k = transaction_key(t)
        if k in self._keys:
            return False
        self._keys[k] = t
        self.transactions.append(t)
        self._add_view(t)
        return True

    def _add_view(self, t: TransactionRecord) -> None:
        if t.type == TxType.OPEN_PO:
            self.purchase_orders.append(
                PurchaseOrderView(t.part_number, t.due_date, t.quantity, t)
            )
        elif t.type in (TxType.RELEASED_WO, TxType.ISSUED_WO):
            self.work_orders.append(
                WorkOrderView(
                    part_number=t.part_number,
                    due_date=t.due_date,
                    quantity=t.quantity,
                    available_quantity=t.quantity,
                    is_released=t.type == TxType.RELEASED_WO,
                    transaction=t,
                )
            )
        elif t.type == TxType.OPEN_SALE:
            self.open_sales.append(OpenSaleView(t.part_number, t.due_date, t.quantity, t))

    def detach(self, t: TransactionRecord) -> None:
        """Remove *t* and whichever side view points at it."""
        self.transactions = [x for x in self.transactions if x is not t]
        self.purchase_orders = [v for v in self.purchase_orders if v.transaction is not t]
        self.work_orders = [v for v in self.work_orders if v.transaction is not t]
        self.open_sales = [v for v in self.open_sales if v.transaction is not t]
        self._reindex()

    def find_transaction(self, key: TxKey) -> Optional[TransactionRecord]:
        return self._keys.get(key)

    def normalize(self) -> None:
        """Dedup then stable-sort transactions; prune views of dropped entries."""
        self.transactions = sort_transactions(dedup_transactions(self.transactions))
        alive = {id(t) for t in self.transactions}
        self.purchase_orders = [v for v in self.purchase_orders if id(v.transaction) in alive]
        self.work_orders = [v for v in self.work_orders if id(v.transaction) in alive]
        self.open_sales = [v for v in self.open_sales if id(v.transaction) in alive]
        self._reindex()

    def _reindex(self) -> None:
        self._keys = {}
        for t in self.transactions:
            self._keys.setdefault(transaction_key(t), t)


@contextmanager
def ledger_transaction(item: StockItem) -> Iterator[StockItem]:
    """Apply a block of ledger edits to *item* all-or-nothing.

    Snapshots list membership, the starting balance and the mutable fields of
    every transaction and purchase-order view; restores them if the block raises.
    """
    lists = (
        list(item.transactions),
        list(item.purchase_orders),
        list(item.work_orders),
        list(item.open_sales),
    )
    balance = item.starting_balance
    tx_fields = [
        (t, t.quantity, t.available_quantity, t.due_date, t.covered, t.cover_type)
        for t in item.transactions
    ]
    po_fields = [(v, v.quantity, v.due_date) for v in item.purchase_orders]
    try:
        yield item
    except BaseException:
        item.transactions, item.purchase_orders, item.work_orders, item.open_sales = (
            list(x) for x in lists
        )
        item.starting_balance = balance
        for t, qty, avail, due, covered, cover_type in tx_fields:
            t.quantity, t.available_quantity, t.due_date = qty, avail, due
            t.covered, t.cover_type = covered, cover_type
        for v, qty, due in po_fields:
            v.quantity, v.due_date = qty, due
        item._reindex()
        raise
