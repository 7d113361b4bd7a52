# worklist.py — User-confirmed orders, each mirrored as a synthetic open PO in its item.
#
# Every entry owns exactly one type-1 transaction tagged with the entry id
# (part number = prefix + id). Entries created before ids were carried on the
# transaction are located by due date, then quantity.

from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Callable, Iterable, List, Mapping, Optional

from balance_projector import project_item
from helpers.dates import as_date, resolve_today
from ledger import (
    PurchaseOrderView,
    StockItem,
    TransactionRecord,
    TxType,
    ledger_transaction,
)
from record_parser import normalize_date

logger = logging.getLogger(__name__)


@dataclass
class WorklistEntry:
    id: str
    item: str
    vendor: str
    category: str
    quantity: int
    creation_date: date
    due_date: date
    imported: bool = False


@dataclass
class AmbiguousOrderMatch:
    order_id: str
    item: str
    due_date: date
    candidates: List[str] = field(default_factory=list)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class OrderWorklist:
    """Flat list of confirmed orders kept in lockstep with item ledgers."""

    def __init__(
        self,
        items: Mapping[str, StockItem],
        group_by: str = "week",
        today: Optional[date] = None,
        reserved_prefix: str = "UI-",
        import_prefix: str = "IMP-",
        id_factory: Callable[[], str] = _new_id,
    ):
        self.items = items
        self.group_by = group_by
        self.today = today
        self.reserved_prefix = reserved_prefix
        self.import_prefix = import_prefix
        self.id_factory = id_factory
        self.entries: List[WorklistEntry] = []
        self.ambiguous_matches: List[AmbiguousOrderMatch] = []

    # ── Lookups ──────────────────────────────────────────────────────────

    def get(self, order_id: str) -> WorklistEntry:
        for e in self.entries:
            if e.id == order_id:
                return e
        raise KeyError(f"unknown worklist order {order_id!r}")

    def entries_for(self, item_code: str) -> List[WorklistEntry]:
        return [e for e in self.entries if e.item == item_code]

    def _item(self, item_code: str) -> StockItem:
        try:
            return self.items[item_code]
        except KeyError:
            raise KeyError(f"unknown item {item_code!r}") from None

    def _is_synthetic(self, po: PurchaseOrderView) -> bool:
        number = po.purchase_order_number
        return bool(po.transaction.order_id) or number.startswith(self.reserved_prefix) or (
            bool(self.import_prefix) and number.startswith(self.import_prefix)
        )

    def mirror_of(self, entry: WorklistEntry) -> Optional[PurchaseOrderView]:
        """The synthetic PO for *entry*: by carried id first, then due date and quantity."""
        item = self._item(entry.item)
        for po in item.purchase_orders:
            if po.transaction.order_id == entry.id:
                return po
        same_day = [
            po for po in item.purchase_orders
            if po.transaction.order_id is None and self._is_synthetic(po) and po.due_date == entry.due_date
        ]
        if len(same_day) == 1:
            return same_day[0]
        same_qty = [po for po in same_day if po.quantity == entry.quantity]
        if len(same_qty) > 1:
            logger.warning(
                "order %s on %s matches %d POs on %s; using %s",
                entry.id, entry.item, len(same_qty), entry.due_date, same_qty[0].purchase_order_number,
            )
            self.ambiguous_matches.append(AmbiguousOrderMatch(
                entry.id, entry.item, entry.due_date,
                [po.purchase_order_number for po in same_qty],
            ))
        return same_qty[0] if same_qty else None

    # ── Mutations ────────────────────────────────────────────────────────

    def _refresh(self, item: StockItem) -> None:
        item.normalize()
        project_item(item, self.group_by, self.today)

    def _mirror(self, item: StockItem, entry: WorklistEntry, prefix: str) -> TransactionRecord:
        t = TransactionRecord(
            type=TxType.OPEN_PO,
            due_date=entry.due_date,
            quantity=entry.quantity,
            part_number=f"{prefix}{entry.id}",
            order_id=entry.id,
        )
        if not item.attach(t):
            raise ValueError(f"synthetic PO {t.part_number} already in {item.item}")
        return t

    def add(self, item_code: str, quantity: int, due_date: Optional[date] = None) -> WorklistEntry:
        """Add an order, merging into an existing entry for the same item and day."""
        if quantity <= 0:
            raise ValueError(f"order quantity must be positive, got {quantity}")
        item = self._item(item_code)
        today = resolve_today(self.today)
        due = as_date(due_date) if due_date is not None else today + timedelta(days=1)

        existing = next((e for e in self.entries if e.item == item_code and e.due_date == due), None)
        if existing is not None:
            po = self.mirror_of(existing)
            with ledger_transaction(item):
                if po is not None:
                    po.quantity += quantity
                    po.transaction.quantity += quantity
                    po.transaction.available_quantity += quantity
                else:
                    logger.warning("order %s had no mirrored PO; recreating it", existing.id)
                    merged = replace(existing, quantity=existing.quantity + quantity)
                    self._mirror(item, merged, self.import_prefix if existing.imported else self.reserved_prefix)
                self._refresh(item)
            existing.quantity += quantity
            return existing

        entry = WorklistEntry(
            id=self.id_factory(),
            item=item.item,
            vendor=item.vendor,
            category=item.category,
            quantity=quantity,
            creation_date=today,
            due_date=due,
        )
        with ledger_transaction(item):
            self._mirror(item, entry, self.reserved_prefix)
            self._refresh(item)
        self.entries.append(entry)
        return entry

    def update(self, order_id: str, quantity: Optional[int] = None, due_date: Optional[date] = None) -> WorklistEntry:
        entry = self.get(order_id)
        if quantity is not None and quantity <= 0:
            raise ValueError(f"order quantity must be positive, got {quantity}")
        new_due = as_date(due_date) if due_date is not None else None
        qty_changed = quantity is not None and quantity != entry.quantity
        due_changed = new_due is not None and new_due != entry.due_date
        if not (qty_changed or due_changed):
            return entry

        item = self._item(entry.item)
        po = self.mirror_of(entry)
        if po is None:
            logger.warning("order %s has no mirrored PO in %s", entry.id, entry.item)
        else:
            with ledger_transaction(item):
                t = po.transaction
                if qty_changed:
                    po.quantity = t.quantity = t.available_quantity = quantity
                if due_changed:
                    po.due_date = t.due_date = new_due
                self._refresh(item)
        if qty_changed:
            entry.quantity = quantity
        if due_changed:
            entry.due_date = new_due
        return entry

    def remove(self, order_id: str) -> WorklistEntry:
        entry = self.get(order_id)
        item = self._item(entry.item)
        po = self.mirror_of(entry)
        if po is None:
            logger.warning("order %s has no mirrored PO in %s", entry.id, entry.item)
        else:
            with ledger_transaction(item):
                item.detach(po.transaction)
                self._refresh(item)
        self.entries = [e for e in self.entries if e is not entry]
        return entry

    def receive(self, item_code: str, transaction: TransactionRecord) -> None:
        """Book a PO as on-hand stock: bump the starting balance and drop the PO."""
        if transaction.type != TxType.OPEN_PO:
            raise ValueError("only open purchase orders can be received")
        item = self._item(item_code)
        target = next((t for t in item.transactions if t is transaction), None)
        if target is None:
            target = next(
                (t for t in item.transactions
                 if t.type == TxType.OPEN_PO
                 and t.part_number == transaction.part_number
                 and t.due_date == transaction.due_date
                 and t.quantity == transaction.quantity),
                None,
            )
        if target is None:
            raise KeyError(f"PO {transaction.part_number!r} not found on {item_code!r}")
        with ledger_transaction(item):
            item.starting_balance += target.quantity
            item.detach(target)
            self._refresh(item)
        if target.order_id:
            self.entries = [e for e in self.entries if e.id != target.order_id]

    def import_orders(self, records: Iterable[Mapping]) -> int:
        """Add ``{item, quantity, due_date}`` records for known items as imported entries."""
        added = 0
        today = resolve_today(self.today)
        for rec in records:
            item = self.items.get(str(rec.get("item", "")))
            if item is None:
                continue
            due = rec.get("due_date") or rec.get("dueDate")
            if isinstance(due, str):
                due = normalize_date(due, today)[0]
            entry = WorklistEntry(
                id=self.id_factory(),
                item=item.item,
                vendor=item.vendor,
                category=item.category,
                quantity=int(rec["quantity"]),
                creation_date=today,
                due_date=as_date(due) if due is not None else today + timedelta(days=1),
                imported=True,
            )
            if entry.quantity <= 0:
                continue
            with ledger_transaction(item):
                self._mirror(item, entry, self.import_prefix)
                self._refresh(item)
            self.entries.append(entry)
            added += 1
        return added

    def rebind(self, items: Mapping[str, StockItem]) -> int:
        """Point the worklist at a freshly ingested item set and re-create every mirror.

        Entries whose item no longer exists are dropped; returns how many.
        The worklist keeps its old items and entries if any mirror fails.
        """
        kept: List[WorklistEntry] = []
        for entry in self.entries:
            item = items.get(entry.item)
            if item is None:
                continue
            prefix = self.import_prefix if entry.imported else self.reserved_prefix
            with ledger_transaction(item):
                self._mirror(item, entry, prefix)
                self._refresh(item)
            kept.append(entry)
        dropped = len(self.entries) - len(kept)
        self.items = items
        self.entries = kept
        return dropped
