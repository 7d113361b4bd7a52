# recommendation.py — Forward simulation producing week/month reorder suggestions.
#
# Unlike the greedy projector this pass:
#   - reports a future PO that already clears the shortage instead of suggesting more,
#   - treats real POs due in the next few days as stock on hand,
#   - folds in the user's pending worklist orders,
#   - clamps past-due shortfalls into the current bucket.

from __future__ import annotations
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Mapping, Optional

from balance_projector import balance_delta
from helpers.dates import bucket_key, bucket_start, check_group_by, needs_by, resolve_today
from ledger import StockItem, TransactionRecord, TxType

EPSILON = 0.01
CURRENT_SHORTAGE = "current-shortage"


@dataclass
class Contribution:
    """A transaction (or the opening shortage) that pushed the simulated balance negative."""
    type: object  # TxType code, or CURRENT_SHORTAGE
    due_date: date
    part_number: str
    quantity: float
    impact: float
    transaction: Optional[TransactionRecord] = None

    def identity(self):
        return (self.due_date, self.part_number, self.type)


@dataclass
class Suggestion:
    group_key: str
    bucket_start: date
    quantity: float
    contributing: List[Contribution] = field(default_factory=list)
    needs_by: Optional[date] = None

    def order_due_date(self, today: Optional[date] = None) -> date:
        """Due date to use when accepting the suggestion: needs-by, or tomorrow if that has passed."""
        today = resolve_today(today)
        target = self.needs_by or self.bucket_start
        return today + timedelta(days=1) if target < today else target


@dataclass
class UpcomingPOInfo:
    pos: List[TransactionRecord]
    total_quantity: int


@dataclass
class RecommendationResult:
    suggestions: List[Suggestion] = field(default_factory=list)
    resolving_transaction: Optional[TransactionRecord] = None
    upcoming_po_info: Optional[UpcomingPOInfo] = None

    @property
    def total_quantity(self) -> float:
        return sum(s.quantity for s in self.suggestions)


def is_synthetic_po(t: TransactionRecord, prefixes: Iterable[str]) -> bool:
    if t.type != TxType.OPEN_PO:
        return False
    if t.order_id:
        return True
    return any(p and t.part_number.startswith(p) for p in prefixes)


def balance_after_work_orders(item: StockItem) -> int:
    balance = item.starting_balance
    for wo in item.work_orders:
        balance += wo.quantity if wo.is_released else -wo.quantity
    return balance


def needs_review(item: StockItem) -> bool:
    """Only items with a projected shortfall are worth simulating."""
    return bool(item.orders) or item.starting_balance < 0 or balance_after_work_orders(item) < 0


def find_resolving_po(item: StockItem, transactions: List[TransactionRecord]) -> Optional[TransactionRecord]:
    """First PO at which the running balance climbs from negative back to zero or above."""
    balance = item.starting_balance
    for t in transactions:
        previous = balance
        balance += balance_delta(t)
        if t.type == TxType.OPEN_PO and previous < 0 and balance >= 0:
            return t
    return None


class _Buckets:
    """Shortfall needs keyed by bucket, accumulating the contributing transactions."""

    def __init__(self, group_by: str, today: date):
        self.group_by = group_by
        self.today = today
        self.needs: Dict[str, dict] = {}

    def need(self, when: date) -> tuple:
        when = max(when, self.today)
        key = bucket_key(when, self.group_by)
        if key not in self.needs:
            self.needs[key] = {
                "start": bucket_start(when, self.group_by),
                "contributing": [],
            }
        return key, self.needs[key]


def order_quantity(order) -> float:
    """Quantity of a pending order given as a mapping or an object with ``quantity``."""
    if isinstance(order, Mapping):
        if "quantity" not in order:
            raise TypeError(f"hypothetical order has no quantity: {order!r}")
        return float(order["quantity"])
    try:
        return float(order.quantity)
    except AttributeError:
        raise TypeError(f"hypothetical order has no quantity: {order!r}") from None


def _consolidate(raw: List[Suggestion]) -> List[Suggestion]:
    merged: Dict[str, Suggestion] = {}
    for s in raw:
        m = merged.get(s.group_key)
        if m is None:
            m = merged[s.group_key] = Suggestion(s.group_key, s.bucket_start, 0.0, [])
        m.quantity += s.quantity
        seen = {c.identity() for c in m.contributing}
        for c in s.contributing:
            if c.identity() not in seen:
                seen.add(c.identity())
                m.contributing.append(c)
    out = [s for s in merged.values() if s.quantity > EPSILON]
    return sorted(out, key=lambda s: s.bucket_start)


def recommend(
    item: StockItem,
    group_by: str = "week",
    lead_time_weeks: int = 7,
    hypothetical_orders: Iterable = (),
    today: Optional[date] = None,
    synthetic_prefixes: Iterable[str] = ("UI-",),
    upcoming_days: int = 7,
) -> RecommendationResult:
    """Simulate the item's real ledger forward and suggest bucketed reorders.

    *hypothetical_orders* are the user's pending orders (mappings or objects
    with a ``quantity``); their synthetic POs in the ledger are ignored here so they
    are not counted twice.
    """
    check_group_by(group_by)
    today = resolve_today(today)
    prefixes = tuple(synthetic_prefixes)
    result = RecommendationResult()
    if not needs_review(item):
        return result

    real = sorted(
        (t for t in item.transactions if not is_synthetic_po(t, prefixes)),
        key=lambda t: t.due_date,
    )

    resolving = find_resolving_po(item, real)
    if resolving is not None:
        result.resolving_transaction = resolving
        return result

    horizon = today + timedelta(days=upcoming_days)
    upcoming = [t for t in real if t.type == TxType.OPEN_PO and today <= t.due_date <= horizon]
    upcoming_supply = sum(t.quantity for t in upcoming)
    if upcoming:
        result.upcoming_po_info = UpcomingPOInfo(pos=upcoming, total_quantity=upcoming_supply)

    simulated = item.starting_balance + upcoming_supply
    simulated += sum(order_quantity(o) for o in hypothetical_orders)

    buckets = _Buckets(group_by, today)
    raw: List[Suggestion] = []

    if item.starting_balance < 0:
        shortage = abs(item.starting_balance)
        key, need = buckets.need(today)
        need["contributing"].append(Contribution(
            type=CURRENT_SHORTAGE,
            due_date=today,
            part_number="Current Shortage",
            quantity=shortage,
            impact=shortage,
        ))
        if simulated < 0:
            qty = min(shortage, abs(simulated))
            if qty > EPSILON:
                raw.append(Suggestion(key, need["start"], qty, list(need["contributing"])))
            simulated = max(0, simulated)

    upcoming_ids = {id(t) for t in upcoming}
    for t in real:
        if id(t) in upcoming_ids:
            continue
        simulated += balance_delta(t)
        if simulated >= 0 or t.type not in (TxType.OPEN_SALE, TxType.ISSUED_WO):
            continue
        consumed = t.available_quantity if t.type == TxType.OPEN_SALE else t.quantity
        impact = min(consumed, abs(simulated))
        key, need = buckets.need(t.due_date)
        need["contributing"].append(Contribution(
            type=int(t.type),
            due_date=t.due_date,
            part_number=t.part_number,
            quantity=t.quantity,
            impact=impact,
            transaction=t,
        ))
        qty = abs(simulated)
        simulated = 0
        if qty > EPSILON:
            raw.append(Suggestion(key, need["start"], qty, list(need["contributing"])))

    result.suggestions = _consolidate(raw)
    for s in result.suggestions:
        s.needs_by = needs_by(s.bucket_start, lead_time_weeks)
    return result


def lead_time_days(category: Optional[str]) -> int:
    """Supplier lead time in days by item category code."""
    if category in ("H", "MI", "OB", "SM"):
        return 45
    if category in ("LTM", "SMT", "TM"):
        return 50
    if category in ("W", "WC", "WST", "SMW", "SM2", "SM3", "WC1", "WC2", "WC3", "WS1", "WS2", "WS3"):
        return 55
    if category in ("BH", "BS", "BSO", "DC", "EK", "HH", "MH", "MO", "NC", "NH", "NMP", "PSC", "PW", "SAM", "WH"):
        # wire harnesses
        return 60
    return 50


def lead_time_weeks_for(category: Optional[str]) -> int:
    return int(math.ceil(lead_time_days(category) / 7))
