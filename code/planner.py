# planner.py — MrpPlanner: the operations a presentation layer calls.
#
# Holds the current item set and order worklist. A failed ingestion leaves
# both untouched; every worklist edit re-projects the affected item before
# returning. Recommendations are computed on request.

from __future__ import annotations
import logging
import math
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from balance_projector import Projection, project_item
from data_loader import IngestionError, IngestResult, Params, ingest, read_mrp_file
from helpers.dates import check_group_by, resolve_today
from ledger import StockItem, TransactionRecord
from record_parser import ParseReport
from recommendation import RecommendationResult, Suggestion, lead_time_weeks_for, recommend
from worklist import OrderWorklist, WorklistEntry

logger = logging.getLogger(__name__)


class MrpPlanner:
    def __init__(self, params: Optional[Params] = None, today: Optional[date] = None):
        self.params = params or Params()
        self.today = today if today is not None else self.params.as_of()
        self.items: Dict[str, StockItem] = {}
        self.categories: List[str] = []
        self.vendors: List[str] = []
        self.report = ParseReport()
        self.status = ""
        self.worklist = OrderWorklist(
            self.items,
            group_by=self.params.group_by,
            today=self.today,
            reserved_prefix=self.params.reserved_prefix,
            import_prefix=self.params.import_prefix,
        )

    # ── Ingestion ────────────────────────────────────────────────────────

    def ingest(self, raw_text: str) -> IngestResult:
        try:
            result = ingest(raw_text, self.params, self.today)
        except IngestionError as exc:
            self.status = f"Error processing file: {exc}"
            logger.error(self.status)
            raise
        items = {it.item: it for it in result.items}
        dropped = self.worklist.rebind(items)
        if dropped:
            logger.warning("dropped %d worklist order(s) for items no longer in the export", dropped)
        self.items = items
        self.categories = result.categories
        self.vendors = result.vendors
        self.report = result.report
        self.status = f"Data processed successfully! {len(items)} item(s) loaded."
        return result

    def ingest_file(self, path: Path | str) -> IngestResult:
        try:
            raw = read_mrp_file(path)
        except IngestionError as exc:
            self.status = f"Error processing file: {exc}"
            logger.error(self.status)
            raise
        return self.ingest(raw)

    # ── Lookups ──────────────────────────────────────────────────────────

    def item(self, item_code: str) -> StockItem:
        try:
            return self.items[item_code]
        except KeyError:
            raise KeyError(f"unknown item {item_code!r}") from None

    def _code(self, item) -> str:
        return item.item if isinstance(item, StockItem) else str(item)

    # ── Worklist ─────────────────────────────────────────────────────────

    def add_order(self, item, quantity: int, due_date: Optional[date] = None) -> WorklistEntry:
        return self.worklist.add(self._code(item), quantity, due_date)

    def update_order(self, order_id: str, quantity: Optional[int] = None, due_date: Optional[date] = None) -> WorklistEntry:
        return self.worklist.update(order_id, quantity=quantity, due_date=due_date)

    def remove_order(self, order_id: str) -> WorklistEntry:
        return self.worklist.remove(order_id)

    def receive_po(self, item, transaction: TransactionRecord) -> None:
        code = self._code(item)
        self.worklist.receive(code, transaction)
        self.status = f"Received PO: {transaction.part_number} for {transaction.quantity} units of {code}"

    def import_orders(self, records: Iterable[Mapping]) -> int:
        added = self.worklist.import_orders(records)
        self.status = f"Successfully imported {added} orders as purchase orders."
        return added

    def accept_suggestion(self, item, suggestion: Suggestion) -> WorklistEntry:
        """Put a recommendation on the worklist, due by its needs-by date (tomorrow if past)."""
        qty = int(math.ceil(suggestion.quantity))
        return self.add_order(item, qty, suggestion.order_due_date(self.today))

    # ── Projection / recommendation ──────────────────────────────────────

    def project(self, item) -> Projection:
        it = self.item(self._code(item))
        return project_item(it, self.params.group_by, self.today)

    def set_group_by(self, group_by: str) -> None:
        """Switch week/month bucketing and re-project every item."""
        check_group_by(group_by)
        self.params.group_by = group_by
        self.worklist.group_by = group_by
        for it in self.items.values():
            project_item(it, group_by, self.today)

    def lead_time_for(self, item: StockItem) -> int:
        if self.params.lead_time_by_category:
            return lead_time_weeks_for(item.category)
        return self.params.lead_time_weeks

    def recommend(
        self,
        item,
        group_by: Optional[str] = None,
        lead_time_weeks: Optional[int] = None,
        hypothetical_orders: Optional[Iterable] = None,
    ) -> RecommendationResult:
        """Suggestions for one item; pending worklist orders count as hypothetical supply by default."""
        it = self.item(self._code(item))
        if hypothetical_orders is None:
            hypothetical_orders = self.worklist.entries_for(it.item)
        return recommend(
            it,
            group_by=group_by or self.params.group_by,
            lead_time_weeks=lead_time_weeks if lead_time_weeks is not None else self.lead_time_for(it),
            hypothetical_orders=hypothetical_orders,
            today=resolve_today(self.today),
            synthetic_prefixes=(self.params.reserved_prefix, self.params.import_prefix),
            upcoming_days=self.params.upcoming_po_days,
        )

    def recommend_all(self) -> Dict[str, RecommendationResult]:
        return {code: self.recommend(code) for code in self.items}
