"""Tests for the forward simulation that produces bucketed reorder suggestions."""

from datetime import date
from types import SimpleNamespace

import pytest

from conftest import TODAY, build_item
from helpers.dates import needs_by
from ledger import TxType
from recommendation import (
    CURRENT_SHORTAGE,
    EPSILON,
    lead_time_days,
    lead_time_weeks_for,
    recommend,
)


def _recommend(item, **kw):
    kw.setdefault("today", TODAY)
    return recommend(item, **kw)


class TestNeedsBy:
    def test_seven_week_lead_time(self):
        assert needs_by(date(2024, 3, 4), 7) == date(2024, 1, 15)

    def test_suggestion_carries_needs_by(self):
        it = build_item(0, (TxType.OPEN_SALE, date(2024, 3, 6), 40, "S1"))
        res = _recommend(it, lead_time_weeks=7)
        [s] = res.suggestions
        assert s.group_key == "2024-3-4"
        assert s.bucket_start == date(2024, 3, 4)
        assert s.quantity == 40
        assert s.needs_by == date(2024, 1, 15)


class TestRecommend:
    def test_item_without_shortfall_is_not_reviewed(self):
        it = build_item(500, (TxType.OPEN_SALE, date(2024, 1, 20), 100, "S1"))
        res = _recommend(it)
        assert res.suggestions == []
        assert res.resolving_transaction is None
        assert res.upcoming_po_info is None

    def test_future_po_that_clears_shortage_is_reported(self):
        it = build_item(
            0,
            (TxType.OPEN_SALE, date(2024, 2, 1), 50, "S1"),
            (TxType.OPEN_PO, date(2024, 2, 10), 60, "PO-9"),
        )
        res = _recommend(it)
        assert res.suggestions == []
        assert res.resolving_transaction.part_number == "PO-9"

    def test_upcoming_po_counts_as_stock_on_hand(self):
        it = build_item(
            0,
            (TxType.OPEN_SALE, date(2024, 1, 9), 40, "S1"),
            (TxType.OPEN_PO, date(2024, 1, 10), 30, "PO-1"),
            (TxType.OPEN_SALE, date(2024, 2, 1), 20, "S2"),
        )
        res = _recommend(it)
        assert res.upcoming_po_info.total_quantity == 30
        assert [p.part_number for p in res.upcoming_po_info.pos] == ["PO-1"]
        assert [(s.group_key, s.quantity) for s in res.suggestions] == [("2024-1-8", 10), ("2024-1-29", 20)]
        assert res.total_quantity == 30

    def test_hypothetical_orders_reduce_suggestions(self):
        it = build_item(
            0,
            (TxType.OPEN_SALE, date(2024, 1, 9), 40, "S1"),
            (TxType.OPEN_PO, date(2024, 1, 10), 30, "PO-1"),
            (TxType.OPEN_SALE, date(2024, 2, 1), 20, "S2"),
        )
        res = _recommend(it, hypothetical_orders=[SimpleNamespace(quantity=15)])
        assert [(s.group_key, s.quantity) for s in res.suggestions] == [("2024-1-29", 15)]

    def test_hypothetical_orders_as_mappings(self):
        """Orders in the worklist's dict shape count the same as objects."""
        it = build_item(
            0,
            (TxType.OPEN_SALE, date(2024, 1, 9), 40, "S1"),
            (TxType.OPEN_PO, date(2024, 1, 10), 30, "PO-1"),
            (TxType.OPEN_SALE, date(2024, 2, 1), 20, "S2"),
        )
        res = _recommend(it, hypothetical_orders=[{"item": "X1", "quantity": "15", "dueDate": "2/1/24"}])
        assert [(s.group_key, s.quantity) for s in res.suggestions] == [("2024-1-29", 15)]

    def test_hypothetical_order_without_quantity_is_rejected(self):
        it = build_item(0, (TxType.OPEN_SALE, date(2024, 1, 9), 40, "S1"))
        with pytest.raises(TypeError, match="no quantity"):
            _recommend(it, hypothetical_orders=[{"item": "X1", "dueDate": "2/1/24"}])
        with pytest.raises(TypeError, match="no quantity"):
            _recommend(it, hypothetical_orders=[object()])

    def test_current_shortage_lands_in_this_bucket(self):
        it = build_item(-25)
        res = _recommend(it)
        [s] = res.suggestions
        assert (s.group_key, s.quantity) == ("2024-1-8", 25)
        assert s.contributing[0].type == CURRENT_SHORTAGE
        assert s.needs_by == date(2023, 11, 20)
        # needs-by already passed, so an accepted order is due tomorrow
        assert s.order_due_date(TODAY) == date(2024, 1, 9)

    def test_past_due_demand_is_clamped_to_today(self):
        it = build_item(0, (TxType.OPEN_SALE, date(2023, 12, 1), 10, "S1"))
        [s] = _recommend(it).suggestions
        assert s.bucket_start == date(2024, 1, 8)

    def test_same_bucket_suggestions_consolidate(self):
        it = build_item(
            0,
            (TxType.OPEN_SALE, date(2024, 1, 9), 10, "S1"),
            (TxType.OPEN_SALE, date(2024, 1, 10), 5, "S2"),
        )
        [s] = _recommend(it).suggestions
        assert s.quantity == 15
        assert [c.part_number for c in s.contributing] == ["S1", "S2"]

    def test_month_grouping(self):
        it = build_item(
            0,
            (TxType.OPEN_SALE, date(2024, 1, 9), 10, "S1"),
            (TxType.OPEN_SALE, date(2024, 1, 25), 5, "S2"),
        )
        res = _recommend(it, group_by="month")
        assert [(s.group_key, s.bucket_start, s.quantity) for s in res.suggestions] == [
            ("2024-1", date(2024, 1, 1), 15)
        ]

    def test_covered_sale_does_not_create_suggestion(self):
        it = build_item(
            10,
            (TxType.ISSUED_WO, date(2024, 1, 9), 30, "P1"),
            (TxType.OPEN_SALE, date(2024, 1, 12), 30, "P1"),
        )
        [s] = _recommend(it).suggestions
        assert s.quantity == 20
        assert s.contributing[0].type == int(TxType.ISSUED_WO)

    def test_synthetic_pos_are_left_to_hypotheticals(self):
        it = build_item(
            0,
            (TxType.OPEN_SALE, date(2024, 1, 9), 5, "S0"),
            (TxType.OPEN_PO, date(2024, 1, 18), 10, "UI-abc"),
            (TxType.OPEN_SALE, date(2024, 1, 20), 10, "S1"),
        )
        res = _recommend(it, synthetic_prefixes=("UI-",))
        assert res.resolving_transaction is None
        assert [(s.group_key, s.quantity) for s in res.suggestions] == [("2024-1-8", 5), ("2024-1-15", 10)]
        # without the prefix the worklist PO looks like a real one that clears the shortage
        res = _recommend(it, synthetic_prefixes=())
        assert res.resolving_transaction.part_number == "UI-abc"

    def test_suggestions_are_always_positive(self):
        it = build_item(
            3,
            (TxType.OPEN_SALE, date(2024, 1, 9), 3, "S1"),
            (TxType.OPEN_SALE, date(2024, 1, 16), 1, "S2"),
            (TxType.OPEN_SALE, date(2024, 2, 20), 7, "S3"),
        )
        res = _recommend(it)
        assert [s.quantity for s in res.suggestions] == [1, 7]
        assert all(s.quantity > EPSILON for s in res.suggestions)


class TestCategoryLeadTime:
    def test_category_tables(self):
        assert lead_time_days("H") == 45
        assert lead_time_days("TM") == 50
        assert lead_time_days("WC2") == 55
        assert lead_time_days("BH") == 60
        assert lead_time_days("ZZZ") == 50
        assert lead_time_days(None) == 50

    def test_weeks_round_up(self):
        assert lead_time_weeks_for("H") == 7
        assert lead_time_weeks_for("BH") == 9
