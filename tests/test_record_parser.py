"""Tests for row normalization and the seed/transaction fold."""

import math
from datetime import date

import pytest

from conftest import TODAY
from ledger import TxType
from record_parser import (
    ceiling_round,
    normalize_date,
    normalize_quantity,
    parse_float_prefix,
    parse_rows,
)


class TestNormalizeDate:
    """M/D/Y and ISO dates parse; missing, sentinel and invalid dates become today."""

    def test_month_day_two_digit_year(self):
        assert normalize_date("1/10/24", TODAY) == (date(2024, 1, 10), False)

    def test_four_digit_year_and_iso(self):
        assert normalize_date("3/4/2024", TODAY) == (date(2024, 3, 4), False)
        assert normalize_date("2024-03-04", TODAY) == (date(2024, 3, 4), False)

    def test_two_digit_years_pivot_at_fifty(self):
        assert normalize_date("1/5/49", TODAY)[0].year == 2049
        assert normalize_date("1/5/99", TODAY)[0].year == 1999

    @pytest.mark.parametrize("raw", ["", None, "   ", "00/00/0000", "0", "00-00-00", "not a date"])
    def test_missing_or_sentinel_is_today(self, raw):
        assert normalize_date(raw, TODAY) == (TODAY, True)

    def test_impossible_calendar_date_is_today(self):
        assert normalize_date("2/30/24", TODAY) == (TODAY, True)


class TestQuantities:
    """Quantities are ceiling-rounded; the export's quote and minus noise is stripped."""

    @pytest.mark.parametrize("raw", ["12.1", "0.0001", "7", "99.999", "3e2"])
    def test_ceiling_round_matches_ceil_of_float(self, raw):
        assert ceiling_round(raw) == math.ceil(float(raw))

    def test_ceiling_round_is_idempotent_on_integers(self):
        assert ceiling_round(str(ceiling_round("41.2"))) == 42

    def test_numeric_prefix_like_parse_float(self):
        assert parse_float_prefix("12.5 EA") == 12.5
        assert ceiling_round("12.5 EA") == 13

    def test_quoted_negative_quantity_becomes_positive(self):
        assert normalize_quantity("-25") == 25
        assert normalize_quantity('"-25"') == 25
        assert normalize_quantity("'-2.5'") == 3

    def test_keep_sign_for_beginning_balance(self):
        assert normalize_quantity("-20", keep_sign=True) == -20

    @pytest.mark.parametrize("raw", ["", "abc", "nan", "inf"])
    def test_unparseable_raises_value_error(self, raw):
        with pytest.raises(ValueError):
            normalize_quantity(raw)


class TestParseRows:
    """Fold over rows: seeds open items, other rows attach to the last seed."""

    def test_beginning_balance_and_open_sale(self):
        items, report = parse_rows(
            [["0", "ITEM1", "1/1/24", "", "100"], ["4", "ITEM1", "1/10/24", "P1", "150"]],
            today=TODAY,
        )
        assert len(items) == 1
        it = items[0]
        assert it.item == "ITEM1"
        assert it.starting_balance == 100
        assert len(it.open_sales) == 1
        sale = it.open_sales[0]
        assert (sale.quantity, sale.due_date, sale.covered) == (150, date(2024, 1, 10), False)
        assert report.rows_read == 2
        assert report.rows_skipped == 0

    def test_negative_quoted_po_quantity(self):
        items, _ = parse_rows(
            [["0", "ITEM1", "1/1/24", "", "100"], ["1", "ITEM1", "1/20/24", "", '"-25"', "V", "PO-1"]],
            today=TODAY,
        )
        po = items[0].purchase_orders[0]
        assert po.quantity == 25
        assert po.purchase_order_number == "PO-1"

    def test_seed_row_carries_vendor_and_category(self):
        items, _ = parse_rows([["0", "A", "1/1/24", "", "5", "ACME", "", "H"]], today=TODAY)
        assert (items[0].vendor, items[0].category) == ("ACME", "H")

    def test_min_balance_rows_are_counted_and_dropped(self):
        items, report = parse_rows(
            [["0", "A", "1/1/24", "", "5"], ["8", "A", "1/1/24", "", "50"]],
            today=TODAY,
        )
        assert items[0].transactions == []
        assert report.min_balance_rows == 1
        assert report.rows_skipped == 0

    def test_row_before_any_seed_is_skipped(self):
        items, report = parse_rows([["4", "A", "1/10/24", "P1", "10"]], today=TODAY)
        assert items == []
        assert report.skipped[0].row_number == 1
        assert "beginning balance" in report.skipped[0].reason

    def test_short_and_malformed_rows_are_skipped(self):
        rows = [
            ["0", "A", "1/1/24", "", "5"],
            ["4", "A"],
            ["x", "A", "1/10/24", "P1", "10"],
            ["4", "A", "1/10/24", "P1", "lots"],
            ["4", "A", "1/11/24", "P1", "10"],
        ]
        items, report = parse_rows(rows, today=TODAY)
        assert [s.row_number for s in report.skipped] == [2, 3, 4]
        assert len(items[0].transactions) == 1

    def test_bad_seed_does_not_leak_rows_into_previous_item(self):
        rows = [
            ["0", "A", "1/1/24", "", "5"],
            ["0", "B", "1/1/24", "", "??"],
            ["4", "B", "1/10/24", "P1", "10"],
        ]
        items, report = parse_rows(rows, today=TODAY)
        assert [it.item for it in items] == ["A"]
        assert items[0].transactions == []
        assert report.rows_skipped == 2

    def test_duplicate_rows_are_counted_once(self):
        row = ["4", "A", "1/10/24", "P1", "10"]
        items, report = parse_rows([["0", "A", "1/1/24", "", "5"], row, list(row)], today=TODAY)
        assert len(items[0].transactions) == 1
        assert report.duplicates == 1

    def test_coerced_dates_are_counted(self):
        items, report = parse_rows(
            [["0", "A", "1/1/24", "", "5"], ["4", "A", "00/00/00", "P1", "10"]],
            today=TODAY,
        )
        assert items[0].transactions[0].due_date == TODAY
        assert report.dates_coerced == 1

    def test_transaction_types_are_int_enum_codes(self):
        items, _ = parse_rows(
            [["0", "A", "1/1/24", "", "5"], ["6", "A", "1/10/24", "P1", "10"]],
            today=TODAY,
        )
        assert items[0].transactions[0].type == TxType.ISSUED_WO
        assert items[0].work_orders[0].is_released is False
