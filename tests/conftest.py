"""Shared fixtures: a pinned "today", a small MRP export, and an ingested planner."""

from datetime import date

import pytest

from balance_projector import project_item
from coverage_matcher import match_work_orders
from data_loader import Params
from ledger import StockItem, TransactionRecord
from planner import MrpPlanner

# A Monday, so week buckets start on it.
TODAY = date(2024, 1, 8)

# ITEM1: short 50 on 1/10 (no supply at all)
# ITEM2: negative start, cleared by PO-77 on 2/15, short again on 3/6
# ITEM3: healthy; its type-8 row is ignored
SAMPLE_EXPORT = "\n".join([
    "0,ITEM1,1/1/24,,100,ACME,,H",
    "4,ITEM1,1/10/24,P1,150",
    "0,ITEM2,1/1/24,,-20,BOLTCO,,W",
    "1,ITEM2,2/15/24,,30,BOLTCO,PO-77",
    "4,ITEM2,3/6/24,S9,40",
    "0,ITEM3,1/1/24,,500,ACME,,H",
    "4,ITEM3,1/20/24,S1,100",
    "8,ITEM3,1/1/24,,50",
]) + "\n"


def build_item(starting_balance, *transactions, vendor="", category="", item="X1"):
    """StockItem from ``(type, due_date, quantity, part_number)`` tuples, matched and projected."""
    it = StockItem(item=item, starting_balance=starting_balance, vendor=vendor, category=category)
    for tx_type, due, qty, part in transactions:
        it.attach(TransactionRecord(type=tx_type, due_date=due, quantity=qty, part_number=part))
    it.normalize()
    match_work_orders(it)
    project_item(it, "week", TODAY)
    return it


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def sample_export():
    return SAMPLE_EXPORT


@pytest.fixture
def planner():
    p = MrpPlanner(Params(), today=TODAY)
    p.ingest(SAMPLE_EXPORT)
    return p
