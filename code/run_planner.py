# run_planner.py — MRP reorder planner (CLI + orchestration).
# Ingests an MRP export, projects and recommends for every item, and writes
# CSV reports plus the KPI / error text files next to them.

from __future__ import annotations
import argparse
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pandas as pd

from data_loader import CONFIG_NAME, IngestionError, load_params
from diagnostics import run_diagnostics, summarize
from helpers.dates import GROUP_BY_CHOICES
from helpers.safe_io import safe_write_csv, safe_write_lines
from planner import MrpPlanner
from validate_ledger import validate_all

logger = logging.getLogger("run_planner")

ERR_NAME = "planner_error.txt"
KPI_NAME = "planner_kpis.txt"


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mrp-planner",
        description="MRP reorder planner: balance projection and order recommendations from an ERP export.",
    )
    parser.add_argument("input", type=Path, help="Headerless MRP export (CSV)")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory for output files (default: the input file's directory)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"TOML config (default: data-dir/{CONFIG_NAME} if present)",
    )
    parser.add_argument("--group-by", choices=GROUP_BY_CHOICES, default=None, help="Bucket recommendations by week or month")
    lead = parser.add_mutually_exclusive_group()
    lead.add_argument("--lead-time-weeks", type=int, default=None, help="Supplier lead time in weeks (default: 7)")
    lead.add_argument(
        "--lead-time-by-category",
        action="store_true",
        default=None,
        help="Use each item's category lead time instead of a single value",
    )
    parser.add_argument("--as-of", default=None, help="Pin today's date (YYYY-MM-DD) for reproducible runs")
    parser.add_argument("--validate", action="store_true", help="Write validation.txt with ledger invariant checks")
    parser.add_argument(
        "--diagnose",
        action="store_true",
        help="Write diag_attention.csv, diag_critical.csv, diag_categories.csv, diag_monthly_usage.csv",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging (row skips, date coercions)")
    return parser.parse_args(argv)


class RunLog:
    """Plain-text error log and KPI file for one run."""

    def __init__(self, data_dir: Path):
        self.err_file = data_dir / ERR_NAME
        self.kpi_file = data_dir / KPI_NAME

    def reset(self) -> None:
        try:
            self.err_file.unlink(missing_ok=True)
        except OSError:
            pass

    def log(self, msg: str) -> None:
        try:
            with open(self.err_file, "a", encoding="utf-8") as f:
                f.write(msg.rstrip() + "\n")
        except OSError:
            pass

    def write_kpi_lines(self, lines: List[str]) -> None:
        safe_write_lines(lines, self.kpi_file)


def recommendations_frame(planner: MrpPlanner, results: dict) -> pd.DataFrame:
    rows = []
    for code, res in results.items():
        it = planner.items[code]
        base = dict(item=code, vendor=it.vendor, category=it.category)
        upcoming = res.upcoming_po_info.total_quantity if res.upcoming_po_info else 0
        if res.resolving_transaction is not None:
            t = res.resolving_transaction
            rows.append(dict(
                base, group_key="", bucket_start=None, needs_by=None, order_due_date=None, quantity=0,
                resolving_po=t.part_number, resolving_po_date=t.due_date, upcoming_po_quantity=upcoming,
            ))
        for s in res.suggestions:
            rows.append(dict(
                base, group_key=s.group_key, bucket_start=s.bucket_start, needs_by=s.needs_by,
                order_due_date=s.order_due_date(planner.today), quantity=s.quantity,
                resolving_po="", resolving_po_date=None, upcoming_po_quantity=upcoming,
            ))
    return pd.DataFrame(rows, columns=[
        "item", "vendor", "category", "group_key", "bucket_start", "needs_by", "order_due_date",
        "quantity", "resolving_po", "resolving_po_date", "upcoming_po_quantity",
    ])


def projection_frame(planner: MrpPlanner) -> pd.DataFrame:
    rows = [
        dict(item=it.item, date=rt.date, type=rt.type, description=rt.description, balance=rt.balance)
        for it in planner.items.values()
        for rt in it.running_totals
    ]
    return pd.DataFrame(rows, columns=["item", "date", "type", "description", "balance"])


def grouped_orders_frame(planner: MrpPlanner) -> pd.DataFrame:
    rows = [
        dict(
            item=it.item, vendor=g.vendor, category=g.category, group_by=g.group_by,
            group_key=g.group_key, group_date=g.group_date, quantity=g.quantity,
        )
        for it in planner.items.values()
        for g in it.grouped_orders
    ]
    return pd.DataFrame(rows, columns=["item", "vendor", "category", "group_by", "group_key", "group_date", "quantity"])


def _kpi_lines(planner: MrpPlanner, results: dict) -> List[str]:
    items = list(planner.items.values())
    summary = summarize(items)
    rpt = planner.report
    n_sugg = sum(len(r.suggestions) for r in results.values())
    total_qty = sum(r.total_quantity for r in results.values())
    resolved = sum(1 for r in results.values() if r.resolving_transaction is not None)
    return [
        "Status: OK",
        f"Items: {summary['total_items']}",
        f"Negative starting balance: {summary['negative_balance']}",
        f"Items requiring order: {summary['requiring_order']}",
        f"Suggestions: {n_sugg} (total quantity {total_qty:g})",
        f"Resolved by existing PO: {resolved}",
        f"Rows read: {rpt.rows_read}  skipped: {rpt.rows_skipped}  "
        f"dates coerced: {rpt.dates_coerced}  duplicates: {rpt.duplicates}",
    ]


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    data_dir = (args.data_dir or args.input.parent).resolve()
    data_dir.mkdir(parents=True, exist_ok=True)
    run = RunLog(data_dir)
    run.reset()
    run.log(f"[{datetime.now()}] START input={args.input} group_by={args.group_by} as_of={args.as_of}")

    try:
        params = load_params(
            args.config if args.config is not None else data_dir / CONFIG_NAME,
            group_by=args.group_by,
            lead_time_weeks=args.lead_time_weeks,
            lead_time_by_category=args.lead_time_by_category,
            as_of_date=args.as_of,
        )
        planner = MrpPlanner(params)
        try:
            planner.ingest_file(args.input)
        except IngestionError as exc:
            run.log(f"[{datetime.now()}] INGESTION FAILED: {exc}")
            run.write_kpi_lines([f"Status: ERROR — {planner.status}"])
            return 1

        results = planner.recommend_all()
        safe_write_csv(recommendations_frame(planner, results), data_dir / "recommendations.csv")
        safe_write_csv(projection_frame(planner), data_dir / "projection.csv")
        safe_write_csv(grouped_orders_frame(planner), data_dir / "grouped_orders.csv")
        if args.validate:
            validate_all(list(planner.items.values()), planner.worklist, data_dir / "validation.txt")
        if args.diagnose:
            run_diagnostics(
                list(planner.items.values()), data_dir, planner.today, params.attention_window_days,
            )
        run.write_kpi_lines(_kpi_lines(planner, results))
        logger.info("planner run complete: %s", planner.status)
        return 0
    except Exception:
        run.log("\n=== FATAL ERROR ===\n" + traceback.format_exc())
        run.write_kpi_lines([f"Status: ERROR — see {ERR_NAME}"])
        logger.exception("planner run failed")
        return 1


if __name__ == "__main__":
    sys.exit(main())
