from __future__ import annotations

import argparse
import csv
import logging
from pathlib import Path
from typing import Any, Sequence

from config import config
from db.db import init_db
from db.repositories import RateScheduleRepository, TaxEventRepository
from domain.rates import Jurisdiction
from domain.tax_calculator import TaxCalculator
from domain.tax_lots import TaxLotEngine
from services.rate_refresh import RefreshQueue, refresh_pending
from services.rate_resolver import RateResolver
from services.rate_sources import GovUkRateSource, RoutingRateSource
from services.rate_store import JsonRateStore, RateStore
from services.tax_report import TaxReportService
from utils.tax_summary import render_tax_events, render_tax_summary

CSV_FIELDS = ("asset", "type", "quantity", "unit_price", "timestamp", "exchange")


def load_transactions(csv_path: Path) -> list[dict[str, Any]]:
    """Read an already-normalized transaction CSV, sorted by timestamp.

    Rows are passed through untouched; validation happens in the engine so a
    bad row becomes a diagnostic instead of stopping the run.
    """
    with csv_path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        missing = [name for name in CSV_FIELDS[:-1] if name not in (reader.fieldnames or [])]
        if missing:
            msg = f"{csv_path} is missing columns: {', '.join(missing)}"
            raise ValueError(msg)
        return [{key: (value if value != "" else None) for key, value in row.items()} for row in reader]


def run(
    csv_path: Path,
    *,
    tax_year: int,
    jurisdiction: Jurisdiction,
    user_id: str,
    db_file: Path,
    rate_cache_dir: Path | None,
    offline: bool,
    refresh_stale: bool,
) -> None:
    session_factory = init_db(db_file=db_file)
    rate_store: RateStore = (
        JsonRateStore(root_dir=rate_cache_dir) if rate_cache_dir is not None else RateScheduleRepository(session_factory)
    )
    source = None if offline else RoutingRateSource({Jurisdiction.UK: GovUkRateSource()})
    refresh_queue = RefreshQueue()
    resolver = RateResolver(store=rate_store, source=source, refresher=refresh_queue)

    service = TaxReportService(
        engine=TaxLotEngine(),
        calculator=TaxCalculator(rate_provider=resolver),
        event_store=TaxEventRepository(session_factory),
    )

    records = load_transactions(csv_path)
    report = service.compute(user_id, records, tax_year=tax_year, jurisdiction=jurisdiction)

    print(f"Loaded {len(records)} records from {csv_path}")
    render_tax_events(report.events, currency=report.summary.currency or "")
    render_tax_summary(report.summary)

    if refresh_stale and len(refresh_queue):
        outcome = refresh_pending(refresh_queue, resolver.refresh)
        print(f"Refreshed {len(outcome.refreshed)} stale rate schedule(s), {len(outcome.failed)} failed")


def main(argv: Sequence[str] | None = None) -> None:
    settings = config()
    parser = argparse.ArgumentParser(description="Compute FIFO capital gains and estimated tax for one tax year.")
    parser.add_argument("--csv", type=Path, required=True, help="Normalized transactions CSV")
    parser.add_argument("--year", type=int, required=True)
    parser.add_argument(
        "--jurisdiction",
        type=Jurisdiction,
        choices=list(Jurisdiction),
        default=Jurisdiction(settings.default_jurisdiction),
    )
    parser.add_argument("--user", default="local")
    parser.add_argument("--db", type=Path, default=settings.db_file)
    parser.add_argument("--rate-cache-dir", type=Path, default=None, help="Keep rate schedules as JSON files here")
    parser.add_argument("--offline", action="store_true", help="Never contact live rate sources")
    parser.add_argument("--refresh-stale", action="store_true", help="Refresh stale rate schedules before exiting")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    run(
        args.csv,
        tax_year=args.year,
        jurisdiction=args.jurisdiction,
        user_id=args.user,
        db_file=args.db,
        rate_cache_dir=args.rate_cache_dir,
        offline=args.offline,
        refresh_stale=args.refresh_stale,
    )


if __name__ == "__main__":
    main()
