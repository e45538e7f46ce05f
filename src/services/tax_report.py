from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol, Sequence

from domain.ledger import OpenLotSnapshot
from domain.rates import Jurisdiction
from domain.tax_calculator import TaxCalculator, TaxSummary
from domain.tax_event import TaxEvent
from domain.tax_lots import TaxLotEngine
from domain.transactions import Transaction

logger = logging.getLogger(__name__)


class TaxEventStore(Protocol):
    def replace_for_year(self, user_id: str, tax_year: int, events: Sequence[TaxEvent]) -> None: ...


@dataclass
class TaxReport:
    user_id: str
    summary: TaxSummary
    events: list[TaxEvent] = field(default_factory=list)
    open_lots: list[OpenLotSnapshot] = field(default_factory=list)


class TaxReportService:
    """Recompute one (user, tax year): match lots, persist events, estimate tax."""

    def __init__(
        self,
        *,
        engine: TaxLotEngine,
        calculator: TaxCalculator,
        event_store: TaxEventStore | None = None,
    ) -> None:
        self.engine = engine
        self.calculator = calculator
        self.event_store = event_store

    def compute(
        self,
        user_id: str,
        records: Iterable[Transaction | Mapping[str, Any]],
        *,
        tax_year: int,
        jurisdiction: Jurisdiction,
    ) -> TaxReport:
        lot_result = self.engine.process(records, tax_year)
        if self.event_store is not None:
            self.event_store.replace_for_year(user_id, tax_year, lot_result.events)
            logger.info("Stored %d tax events for user=%s year=%s", len(lot_result.events), user_id, tax_year)

        summary = self.calculator.calculate(
            lot_result.events,
            tax_year=tax_year,
            jurisdiction=jurisdiction,
            diagnostics=lot_result.diagnostics,
        )
        return TaxReport(
            user_id=user_id,
            summary=summary,
            events=lot_result.events,
            open_lots=lot_result.open_lots,
        )


__all__ = ["TaxEventStore", "TaxReport", "TaxReportService"]
