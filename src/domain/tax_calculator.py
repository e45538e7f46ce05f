from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Sequence

from .diagnostics import Diagnostic, DiagnosticKind
from .rate_provider import RateProvider, RateUnavailableError
from .rates import Jurisdiction, TaxBand
from .tax_event import TaxEvent

logger = logging.getLogger(__name__)

ZERO = Decimal(0)


@dataclass(frozen=True)
class GainsTotals:
    total_gains: Decimal
    total_losses: Decimal

    @property
    def net(self) -> Decimal:
        return self.total_gains + self.total_losses


@dataclass
class TaxSummary:
    """Liability estimate for one tax year.

    `estimated_tax is None` means no rate schedule could be found, which is
    different from zero tax due.
    """

    tax_year: int
    jurisdiction: Jurisdiction
    event_count: int
    total_gains: Decimal
    total_losses: Decimal
    net_gain_loss: Decimal
    short_term_gains: Decimal
    short_term_losses: Decimal
    long_term_gains: Decimal
    long_term_losses: Decimal
    allowance: Decimal | None = None
    taxable_gains: Decimal | None = None
    estimated_tax: Decimal | None = None
    currency: str | None = None
    rate_source: str | None = None
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def tax_known(self) -> bool:
        return self.estimated_tax is not None


def summarize(events: Iterable[TaxEvent]) -> GainsTotals:
    gains = ZERO
    losses = ZERO
    for event in events:
        gains += max(ZERO, event.gain_loss)
        losses += min(ZERO, event.gain_loss)
    return GainsTotals(total_gains=gains, total_losses=losses)


def net_taxable(total_gains: Decimal, total_losses: Decimal, allowance: Decimal) -> Decimal:
    # Losses offset gains before the allowance is applied.
    return max(ZERO, total_gains + total_losses - allowance)


def progressive_tax(taxable: Decimal, bands: Sequence[TaxBand]) -> Decimal:
    """Apply `bands` (ascending, tiling [0, inf)) to `taxable`."""
    total = ZERO
    for band in bands:
        if taxable <= band.lower_bound:
            break
        upper = taxable if band.upper_bound is None else min(taxable, band.upper_bound)
        taxed_in_band = max(ZERO, upper - band.lower_bound)
        total += taxed_in_band * band.rate
    return total


class TaxCalculator:
    def __init__(self, *, rate_provider: RateProvider) -> None:
        self._rate_provider = rate_provider

    def calculate(
        self,
        events: Sequence[TaxEvent],
        *,
        tax_year: int,
        jurisdiction: Jurisdiction,
        diagnostics: Iterable[Diagnostic] = (),
    ) -> TaxSummary:
        totals = summarize(events)
        short_term = summarize(event for event in events if not event.is_long_term)
        long_term = summarize(event for event in events if event.is_long_term)

        summary = TaxSummary(
            tax_year=tax_year,
            jurisdiction=jurisdiction,
            event_count=len(events),
            total_gains=totals.total_gains,
            total_losses=totals.total_losses,
            net_gain_loss=totals.net,
            short_term_gains=short_term.total_gains,
            short_term_losses=short_term.total_losses,
            long_term_gains=long_term.total_gains,
            long_term_losses=long_term.total_losses,
            diagnostics=list(diagnostics),
        )

        try:
            schedule = self._rate_provider.resolve(jurisdiction, tax_year)
        except RateUnavailableError as exc:
            logger.warning("Tax estimate unavailable for %s %s: %s", jurisdiction, tax_year, exc)
            summary.diagnostics.append(
                Diagnostic(kind=DiagnosticKind.RATE_UNAVAILABLE, message=str(exc)),
            )
            return summary

        taxable = net_taxable(totals.total_gains, totals.total_losses, schedule.allowance)
        summary.allowance = schedule.allowance
        summary.taxable_gains = taxable
        summary.estimated_tax = progressive_tax(taxable, schedule.bands)
        summary.currency = schedule.currency
        summary.rate_source = schedule.source
        return summary


__all__ = ["GainsTotals", "TaxCalculator", "TaxSummary", "net_taxable", "progressive_tax", "summarize"]
