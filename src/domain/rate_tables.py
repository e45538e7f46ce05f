"""Compiled-in rate schedules.

Last resort of the rate resolver when neither the store nor a live source can
answer. UK figures are the HMRC capital gains rates for basic/higher rate
taxpayers and the annual exempt amount; other jurisdictions carry a single
flat short-term rate.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from .rates import Jurisdiction, RateSchedule, TaxBand, TaxRules

COMPILED_SOURCE = "compiled-in"
COMPILED_AT = datetime(2025, 4, 6, tzinfo=timezone.utc)

_UK_RULES = TaxRules(same_day_rule=True, bed_and_breakfast_rule=True, matching_window_days=30)
_US_RULES = TaxRules(wash_sale_rule=True, matching_window_days=30)

# year -> (basic rate band limit, annual exempt amount)
_UK_YEARS: dict[int, tuple[str, str]] = {
    2020: ("37500", "12300"),
    2021: ("37500", "12300"),
    2022: ("37700", "12300"),
    2023: ("37700", "6000"),
    2024: ("37700", "3000"),
    2025: ("37700", "3000"),
}

# jurisdiction -> (rate, allowance, currency, rules)
_FLAT_RATES: dict[Jurisdiction, tuple[str, str, str, TaxRules]] = {
    Jurisdiction.US: ("0.22", "0", "USD", _US_RULES),
    Jurisdiction.CA: ("0.26", "0", "CAD", TaxRules()),
    Jurisdiction.AU: ("0.325", "0", "AUD", TaxRules()),
    Jurisdiction.DE: ("0.42", "600", "EUR", TaxRules()),
    Jurisdiction.FR: ("0.30", "0", "EUR", TaxRules()),
}
_FLAT_YEARS = (2024, 2025)


def _uk_schedule(year: int, basic_band_limit: str, allowance: str) -> RateSchedule:
    limit = Decimal(basic_band_limit)
    return RateSchedule(
        jurisdiction=Jurisdiction.UK,
        tax_year=year,
        bands=(
            TaxBand(rate=Decimal("0.10"), lower_bound=Decimal(0), upper_bound=limit),
            TaxBand(rate=Decimal("0.20"), lower_bound=limit),
        ),
        allowance=Decimal(allowance),
        currency="GBP",
        source=COMPILED_SOURCE,
        last_updated=COMPILED_AT,
        rules=_UK_RULES,
    )


def _flat_schedule(jurisdiction: Jurisdiction, year: int) -> RateSchedule:
    rate, allowance, currency, rules = _FLAT_RATES[jurisdiction]
    return RateSchedule(
        jurisdiction=jurisdiction,
        tax_year=year,
        bands=(TaxBand(rate=Decimal(rate), lower_bound=Decimal(0)),),
        allowance=Decimal(allowance),
        currency=currency,
        source=COMPILED_SOURCE,
        last_updated=COMPILED_AT,
        rules=rules,
    )


def _build() -> Mapping[Jurisdiction, Mapping[int, RateSchedule]]:
    tables: dict[Jurisdiction, Mapping[int, RateSchedule]] = {
        Jurisdiction.UK: MappingProxyType(
            {year: _uk_schedule(year, limit, allowance) for year, (limit, allowance) in _UK_YEARS.items()}
        ),
    }
    for jurisdiction in _FLAT_RATES:
        tables[jurisdiction] = MappingProxyType({year: _flat_schedule(jurisdiction, year) for year in _FLAT_YEARS})

    missing = set(Jurisdiction) - set(tables)
    if missing:
        raise RuntimeError(f"No compiled rate table for jurisdictions: {sorted(missing)}")
    return MappingProxyType(tables)


FALLBACK_SCHEDULES = _build()


__all__ = ["COMPILED_AT", "COMPILED_SOURCE", "FALLBACK_SCHEDULES"]
