from __future__ import annotations

from typing import Protocol

from .rates import Jurisdiction, RateSchedule


class RateUnavailableError(Exception):
    def __init__(self, message: str, *, jurisdiction: str, tax_year: int) -> None:
        super().__init__(message)
        self.jurisdiction = jurisdiction
        self.tax_year = tax_year


class RateProvider(Protocol):
    """Lookup interface for a jurisdiction's rate schedule in a tax year."""

    def resolve(self, jurisdiction: Jurisdiction, year: int) -> RateSchedule: ...
