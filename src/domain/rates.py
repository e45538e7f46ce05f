from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Jurisdiction(StrEnum):
    UK = "UK"
    US = "US"
    CA = "CA"
    AU = "AU"
    DE = "DE"
    FR = "FR"


class TaxBand(BaseModel):
    """A slice of the taxable amount taxed at a single rate.

    `rate` is a fraction (0.2 means 20%). `upper_bound=None` marks the
    unbounded top band.
    """

    model_config = ConfigDict(frozen=True)

    rate: Decimal = Field(ge=0, le=1)
    lower_bound: Decimal = Field(ge=0)
    upper_bound: Decimal | None = None

    @model_validator(mode="after")
    def _validate_bounds(self) -> TaxBand:
        if self.upper_bound is not None and self.upper_bound <= self.lower_bound:
            raise ValueError("upper_bound must be greater than lower_bound")
        return self


class TaxRules(BaseModel):
    """Matching rules a jurisdiction defines.

    Informational only: lot matching is plain FIFO everywhere.
    """

    model_config = ConfigDict(frozen=True)

    same_day_rule: bool = False
    bed_and_breakfast_rule: bool = False
    wash_sale_rule: bool = False
    matching_window_days: int | None = None


class RateSchedule(BaseModel):
    model_config = ConfigDict(frozen=True)

    jurisdiction: Jurisdiction
    tax_year: int
    bands: tuple[TaxBand, ...]
    allowance: Decimal = Field(ge=0)
    currency: str
    source: str
    last_updated: datetime
    rules: TaxRules = TaxRules()

    @field_validator("last_updated")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _validate_bands(self) -> RateSchedule:
        # Bands must tile [0, inf) without gaps or overlaps.
        if not self.bands:
            raise ValueError("RateSchedule must have at least one band")
        if self.bands[0].lower_bound != 0:
            raise ValueError("First band must start at 0")
        for previous, current in zip(self.bands, self.bands[1:]):
            if previous.upper_bound is None:
                raise ValueError("Only the last band may be unbounded")
            if current.lower_bound != previous.upper_bound:
                raise ValueError(
                    f"Bands are not contiguous: {previous.upper_bound} followed by {current.lower_bound}"
                )
        if self.bands[-1].upper_bound is not None:
            raise ValueError("Last band must be unbounded")
        return self

    def with_last_updated(self, timestamp: datetime) -> RateSchedule:
        return self.model_copy(update={"last_updated": timestamp})


__all__ = ["Jurisdiction", "RateSchedule", "TaxBand", "TaxRules"]
