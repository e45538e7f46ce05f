from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

LONG_TERM_THRESHOLD_DAYS = 365


@dataclass(frozen=True)
class TaxEvent:
    asset: str
    quantity_sold: Decimal
    cost_basis: Decimal
    proceeds: Decimal
    gain_loss: Decimal
    holding_period_days: int
    is_long_term: bool
    tax_year: int
    disposed_at: datetime
    acquired_at: datetime
    sell_transaction_id: UUID | None = None
    buy_transaction_id: UUID | None = None


__all__ = ["LONG_TERM_THRESHOLD_DAYS", "TaxEvent"]
