from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from config import config

from .diagnostics import Diagnostic, DiagnosticKind
from .ledger import LotLedger, OpenLotSnapshot
from .tax_event import LONG_TERM_THRESHOLD_DAYS, TaxEvent
from .transactions import Transaction, TransactionType, ingest_transactions

logger = logging.getLogger(__name__)


class UnsortedTransactionsError(ValueError):
    def __init__(self, *, previous: Transaction, current: Transaction) -> None:
        self.previous = previous
        self.current = current
        super().__init__(
            f"Transactions must be sorted by timestamp: {current.type} {current.asset} "
            f"@{current.timestamp.isoformat()} follows @{previous.timestamp.isoformat()}"
        )


@dataclass
class TaxLotResult:
    tax_year: int
    events: list[TaxEvent] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    open_lots: list[OpenLotSnapshot] = field(default_factory=list)


def tax_year_of(timestamp: datetime) -> int:
    return timestamp.year


class TaxLotEngine:
    """Turn a chronological transaction stream into FIFO-matched tax events."""

    def __init__(self, *, fiat_currency_codes: Iterable[str] | None = None) -> None:
        codes = {code.upper() for code in (fiat_currency_codes or config().fiat_currency_codes)}
        if not codes:
            msg = "fiat_currency_codes must contain at least one entry"
            raise ValueError(msg)
        self._fiat_codes = frozenset(codes)

    def process(self, records: Iterable[Transaction | Mapping[str, Any]], tax_year: int) -> TaxLotResult:
        """Compute the tax events for `tax_year`.

        `records` must cover every year and be sorted by timestamp ascending.
        Every buy, whatever its year, opens a lot before any sell is matched;
        only non-fiat sells inside `tax_year` are matched against them.
        """
        ingestion = ingest_transactions(records)
        result = TaxLotResult(tax_year=tax_year, diagnostics=list(ingestion.diagnostics))
        ledger = LotLedger()

        buys: list[Transaction] = []
        sells: list[Transaction] = []
        previous: Transaction | None = None
        for transaction in ingestion.transactions:
            if previous is not None and transaction.timestamp < previous.timestamp:
                raise UnsortedTransactionsError(previous=previous, current=transaction)
            previous = transaction

            if transaction.type == TransactionType.BUY:
                buys.append(transaction)
            elif (
                transaction.type == TransactionType.SELL
                and not self.is_fiat(transaction.asset)
                and tax_year_of(transaction.timestamp) == tax_year
            ):
                sells.append(transaction)

        for transaction in buys:
            ledger.add_lot(
                transaction.asset,
                transaction.quantity,
                transaction.unit_price,
                transaction.timestamp,
                source_id=transaction.id,
            )

        for transaction in sells:
            self._dispose(ledger, transaction, result)

        result.open_lots = ledger.open_lots()
        return result

    def is_fiat(self, asset: str) -> bool:
        return asset.upper() in self._fiat_codes

    def _dispose(self, ledger: LotLedger, sell: Transaction, result: TaxLotResult) -> None:
        available = ledger.total_available(sell.asset)
        if available == 0:
            message = (
                f"No open lots for asset={sell.asset} sell={sell.id} @{sell.timestamp.isoformat()} "
                f"quantity={sell.quantity}; disposal skipped"
            )
            logger.warning(message)
            result.diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.NO_OPEN_LOTS,
                    message=message,
                    asset=sell.asset,
                    timestamp=sell.timestamp,
                    quantity=sell.quantity,
                )
            )
            return

        want = min(sell.quantity, available)
        if want < sell.quantity:
            shortfall = sell.quantity - want
            message = (
                f"Only {available} {sell.asset} open for sell={sell.id} @{sell.timestamp.isoformat()} "
                f"quantity={sell.quantity}; {shortfall} unmatched"
            )
            logger.warning(message)
            result.diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.INSUFFICIENT_LOTS,
                    message=message,
                    asset=sell.asset,
                    timestamp=sell.timestamp,
                    quantity=shortfall,
                )
            )

        consumption = ledger.consume(sell.asset, want)
        if consumption.oldest_acquired_at is None:
            return

        for match in consumption.matches:
            logger.debug(
                "Matched %s %s from lot @%s at unit cost %s",
                match.quantity,
                sell.asset,
                match.acquired_at.isoformat(),
                match.unit_cost,
            )

        proceeds = sell.unit_price * want
        cost_basis = consumption.consumed_cost_basis
        holding_period_days = (sell.timestamp - consumption.oldest_acquired_at).days
        result.events.append(
            TaxEvent(
                asset=sell.asset,
                quantity_sold=want,
                cost_basis=cost_basis,
                proceeds=proceeds,
                gain_loss=proceeds - cost_basis,
                holding_period_days=holding_period_days,
                is_long_term=holding_period_days > LONG_TERM_THRESHOLD_DAYS,
                tax_year=result.tax_year,
                disposed_at=sell.timestamp,
                acquired_at=consumption.oldest_acquired_at,
                sell_transaction_id=sell.id,
                buy_transaction_id=consumption.matches[0].source_id,
            )
        )


__all__ = ["TaxLotEngine", "TaxLotResult", "UnsortedTransactionsError", "tax_year_of"]
