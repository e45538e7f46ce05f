from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from domain.ledger import LotLedger, LotOrderError
from tests.helpers.transactions import day


def test_consume_takes_oldest_lot_first() -> None:
    ledger = LotLedger()
    first_id, second_id = uuid4(), uuid4()
    ledger.add_lot("ETH", Decimal("1"), Decimal("2000"), day(0), source_id=first_id)
    ledger.add_lot("ETH", Decimal("1"), Decimal("3000"), day(10), source_id=second_id)

    consumption = ledger.consume("ETH", Decimal("1.5"))

    assert consumption.consumed_quantity == Decimal("1.5")
    assert consumption.consumed_cost_basis == Decimal("3500")
    assert consumption.oldest_acquired_at == day(0)
    assert consumption.shortfall == Decimal(0)
    assert [match.source_id for match in consumption.matches] == [first_id, second_id]
    assert [match.quantity for match in consumption.matches] == [Decimal("1"), Decimal("0.5")]


def test_partially_consumed_lot_stays_at_head() -> None:
    ledger = LotLedger()
    ledger.add_lot("BTC", Decimal("2"), Decimal("100"), day(0))
    ledger.add_lot("BTC", Decimal("1"), Decimal("200"), day(1))

    ledger.consume("BTC", Decimal("0.5"))
    lots = ledger.open_lots("BTC")

    assert [lot.remaining_quantity for lot in lots] == [Decimal("1.5"), Decimal("1")]
    assert lots[0].acquired_at == day(0)
    assert ledger.total_available("BTC") == Decimal("2.5")


def test_exhausted_lots_are_removed() -> None:
    ledger = LotLedger()
    ledger.add_lot("BTC", Decimal("1"), Decimal("100"), day(0))

    ledger.consume("BTC", Decimal("1"))

    assert ledger.open_lots("BTC") == []
    assert ledger.total_available("BTC") == Decimal(0)


def test_consume_reports_shortfall() -> None:
    ledger = LotLedger()
    ledger.add_lot("SOL", Decimal("3"), Decimal("20"), day(0))

    consumption = ledger.consume("SOL", Decimal("5"))

    assert consumption.consumed_quantity == Decimal("3")
    assert consumption.consumed_cost_basis == Decimal("60")
    assert consumption.shortfall == Decimal("2")
    assert ledger.total_available("SOL") == Decimal(0)


def test_consume_unknown_asset_returns_full_shortfall() -> None:
    ledger = LotLedger()

    consumption = ledger.consume("DOGE", Decimal("10"))

    assert consumption.consumed_quantity == Decimal(0)
    assert consumption.oldest_acquired_at is None
    assert consumption.matches == ()
    assert consumption.shortfall == Decimal("10")


def test_assets_are_tracked_independently() -> None:
    ledger = LotLedger()
    ledger.add_lot("BTC", Decimal("1"), Decimal("100"), day(0))
    ledger.add_lot("ETH", Decimal("4"), Decimal("10"), day(1))

    ledger.consume("ETH", Decimal("4"))

    assert ledger.total_available("BTC") == Decimal("1")
    assert [lot.asset for lot in ledger.open_lots()] == ["BTC"]


def test_add_lot_rejects_out_of_order_acquisition() -> None:
    ledger = LotLedger()
    ledger.add_lot("BTC", Decimal("1"), Decimal("100"), day(5))

    with pytest.raises(LotOrderError) as exc_info:
        ledger.add_lot("BTC", Decimal("1"), Decimal("100"), day(4))

    assert exc_info.value.asset == "BTC"
    assert exc_info.value.newest_acquired_at == day(5)


def test_add_lot_accepts_equal_timestamps() -> None:
    ledger = LotLedger()
    ledger.add_lot("BTC", Decimal("1"), Decimal("100"), day(5))
    ledger.add_lot("BTC", Decimal("1"), Decimal("110"), day(5))

    assert ledger.total_available("BTC") == Decimal("2")


@pytest.mark.parametrize(
    ("quantity", "unit_cost"),
    [(Decimal(0), Decimal("1")), (Decimal("-1"), Decimal("1")), (Decimal("1"), Decimal("-0.01"))],
)
def test_add_lot_rejects_invalid_values(quantity: Decimal, unit_cost: Decimal) -> None:
    ledger = LotLedger()

    with pytest.raises(ValueError):
        ledger.add_lot("BTC", quantity, unit_cost, day(0))


def test_consume_rejects_non_positive_quantity() -> None:
    ledger = LotLedger()
    ledger.add_lot("BTC", Decimal("1"), Decimal("100"), day(0))

    with pytest.raises(ValueError):
        ledger.consume("BTC", Decimal(0))
