from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from domain.diagnostics import DiagnosticKind
from domain.transactions import Transaction, TransactionType, ingest_transactions
from tests.helpers.transactions import buy, day


def test_mapping_records_are_normalized() -> None:
    result = ingest_transactions(
        [
            {
                "asset": " btc ",
                "type": "buy",
                "quantity": "0.5",
                "unit_price": "20000",
                "timestamp": "2024-01-01T00:00:00",
                "exchange": "kraken",
            }
        ]
    )

    assert result.diagnostics == []
    [transaction] = result.transactions
    assert transaction.asset == "BTC"
    assert transaction.type == TransactionType.BUY
    assert transaction.quantity == Decimal("0.5")
    assert transaction.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_transaction_objects_pass_through_unchanged() -> None:
    original = buy("ETH", "1", "2000", day(0))

    result = ingest_transactions([original])

    assert result.transactions == [original]


def test_malformed_records_become_diagnostics() -> None:
    records = [
        {"asset": "BTC", "type": "BUY", "quantity": "1", "unit_price": "100", "timestamp": "2024-01-01T00:00:00Z"},
        {"asset": "", "type": "BUY", "quantity": "1", "unit_price": "100", "timestamp": "2024-01-02T00:00:00Z"},
        {"asset": "BTC", "type": "SWAP", "quantity": "1", "unit_price": "100", "timestamp": "2024-01-03T00:00:00Z"},
        {"asset": "BTC", "type": "SELL", "quantity": "-1", "unit_price": "100", "timestamp": "2024-01-04T00:00:00Z"},
        {"asset": "BTC", "type": "SELL", "quantity": "0", "unit_price": "100", "timestamp": "2024-01-05T00:00:00Z"},
        {"asset": "BTC", "type": "SELL", "quantity": "1", "unit_price": "-5", "timestamp": "2024-01-06T00:00:00Z"},
        {"asset": "BTC", "type": "SELL", "quantity": "1", "unit_price": "100"},
    ]

    result = ingest_transactions(records)

    assert len(result.transactions) == 1
    assert [diagnostic.record_index for diagnostic in result.diagnostics] == [1, 2, 3, 4, 5, 6]
    assert {diagnostic.kind for diagnostic in result.diagnostics} == {DiagnosticKind.MALFORMED_RECORD}
    assert result.diagnostics[2].asset == "BTC"


def test_zero_quantity_transaction_object_is_malformed() -> None:
    zero = Transaction(
        asset="BTC",
        type=TransactionType.SELL,
        quantity=Decimal(0),
        unit_price=Decimal("1"),
        timestamp=day(0),
    )

    result = ingest_transactions([zero])

    assert result.transactions == []
    assert result.diagnostics[0].kind == DiagnosticKind.MALFORMED_RECORD


def test_mapping_ids_are_stable_across_runs() -> None:
    rows = [
        {"asset": "BTC", "type": "BUY", "quantity": "1", "unit_price": "100", "timestamp": "2024-01-01T00:00:00Z"},
        {"asset": "BTC", "type": "BUY", "quantity": "1", "unit_price": "100", "timestamp": "2024-01-01T00:00:00Z"},
        {"asset": "BTC", "type": "SELL", "quantity": "1", "unit_price": "150", "timestamp": "2024-02-01T00:00:00Z"},
    ]

    first = [transaction.id for transaction in ingest_transactions(rows).transactions]
    second = [transaction.id for transaction in ingest_transactions([dict(row) for row in rows]).transactions]

    assert first == second
    assert len(set(first)) == 3


def test_explicit_mapping_id_is_kept() -> None:
    row_id = UUID("0f8fad5b-d9cb-469f-a165-70867728950e")
    row = {
        "id": str(row_id),
        "asset": "ETH",
        "type": "SELL",
        "quantity": "1",
        "unit_price": "10",
        "timestamp": "2024-01-01T00:00:00Z",
    }

    [transaction] = ingest_transactions([row]).transactions

    assert transaction.id == row_id
