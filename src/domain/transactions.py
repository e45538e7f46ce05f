from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Any, Iterable, Mapping, NewType
from uuid import UUID, uuid4, uuid5

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .diagnostics import Diagnostic, DiagnosticKind

logger = logging.getLogger(__name__)

RECORD_ID_NAMESPACE = UUID("5b0f3f4e-6c1d-4c55-9a0e-2f7d8c9b1a30")

AssetId = NewType("AssetId", str)
TransactionId = NewType("TransactionId", UUID)


class TransactionType(StrEnum):
    BUY = "BUY"
    SELL = "SELL"
    WITHDRAWAL = "WITHDRAWAL"


class Transaction(BaseModel):
    """A normalized ledger record produced by an exchange importer.

    `quantity` and `unit_price` are magnitudes; direction lives in `type` only.
    """

    model_config = ConfigDict(frozen=True)

    id: TransactionId = Field(default_factory=uuid4)
    asset: AssetId
    type: TransactionType
    quantity: Decimal = Field(ge=0)
    unit_price: Decimal = Field(ge=0)
    timestamp: datetime
    exchange: str = ""

    @field_validator("asset", mode="before")
    @classmethod
    def _normalize_asset(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().upper()
            if not value:
                raise ValueError("asset must be non-empty")
        return value

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


@dataclass
class IngestionResult:
    transactions: list[Transaction] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


def ingest_transactions(records: Iterable[Transaction | Mapping[str, Any]]) -> IngestionResult:
    """Validate records, keeping input order and dropping malformed ones.

    A bad record becomes a MALFORMED_RECORD diagnostic; the rest of the batch
    is still returned. Mappings without an `id` get one derived from their
    content and position, so the same input always yields the same ids.
    """
    result = IngestionResult()
    for index, record in enumerate(records):
        try:
            if isinstance(record, Transaction):
                transaction = record
            else:
                transaction = Transaction.model_validate(_with_record_id(index, record))
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'record'}: {error['msg']}" for error in exc.errors()
            )
            result.diagnostics.append(_malformed(index, record, f"Malformed transaction record #{index}: {problems}"))
            continue

        if transaction.quantity <= 0:
            result.diagnostics.append(
                _malformed(index, record, f"Malformed transaction record #{index}: quantity must be > 0")
            )
            continue

        result.transactions.append(transaction)

    for diagnostic in result.diagnostics:
        logger.warning(diagnostic.message)
    return result


def _with_record_id(index: int, record: Mapping[str, Any]) -> Mapping[str, Any]:
    if record.get("id") is not None:
        return record
    canonical = json.dumps([index, {str(key): value for key, value in record.items()}], sort_keys=True, default=str)
    return {**record, "id": uuid5(RECORD_ID_NAMESPACE, canonical)}


def _malformed(index: int, record: Transaction | Mapping[str, Any], message: str) -> Diagnostic:
    if isinstance(record, Transaction):
        asset: Any = record.asset
    else:
        asset = record.get("asset")
    return Diagnostic(
        kind=DiagnosticKind.MALFORMED_RECORD,
        message=message,
        asset=str(asset).upper() if asset else None,
        record_index=index,
    )


__all__ = [
    "AssetId",
    "IngestionResult",
    "Transaction",
    "TransactionId",
    "TransactionType",
    "ingest_transactions",
]
