from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum


class DiagnosticKind(StrEnum):
    MALFORMED_RECORD = "MALFORMED_RECORD"
    NO_OPEN_LOTS = "NO_OPEN_LOTS"
    INSUFFICIENT_LOTS = "INSUFFICIENT_LOTS"
    RATE_UNAVAILABLE = "RATE_UNAVAILABLE"


@dataclass(frozen=True)
class Diagnostic:
    """A recoverable problem found while computing a report.

    Diagnostics travel alongside successful output; they never abort a run.
    """

    kind: DiagnosticKind
    message: str
    asset: str | None = None
    timestamp: datetime | None = None
    record_index: int | None = None
    quantity: Decimal | None = None


__all__ = ["Diagnostic", "DiagnosticKind"]
