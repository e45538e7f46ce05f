from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel


class LotOrderError(ValueError):
    def __init__(self, *, asset: str, acquired_at: datetime, newest_acquired_at: datetime) -> None:
        self.asset = asset
        self.acquired_at = acquired_at
        self.newest_acquired_at = newest_acquired_at
        super().__init__(
            f"Lot for asset={asset} acquired @{acquired_at.isoformat()} is older than the newest open lot "
            f"@{newest_acquired_at.isoformat()}; acquisitions must arrive in timestamp order"
        )


@dataclass
class Lot:
    asset: str
    remaining_quantity: Decimal
    unit_cost: Decimal
    acquired_at: datetime
    source_id: UUID | None = None


@dataclass(frozen=True)
class LotMatch:
    source_id: UUID | None
    acquired_at: datetime
    unit_cost: Decimal
    quantity: Decimal

    @property
    def cost_basis(self) -> Decimal:
        return self.unit_cost * self.quantity


@dataclass(frozen=True)
class Consumption:
    consumed_quantity: Decimal
    consumed_cost_basis: Decimal
    oldest_acquired_at: datetime | None
    shortfall: Decimal
    matches: tuple[LotMatch, ...]


class OpenLotSnapshot(BaseModel):
    source_id: UUID | None
    asset: str
    acquired_at: datetime
    remaining_quantity: Decimal
    unit_cost: Decimal


class LotLedger:
    """Per-asset FIFO queues of open acquisition lots.

    Lots are appended in acquisition order and never re-sorted, so the head of
    each queue is always the oldest open lot. A ledger belongs to exactly one
    engine run.
    """

    def __init__(self) -> None:
        self._queues: dict[str, deque[Lot]] = defaultdict(deque)

    def add_lot(
        self,
        asset: str,
        quantity: Decimal,
        unit_cost: Decimal,
        acquired_at: datetime,
        *,
        source_id: UUID | None = None,
    ) -> Lot:
        if quantity <= 0:
            raise ValueError("Lot quantity must be > 0")
        if unit_cost < 0:
            raise ValueError("Lot unit_cost must be >= 0")

        queue = self._queues[asset]
        if queue and acquired_at < queue[-1].acquired_at:
            raise LotOrderError(asset=asset, acquired_at=acquired_at, newest_acquired_at=queue[-1].acquired_at)

        lot = Lot(
            asset=asset,
            remaining_quantity=quantity,
            unit_cost=unit_cost,
            acquired_at=acquired_at,
            source_id=source_id,
        )
        queue.append(lot)
        return lot

    def total_available(self, asset: str) -> Decimal:
        queue = self._queues.get(asset)
        if not queue:
            return Decimal(0)
        return sum((lot.remaining_quantity for lot in queue), start=Decimal(0))

    def consume(self, asset: str, quantity: Decimal) -> Consumption:
        """Take `quantity` units from the oldest lots first.

        Any part of the request the open lots cannot cover is reported as
        `shortfall`; the caller decides what to do with it.
        """
        if quantity <= 0:
            raise ValueError("Consumed quantity must be > 0")

        queue = self._queues.get(asset)
        remaining = quantity
        cost_basis = Decimal(0)
        oldest: datetime | None = None
        matches: list[LotMatch] = []

        while remaining > 0 and queue:
            lot = queue[0]
            take_quantity = min(remaining, lot.remaining_quantity)
            lot.remaining_quantity -= take_quantity
            remaining -= take_quantity

            match = LotMatch(
                source_id=lot.source_id,
                acquired_at=lot.acquired_at,
                unit_cost=lot.unit_cost,
                quantity=take_quantity,
            )
            matches.append(match)
            cost_basis += match.cost_basis
            if oldest is None or lot.acquired_at < oldest:
                oldest = lot.acquired_at

            if lot.remaining_quantity == 0:
                queue.popleft()

        return Consumption(
            consumed_quantity=quantity - remaining,
            consumed_cost_basis=cost_basis,
            oldest_acquired_at=oldest,
            shortfall=remaining,
            matches=tuple(matches),
        )

    def open_lots(self, asset: str | None = None) -> list[OpenLotSnapshot]:
        assets = [asset] if asset is not None else sorted(self._queues)
        return [
            OpenLotSnapshot(
                source_id=lot.source_id,
                asset=lot.asset,
                acquired_at=lot.acquired_at,
                remaining_quantity=lot.remaining_quantity,
                unit_cost=lot.unit_cost,
            )
            for name in assets
            for lot in self._queues.get(name, ())
        ]


__all__ = ["Consumption", "Lot", "LotLedger", "LotMatch", "LotOrderError", "OpenLotSnapshot"]
