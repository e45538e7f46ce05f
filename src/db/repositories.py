from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from pydantic import TypeAdapter
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from db import models
from domain.rates import Jurisdiction, RateSchedule, TaxBand, TaxRules
from domain.tax_event import TaxEvent

_BANDS = TypeAdapter(tuple[TaxBand, ...])


def _as_utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


class RateScheduleRepository:
    """RateStore backed by the `rate_schedules` table, upserting on (jurisdiction, tax_year)."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, jurisdiction: Jurisdiction, year: int) -> RateSchedule | None:
        with self._session_factory() as session:
            orm_schedule = session.get(models.RateScheduleOrm, (Jurisdiction(jurisdiction).value, year))
            if orm_schedule is None:
                return None
            return self._to_domain(orm_schedule)

    def put(self, jurisdiction: Jurisdiction, year: int, schedule: RateSchedule) -> None:
        if schedule.jurisdiction != jurisdiction or schedule.tax_year != year:
            msg = (
                f"Schedule for {schedule.jurisdiction}/{schedule.tax_year} "
                f"cannot be stored under {jurisdiction}/{year}"
            )
            raise ValueError(msg)

        orm_schedule = models.RateScheduleOrm(
            jurisdiction=schedule.jurisdiction.value,
            tax_year=schedule.tax_year,
            bands_json=_BANDS.dump_json(schedule.bands).decode("utf-8"),
            rules_json=schedule.rules.model_dump_json(),
            allowance=schedule.allowance,
            currency=schedule.currency,
            source=schedule.source,
            last_updated=schedule.last_updated,
        )
        with self._session_factory() as session, session.begin():
            session.merge(orm_schedule)

    @staticmethod
    def _to_domain(orm_schedule: models.RateScheduleOrm) -> RateSchedule:
        return RateSchedule(
            jurisdiction=Jurisdiction(orm_schedule.jurisdiction),
            tax_year=orm_schedule.tax_year,
            bands=_BANDS.validate_json(orm_schedule.bands_json),
            allowance=orm_schedule.allowance,
            currency=orm_schedule.currency,
            source=orm_schedule.source,
            last_updated=_as_utc(orm_schedule.last_updated),
            rules=TaxRules.model_validate_json(orm_schedule.rules_json),
        )


class TaxEventRepository:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def replace_for_year(self, user_id: str, tax_year: int, events: Sequence[TaxEvent]) -> None:
        """Swap the stored events of (user, year) for `events` in one transaction."""
        foreign = [event for event in events if event.tax_year != tax_year]
        if foreign:
            msg = f"{len(foreign)} event(s) do not belong to tax year {tax_year}"
            raise ValueError(msg)

        orm_events = [
            models.TaxEventOrm(
                user_id=user_id,
                tax_year=event.tax_year,
                position=position,
                asset=event.asset,
                quantity_sold=event.quantity_sold,
                cost_basis=event.cost_basis,
                proceeds=event.proceeds,
                gain_loss=event.gain_loss,
                holding_period_days=event.holding_period_days,
                is_long_term=event.is_long_term,
                disposed_at=event.disposed_at,
                acquired_at=event.acquired_at,
                sell_transaction_id=event.sell_transaction_id,
                buy_transaction_id=event.buy_transaction_id,
            )
            for position, event in enumerate(events)
        ]

        with self._session_factory() as session, session.begin():
            session.execute(
                delete(models.TaxEventOrm).where(
                    models.TaxEventOrm.user_id == user_id,
                    models.TaxEventOrm.tax_year == tax_year,
                )
            )
            session.add_all(orm_events)

    def list(self, user_id: str, tax_year: int) -> list[TaxEvent]:
        stmt = (
            select(models.TaxEventOrm)
            .where(models.TaxEventOrm.user_id == user_id, models.TaxEventOrm.tax_year == tax_year)
            .order_by(models.TaxEventOrm.position.asc())
        )
        with self._session_factory() as session:
            return [self._to_domain(orm_event) for orm_event in session.scalars(stmt)]

    @staticmethod
    def _to_domain(orm_event: models.TaxEventOrm) -> TaxEvent:
        return TaxEvent(
            asset=orm_event.asset,
            quantity_sold=orm_event.quantity_sold,
            cost_basis=orm_event.cost_basis,
            proceeds=orm_event.proceeds,
            gain_loss=orm_event.gain_loss,
            holding_period_days=orm_event.holding_period_days,
            is_long_term=orm_event.is_long_term,
            tax_year=orm_event.tax_year,
            disposed_at=_as_utc(orm_event.disposed_at),
            acquired_at=_as_utc(orm_event.acquired_at),
            sell_transaction_id=orm_event.sell_transaction_id,
            buy_transaction_id=orm_event.buy_transaction_id,
        )
