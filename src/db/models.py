from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class DecimalAsString(TypeDecorator):
    impl = String
    cache_ok = True

    def process_bind_param(self, value: Decimal | None, dialect: object) -> str | None:
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value: str | None, dialect: object) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    pass


class RateScheduleOrm(Base):
    __tablename__ = "rate_schedules"

    jurisdiction: Mapped[str] = mapped_column(String, primary_key=True)
    tax_year: Mapped[int] = mapped_column(Integer, primary_key=True)
    bands_json: Mapped[str] = mapped_column(Text, nullable=False)
    rules_json: Mapped[str] = mapped_column(Text, nullable=False)
    allowance: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class TaxEventOrm(Base):
    __tablename__ = "tax_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    asset: Mapped[str] = mapped_column(String, nullable=False)
    quantity_sold: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    cost_basis: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    proceeds: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    gain_loss: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    holding_period_days: Mapped[int] = mapped_column(Integer, nullable=False)
    is_long_term: Mapped[bool] = mapped_column(Boolean, nullable=False)
    disposed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sell_transaction_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    buy_transaction_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
