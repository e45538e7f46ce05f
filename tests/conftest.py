from typing import Generator

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import Base
from domain.tax_lots import TaxLotEngine
from tests.helpers.rate_stubs import InMemoryRateStore

engine: Engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
session_factory = sessionmaker(engine)


@pytest.fixture(scope="function")
def test_session_factory() -> sessionmaker[Session]:
    return session_factory


@pytest.fixture(scope="function", autouse=True)
def reset_db() -> Generator[None, None, None]:
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def tax_lot_engine() -> TaxLotEngine:
    return TaxLotEngine(fiat_currency_codes=("GBP", "USD", "EUR"))


@pytest.fixture(scope="function")
def rate_store() -> InMemoryRateStore:
    return InMemoryRateStore()
