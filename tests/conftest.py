"""Shared fixtures: in-memory store and a scriptable fake broker."""

import pytest

from automator.database import create_db_and_tables, make_engine
from automator.services.trade_store import TradeStore

from tests.helpers import OWNER, FakeBroker


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    store = TradeStore(engine)
    store.ensure_account(OWNER)
    return store


@pytest.fixture
def broker():
    return FakeBroker()
