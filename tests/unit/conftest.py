"""Unit test fixtures: settings cache reset, clock, store and board."""

from __future__ import annotations

import pytest

from bounty_board.config import clear_settings_cache
from bounty_board.services.account_store import AccountStore
from bounty_board.services.bounty_board import BountyBoard
from tests.helpers import (
    ADMIN,
    CREATOR,
    CREATOR_FUNDS,
    DISPUTE_STAKE,
    DISPUTER,
    DISPUTER_FUNDS,
    FEE_BPS,
    WORKER,
    WORKER_FUNDS,
    FakeClock,
)


@pytest.fixture(autouse=True)
def _clear_caches(monkeypatch):
    """Clear settings cache and CONFIG_PATH between tests."""
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    account_store = AccountStore(db_path=str(tmp_path / "bounty-board.db"))
    yield account_store
    account_store.close()


@pytest.fixture
def board(store, clock):
    """Initialized board with funded creator, worker and disputer accounts."""
    bounty_board = BountyBoard(store=store, clock=clock)
    bounty_board.initialize(ADMIN, FEE_BPS, DISPUTE_STAKE)
    store.open_account(CREATOR, CREATOR_FUNDS)
    store.open_account(WORKER, WORKER_FUNDS)
    store.open_account(DISPUTER, DISPUTER_FUNDS)
    return bounty_board
