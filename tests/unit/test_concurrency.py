"""Concurrent operations on one database file (threads and separate store instances)."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from bounty_board.constants import AUTO_RELEASE_TIMEOUT
from bounty_board.core.exceptions import InvalidStatusError, ServiceError
from bounty_board.services.account_store import AccountStore
from bounty_board.services.addresses import treasury_address
from bounty_board.services.bounty_board import BountyBoard
from tests.helpers import (
    BOUNTY,
    CREATOR,
    CREATOR_FUNDS,
    DESCRIPTION_HASH,
    PROOF_HASH,
    WORKER,
    WORKER_FUNDS,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def second_board(tmp_path, clock, board):
    """Another board over the same database through its own connection."""
    other_store = AccountStore(db_path=str(tmp_path / "bounty-board.db"))
    yield BountyBoard(store=other_store, clock=clock)
    other_store.close()


def test_concurrent_creates_get_distinct_sequential_ids(board, second_board):
    # Exactly what the creator can fund
    task_count = CREATOR_FUNDS // BOUNTY
    boards = [board, second_board]

    def _create(index: int) -> int:
        return boards[index % 2].create_task(CREATOR, BOUNTY, DESCRIPTION_HASH).id

    with ThreadPoolExecutor(max_workers=8) as executor:
        ids = list(executor.map(_create, range(task_count)))

    assert sorted(ids) == list(range(task_count))
    config = board.get_config()
    assert config.task_count == task_count
    assert config.total_escrowed == task_count * BOUNTY
    assert board.get_balance(CREATOR) == CREATOR_FUNDS - task_count * BOUNTY


def test_competing_settlements_pay_out_once(board, second_board, clock):
    task = board.create_task(CREATOR, BOUNTY, DESCRIPTION_HASH)
    board.claim_task(WORKER, task.id)
    board.submit_work(WORKER, task.id, PROOF_HASH)
    clock.advance(AUTO_RELEASE_TIMEOUT)

    def _settle(index: int) -> str:
        try:
            if index % 2 == 0:
                board.approve_work(CREATOR, task.id)
            else:
                second_board.claim_expired(WORKER, task.id)
        except InvalidStatusError:
            return "rejected"
        return "settled"

    with ThreadPoolExecutor(max_workers=8) as executor:
        outcomes = list(executor.map(_settle, range(10)))

    assert outcomes.count("settled") == 1
    assert outcomes.count("rejected") == 9
    assert board.get_balance(WORKER) == WORKER_FUNDS + 980_000_000
    assert board.get_balance(treasury_address()) == 20_000_000
    assert board.get_balance(task.address) == 0
    assert board.get_config().total_completed == 1


def test_competing_claims_have_one_winner(board, second_board):
    task = board.create_task(CREATOR, BOUNTY, DESCRIPTION_HASH)
    claimers = [f"claimer-{index}" for index in range(10)]
    boards = [board, second_board]

    def _claim(index: int) -> str | None:
        try:
            boards[index % 2].claim_task(claimers[index], task.id)
        except ServiceError as exc:
            return exc.error
        return None

    with ThreadPoolExecutor(max_workers=8) as executor:
        errors = list(executor.map(_claim, range(10)))

    assert errors.count(None) == 1
    assert all(error == "TASK_NOT_OPEN" for error in errors if error is not None)
    winner = claimers[errors.index(None)]
    assert board.get_task(task.id).claimer == winner
