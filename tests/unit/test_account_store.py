"""AccountStore records, balances and transaction scope."""

from __future__ import annotations

import pytest

from bounty_board.constants import U64_MAX
from bounty_board.core.exceptions import (
    AlreadyExistsError,
    ArithmeticOverflowError,
    InsufficientBalanceError,
    InvalidInstructionError,
    NotFoundError,
)
from bounty_board.models import RecordKind
from bounty_board.services.account_store import AccountStore

pytestmark = pytest.mark.unit


def test_create_then_read(store):
    store.create(RecordKind.TASK, "t-0", {"id": 0, "bounty": 1_000_000})
    assert store.exists(RecordKind.TASK, "t-0")
    assert store.read(RecordKind.TASK, "t-0") == {"id": 0, "bounty": 1_000_000}


def test_create_is_once_only(store):
    store.create(RecordKind.CONFIG, "cfg", {"v": 1})
    with pytest.raises(AlreadyExistsError) as exc_info:
        store.create(RecordKind.CONFIG, "cfg", {"v": 2})
    assert exc_info.value.error == "ALREADY_EXISTS"
    assert store.read(RecordKind.CONFIG, "cfg") == {"v": 1}


def test_same_identifier_in_different_kinds(store):
    store.create(RecordKind.CONFIG, "shared", {"kind": "config"})
    store.create(RecordKind.TREASURY, "shared", {"kind": "treasury"})
    assert store.read(RecordKind.TREASURY, "shared") == {"kind": "treasury"}


def test_read_and_write_missing_record(store):
    with pytest.raises(NotFoundError):
        store.read(RecordKind.TASK, "missing")
    with pytest.raises(NotFoundError):
        store.write(RecordKind.TASK, "missing", {})
    assert not store.exists(RecordKind.TASK, "missing")


def test_write_replaces_record(store):
    store.create(RecordKind.TASK, "t-0", {"status": "open"})
    store.write(RecordKind.TASK, "t-0", {"status": "claimed"})
    assert store.read(RecordKind.TASK, "t-0") == {"status": "claimed"}


def test_list_records_in_insertion_order(store):
    for index in (3, 1, 2):
        store.create(RecordKind.TASK, f"t-{index}", {"id": index})
    store.create(RecordKind.CONFIG, "cfg", {})
    assert [record["id"] for record in store.list_records(RecordKind.TASK)] == [3, 1, 2]


def test_unknown_account_reads_zero(store):
    assert store.balance("nobody") == 0


def test_credit_creates_account_and_debit_reduces(store):
    assert store.credit("alice", 500) == 500
    assert store.debit("alice", 200) == 300
    assert store.balance("alice") == 300


def test_debit_beyond_balance_fails(store):
    store.credit("alice", 100)
    with pytest.raises(InsufficientBalanceError) as exc_info:
        store.debit("alice", 101)
    assert exc_info.value.error == "INSUFFICIENT_BALANCE"
    assert store.balance("alice") == 100


def test_balances_beyond_signed_range_are_exact(store):
    store.credit("whale", 2**63 + 5)
    store.credit("whale", 10)
    assert store.balance("whale") == 2**63 + 15


def test_credit_overflow_fails(store):
    store.credit("whale", U64_MAX)
    with pytest.raises(ArithmeticOverflowError):
        store.credit("whale", 1)
    assert store.balance("whale") == U64_MAX


def test_transaction_rolls_back_everything(store):
    store.credit("alice", 100)
    with pytest.raises(InsufficientBalanceError):
        with store.transaction():
            store.credit("bob", 50)
            store.create(RecordKind.TASK, "t-0", {"id": 0})
            store.record_event("posted", 0, "alice", {}, 1)
            store.debit("alice", 101)

    assert store.balance("bob") == 0
    assert store.balance("alice") == 100
    assert not store.exists(RecordKind.TASK, "t-0")
    assert store.list_events() == []


def test_nested_transaction_joins_outer_scope(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            with store.transaction():
                store.credit("alice", 10)
            raise RuntimeError("abort outer")
    assert store.balance("alice") == 0


def test_transaction_commits_on_success(store):
    with store.transaction():
        store.credit("alice", 10)
        store.debit("alice", 4)
    assert store.balance("alice") == 6


def test_open_account_funds_once(store):
    store.open_account("alice", 1_000, created_at=5)
    with pytest.raises(AlreadyExistsError):
        store.open_account("alice", 1_000)
    assert store.balance("alice") == 1_000
    transfers = store.get_transfers("alice")
    assert len(transfers) == 1
    assert transfers[0]["source"] is None
    assert transfers[0]["reason"] == "initial_balance"
    assert transfers[0]["created_at"] == 5


def test_transfer_log_covers_both_directions(store):
    store.record_transfer("alice", "escrow", 700, "bounty_deposit", 0, 10)
    store.record_transfer("escrow", "bob", 686, "payment", 0, 20)
    store.record_transfer("carol", "dave", 1, "other", None, 30)

    escrow_history = store.get_transfers("escrow")
    assert [entry["reason"] for entry in escrow_history] == ["bounty_deposit", "payment"]
    assert escrow_history[1]["amount"] == 686
    assert store.get_transfers("bob")[0]["task_id"] == 0


def test_events_are_newest_first(store):
    for index, event in enumerate(["posted", "claimed", "submitted"]):
        store.record_event(event, 0, "alice", {"step": index}, 100 + index)

    events = store.list_events()
    assert [entry["event"] for entry in events] == ["submitted", "claimed", "posted"]
    assert events[0]["data"] == {"step": 2}
    assert [entry["event"] for entry in store.list_events(limit=1)] == ["submitted"]


def test_nonce_is_consumed_once_per_signer(store):
    store.consume_nonce("alice", "n-1", 10)
    store.consume_nonce("bob", "n-1", 10)

    with pytest.raises(InvalidInstructionError) as exc_info:
        store.consume_nonce("alice", "n-1", 11)
    assert exc_info.value.error == "REPLAYED_INSTRUCTION"


def test_nonce_consumption_rolls_back_with_transaction(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.consume_nonce("alice", "n-1", 10)
            raise RuntimeError("abort")

    store.consume_nonce("alice", "n-1", 12)

def test_state_persists_across_instances(tmp_path):
    db_path = str(tmp_path / "nested" / "board.db")
    first = AccountStore(db_path=db_path)
    try:
        first.create(RecordKind.TASK, "t-0", {"id": 0})
        first.credit("alice", 42)
    finally:
        first.close()

    second = AccountStore(db_path=db_path)
    try:
        assert second.read(RecordKind.TASK, "t-0") == {"id": 0}
        assert second.balance("alice") == 42
    finally:
        second.close()
