"""Dispute stake deposit and resolution payouts."""

from __future__ import annotations

import pytest

from bounty_board.core.exceptions import (
    AccountMismatchError,
    InvalidStatusError,
    UnauthorizedError,
    ValidationError,
)
from bounty_board.models import TaskStatus, Transfer
from bounty_board.services.addresses import treasury_address
from bounty_board.services.dispute_resolver import CLAIMER_WINS, CREATOR_WINS, DisputeResolver
from bounty_board.services.settlement import SettlementEngine
from bounty_board.services.transitions import PayoutAccounts
from tests.helpers import (
    ADMIN,
    BOUNTY,
    CREATOR,
    DISPUTE_STAKE,
    DISPUTER,
    OUTSIDER,
    make_config,
    make_task,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def resolver():
    return DisputeResolver(SettlementEngine())


@pytest.fixture
def disputed_task():
    return make_task(TaskStatus.DISPUTED, claimer=DISPUTER)


def _escrow_outflow(transition, escrow):
    return sum(transfer.amount for transfer in transition.transfers if transfer.source == escrow)


def test_any_account_may_dispute_an_open_task(resolver):
    task = make_task()
    transition = resolver.open_dispute(make_config(), task, DISPUTER)

    assert transition.task.status == TaskStatus.DISPUTED
    assert transition.task.claimer == DISPUTER
    assert transition.transfers == (
        Transfer(DISPUTER, task.address, DISPUTE_STAKE, "dispute_stake"),
    )
    assert transition.event == "disputed"


def test_zero_stake_dispute_moves_nothing(resolver):
    transition = resolver.open_dispute(make_config(dispute_stake=0), make_task(), DISPUTER)
    assert transition.transfers == ()
    assert transition.task.status == TaskStatus.DISPUTED


@pytest.mark.parametrize("account", ["escrow", "treasury"])
def test_protocol_accounts_cannot_dispute(resolver, account):
    task = make_task()
    actor = task.address if account == "escrow" else treasury_address()
    with pytest.raises(UnauthorizedError) as exc_info:
        resolver.open_dispute(make_config(), task, actor)
    assert exc_info.value.error == "PROTOCOL_ACCOUNT"

@pytest.mark.parametrize("status", [TaskStatus.CLAIMED, TaskStatus.SUBMITTED, TaskStatus.DISPUTED])
def test_dispute_requires_open_task(resolver, status):
    with pytest.raises(InvalidStatusError):
        resolver.open_dispute(make_config(), make_task(status), DISPUTER)


def test_creator_wins_gets_bounty_and_stake_is_forfeited(resolver, disputed_task):
    config = make_config()
    transition = resolver.resolve(config, disputed_task, ADMIN, CREATOR_WINS, PayoutAccounts())

    assert transition.task.status == TaskStatus.CANCELLED
    assert transition.transfers == (
        Transfer(disputed_task.address, CREATOR, BOUNTY, "refund"),
        Transfer(disputed_task.address, treasury_address(), DISPUTE_STAKE, "forfeited_stake"),
    )
    assert transition.config.total_completed == 0
    assert transition.config.total_escrowed == 0
    assert _escrow_outflow(transition, disputed_task.address) == BOUNTY + DISPUTE_STAKE


def test_claimer_wins_gets_payment_plus_stake(resolver, disputed_task):
    transition = resolver.resolve(
        make_config(), disputed_task, ADMIN, CLAIMER_WINS, PayoutAccounts()
    )

    assert transition.task.status == TaskStatus.COMPLETED
    assert transition.transfers == (
        Transfer(disputed_task.address, DISPUTER, 1_080_000_000, "payment"),
        Transfer(disputed_task.address, treasury_address(), 20_000_000, "protocol_fee"),
    )
    assert transition.config.total_completed == 1
    assert transition.config.total_escrowed == 0
    assert _escrow_outflow(transition, disputed_task.address) == 1_100_000_000


@pytest.mark.parametrize("winner", [2, -1, True])
def test_invalid_winner(resolver, disputed_task, winner):
    with pytest.raises(ValidationError) as exc_info:
        resolver.resolve(make_config(), disputed_task, ADMIN, winner, PayoutAccounts())
    assert exc_info.value.error == "INVALID_DISPUTE_WINNER"


@pytest.mark.parametrize("actor", [CREATOR, DISPUTER, OUTSIDER])
def test_only_admin_resolves(resolver, disputed_task, actor):
    with pytest.raises(UnauthorizedError) as exc_info:
        resolver.resolve(make_config(), disputed_task, actor, CLAIMER_WINS, PayoutAccounts())
    assert exc_info.value.error == "UNAUTHORIZED"


def test_resolve_requires_disputed_status(resolver):
    with pytest.raises(InvalidStatusError) as exc_info:
        resolver.resolve(make_config(), make_task(), ADMIN, CLAIMER_WINS, PayoutAccounts())
    assert exc_info.value.error == "TASK_NOT_DISPUTED"


@pytest.mark.parametrize(
    "accounts",
    [
        PayoutAccounts(claimer=OUTSIDER),
        PayoutAccounts(creator=OUTSIDER),
        PayoutAccounts(treasury=OUTSIDER),
    ],
)
def test_supplied_accounts_must_match(resolver, disputed_task, accounts):
    with pytest.raises(AccountMismatchError):
        resolver.resolve(make_config(), disputed_task, ADMIN, CREATOR_WINS, accounts)
