"""Dispute stake deposit and arbitrated payout."""

from __future__ import annotations

from dataclasses import replace

from bounty_board.core.exceptions import ValidationError
from bounty_board.models import BoardConfig, Task, TaskStatus, Transfer, Transition
from bounty_board.services.settlement import SettlementEngine, checked_add, checked_sub
from bounty_board.services.transitions import (
    Operation,
    PayoutAccounts,
    require_account,
    require_actor,
    require_participant,
    require_status,
)

CREATOR_WINS = 0
CLAIMER_WINS = 1


class DisputeResolver:
    """
    Handles the two dispute transitions.

    Filing a dispute moves the configured stake from the disputer into the
    task escrow. Resolution empties the escrow (bounty + stake):

    - creator wins: bounty back to creator, stake to treasury, no fee
    - claimer wins: bounty minus fee plus stake to claimer, fee to treasury
    """

    def __init__(self, settlement: SettlementEngine) -> None:
        self._settlement = settlement

    def open_dispute(self, config: BoardConfig, task: Task, actor: str) -> Transition:
        """
        Stake into a task that was just rejected back to Open.

        The previous claimer is cleared by rejection, so any signer who
        funds the stake becomes the claimer-in-dispute.
        """
        require_status(task, Operation.DISPUTE)
        require_participant(actor, config, task.address)

        transfers: tuple[Transfer, ...] = ()
        if config.dispute_stake > 0:
            transfers = (Transfer(actor, task.address, config.dispute_stake, "dispute_stake"),)

        return Transition(
            config=config,
            task=replace(task, claimer=actor, status=TaskStatus.DISPUTED),
            transfers=transfers,
            event="disputed",
        )

    def resolve(
        self,
        config: BoardConfig,
        task: Task,
        actor: str,
        winner: int,
        accounts: PayoutAccounts,
    ) -> Transition:
        require_status(task, Operation.RESOLVE_DISPUTE)
        require_actor(actor, config.admin, "UNAUTHORIZED", "Only the admin can resolve disputes")
        require_account(accounts.claimer, task.claimer, "claimer")
        require_account(accounts.creator, task.creator, "creator")
        require_account(accounts.treasury, config.treasury, "treasury")
        if task.claimer is None:
            msg = f"Disputed task {task.id} has no claimer"
            raise RuntimeError(msg)

        stake = config.dispute_stake
        total_escrowed = checked_sub(config.total_escrowed, task.bounty)

        if isinstance(winner, bool) or winner not in (CREATOR_WINS, CLAIMER_WINS):
            raise ValidationError(
                "INVALID_DISPUTE_WINNER",
                "winner must be 0 (creator) or 1 (claimer)",
                {"winner": winner},
            )

        if winner == CREATOR_WINS:
            transfers = (
                Transfer(task.address, task.creator, task.bounty, "refund"),
                Transfer(task.address, config.treasury, stake, "forfeited_stake"),
            )
            return Transition(
                config=replace(config, total_escrowed=total_escrowed),
                task=replace(task, status=TaskStatus.CANCELLED),
                transfers=transfers,
                event="resolved",
            )

        settlement = self._settlement.compute(task.bounty, config.protocol_fee_bps)
        transfers = self._settlement.payout_transfers(
            task.address,
            task.claimer,
            config.treasury,
            settlement,
            extra_to_claimer=stake,
        )
        return Transition(
            config=replace(
                config,
                total_escrowed=total_escrowed,
                total_completed=checked_add(config.total_completed, 1),
            ),
            task=replace(task, status=TaskStatus.COMPLETED),
            transfers=transfers,
            event="resolved",
        )
