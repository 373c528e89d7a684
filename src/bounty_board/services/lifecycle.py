"""Task lifecycle state machine.

Every method is pure: it takes the current Config and Task, checks the
preconditions in a fixed order (status, then actor, then parameters and
supplied accounts) and returns a Transition describing the new records and
the transfers to apply. Nothing is written here.
"""

from __future__ import annotations

from dataclasses import replace

from bounty_board.constants import (
    AUTO_RELEASE_TIMEOUT,
    I64_MAX,
    I64_MIN,
    MIN_BOUNTY,
    TAGS_SIZE,
)
from bounty_board.core.exceptions import (
    DeadlinePassedError,
    TimeoutNotElapsedError,
    ValidationError,
)
from bounty_board.models import (
    BoardConfig,
    Task,
    TaskStatus,
    Transfer,
    Transition,
    Treasury,
    require_hash,
)
from bounty_board.services.addresses import task_address, treasury_address
from bounty_board.services.dispute_resolver import DisputeResolver
from bounty_board.services.settlement import (
    SettlementEngine,
    checked_add,
    checked_sub,
    validate_amount,
    validate_fee_bps,
)
from bounty_board.services.transitions import (
    Operation,
    PayoutAccounts,
    require_account,
    require_actor,
    require_participant,
    require_status,
)


def _validate_timestamp(value: int, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not I64_MIN <= value <= I64_MAX:
        raise ValidationError(
            "INVALID_TIMESTAMP",
            f"{field_name} must be a signed 64-bit integer",
            {"field": field_name},
        )
    return value


class TaskLifecycleMachine:
    """Table-driven transitions over the six task statuses."""

    def __init__(
        self,
        settlement: SettlementEngine | None = None,
        dispute_resolver: DisputeResolver | None = None,
    ) -> None:
        self._settlement = settlement if settlement is not None else SettlementEngine()
        self._disputes = (
            dispute_resolver if dispute_resolver is not None else DisputeResolver(self._settlement)
        )

    @property
    def settlement(self) -> SettlementEngine:
        return self._settlement

    def initialize(
        self,
        admin: str,
        protocol_fee_bps: int,
        dispute_stake: int,
        now: int,
    ) -> tuple[BoardConfig, Treasury]:
        """Build the singleton Config and Treasury. The signer becomes the admin."""
        validate_fee_bps(protocol_fee_bps)
        validate_amount(dispute_stake, "dispute_stake")
        treasury = Treasury(address=treasury_address(), created_at=now)
        config = BoardConfig(
            admin=admin,
            protocol_fee_bps=protocol_fee_bps,
            treasury=treasury.address,
            dispute_stake=dispute_stake,
        )
        require_participant(admin, config)
        return config, treasury

    def create_task(
        self,
        config: BoardConfig,
        creator: str,
        bounty: int,
        description_hash: bytes,
        deadline: int,
        tags: bytes,
        now: int,
    ) -> Transition:
        """Post a task with id ``task_count`` and move the bounty into its escrow."""
        require_participant(creator, config, task_address(config.task_count))
        validate_amount(bounty, "bounty")
        if bounty < MIN_BOUNTY:
            raise ValidationError(
                "BOUNTY_TOO_SMALL",
                f"Bounty must be at least {MIN_BOUNTY}",
                {"bounty": bounty, "minimum": MIN_BOUNTY},
            )
        require_hash(description_hash, "description_hash")
        _validate_timestamp(deadline, "deadline")
        if not isinstance(tags, bytes) or len(tags) != TAGS_SIZE:
            raise ValidationError(
                "INVALID_TAGS", f"tags must be exactly {TAGS_SIZE} bytes", {"field": "tags"}
            )

        task_id = config.task_count
        new_config = replace(
            config,
            task_count=checked_add(config.task_count, 1),
            total_escrowed=checked_add(config.total_escrowed, bounty),
        )
        address = task_address(task_id)
        task = Task(
            id=task_id,
            address=address,
            creator=creator,
            bounty=bounty,
            description_hash=description_hash,
            status=TaskStatus.OPEN,
            created_at=now,
            deadline=deadline,
            tags=tags,
        )
        return Transition(
            config=new_config,
            task=task,
            transfers=(Transfer(creator, address, bounty, "bounty_deposit"),),
            event="posted",
        )

    def claim_task(self, config: BoardConfig, task: Task, actor: str, now: int) -> Transition:
        require_status(task, Operation.CLAIM_TASK)
        require_participant(actor, config, task.address)
        if task.deadline > 0 and now > task.deadline:
            raise DeadlinePassedError(
                "DEADLINE_PASSED",
                "Task deadline has passed",
                {"task_id": task.id, "deadline": task.deadline, "now": now},
            )
        return Transition(
            config=config,
            task=replace(task, claimer=actor, claimed_at=now, status=TaskStatus.CLAIMED),
            event="claimed",
        )

    def submit_work(
        self,
        config: BoardConfig,
        task: Task,
        actor: str,
        proof_hash: bytes,
        now: int,
    ) -> Transition:
        require_status(task, Operation.SUBMIT_WORK)
        require_actor(actor, task.claimer, "NOT_CLAIMER", "Only the claimer can submit work")
        require_hash(proof_hash, "proof_hash")
        return Transition(
            config=config,
            task=replace(
                task, proof_hash=proof_hash, submitted_at=now, status=TaskStatus.SUBMITTED
            ),
            event="submitted",
        )

    def approve_work(
        self,
        config: BoardConfig,
        task: Task,
        actor: str,
        accounts: PayoutAccounts | None = None,
    ) -> Transition:
        require_status(task, Operation.APPROVE_WORK)
        require_actor(actor, task.creator, "NOT_CREATOR", "Only the creator can approve work")
        return self._complete(config, task, accounts or PayoutAccounts(), "approved")

    def reject_work(self, config: BoardConfig, task: Task, actor: str) -> Transition:
        """Send the task back to Open. The bounty stays in escrow."""
        require_status(task, Operation.REJECT_WORK)
        require_actor(actor, task.creator, "NOT_CREATOR", "Only the creator can reject work")
        return Transition(
            config=config,
            task=replace(
                task,
                claimer=None,
                proof_hash=None,
                submitted_at=0,
                claimed_at=0,
                status=TaskStatus.OPEN,
            ),
            event="rejected",
        )

    def dispute(self, config: BoardConfig, task: Task, actor: str) -> Transition:
        return self._disputes.open_dispute(config, task, actor)

    def resolve_dispute(
        self,
        config: BoardConfig,
        task: Task,
        actor: str,
        winner: int,
        accounts: PayoutAccounts | None = None,
    ) -> Transition:
        return self._disputes.resolve(config, task, actor, winner, accounts or PayoutAccounts())

    def cancel_task(
        self,
        config: BoardConfig,
        task: Task,
        actor: str,
        accounts: PayoutAccounts | None = None,
    ) -> Transition:
        """Refund the full bounty to the creator."""
        require_status(task, Operation.CANCEL_TASK)
        require_actor(actor, task.creator, "NOT_CREATOR", "Only the creator can cancel")
        if accounts is not None:
            require_account(accounts.creator, task.creator, "creator")
        return Transition(
            config=replace(config, total_escrowed=checked_sub(config.total_escrowed, task.bounty)),
            task=replace(task, status=TaskStatus.CANCELLED),
            transfers=(Transfer(task.address, task.creator, task.bounty, "refund"),),
            event="cancelled",
        )

    def claim_expired(
        self,
        config: BoardConfig,
        task: Task,
        actor: str,
        now: int,
        accounts: PayoutAccounts | None = None,
    ) -> Transition:
        """
        Pay the claimer once the creator has sat on a submission for too long.

        Anyone may trigger this; ``actor`` is only recorded in the event.
        """
        require_status(task, Operation.CLAIM_EXPIRED)
        elapsed = now - task.submitted_at
        if task.submitted_at == 0 or elapsed < AUTO_RELEASE_TIMEOUT:
            raise TimeoutNotElapsedError(
                "AUTO_RELEASE_NOT_READY",
                "Auto-release timeout has not elapsed",
                {
                    "task_id": task.id,
                    "submitted_at": task.submitted_at,
                    "now": now,
                    "timeout": AUTO_RELEASE_TIMEOUT,
                },
            )
        return self._complete(config, task, accounts or PayoutAccounts(), "expired")

    def _complete(
        self,
        config: BoardConfig,
        task: Task,
        accounts: PayoutAccounts,
        event: str,
    ) -> Transition:
        require_account(accounts.claimer, task.claimer, "claimer")
        require_account(accounts.treasury, config.treasury, "treasury")
        if task.claimer is None:
            msg = f"Submitted task {task.id} has no claimer"
            raise RuntimeError(msg)

        settlement = self._settlement.compute(task.bounty, config.protocol_fee_bps)
        transfers = self._settlement.payout_transfers(
            task.address, task.claimer, config.treasury, settlement
        )
        return Transition(
            config=replace(
                config,
                total_escrowed=checked_sub(config.total_escrowed, task.bounty),
                total_completed=checked_add(config.total_completed, 1),
            ),
            task=replace(task, status=TaskStatus.COMPLETED),
            transfers=transfers,
            event=event,
        )
