"""Bounty board: atomic execution of lifecycle operations plus read-side queries."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

from bounty_board.constants import MAX_FEED_ITEMS, TAGS_SIZE, U64_MAX
from bounty_board.core.exceptions import NotFoundError, ServiceError, ValidationError
from bounty_board.logging import get_logger
from bounty_board.models import (
    BoardConfig,
    RecordKind,
    Task,
    TaskStatus,
    Transition,
    encode_tags,
)
from bounty_board.services.addresses import config_address, task_address
from bounty_board.services.lifecycle import TaskLifecycleMachine
from bounty_board.services.transitions import PayoutAccounts, require_participant

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from bounty_board.services.account_store import AccountStore
    from bounty_board.services.clock import Clock

_SORT_KEYS = frozenset({"newest", "bounty", "deadline"})

# Active means the bounty is still in play for the claimer
_ACTIVE_STATUSES = frozenset({TaskStatus.OPEN, TaskStatus.CLAIMED, TaskStatus.SUBMITTED})


def _validate_task_id(task_id: int) -> int:
    if isinstance(task_id, bool) or not isinstance(task_id, int) or not 0 <= task_id <= U64_MAX:
        raise ValidationError(
            "INVALID_TASK_ID",
            "task_id must be a non-negative integer",
            {"task_id": task_id},
        )
    return task_id


def _validate_limit(value: int | None, field_name: str, maximum: int | None = None) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(
            "INVALID_PARAMETERS", f"{field_name} must be a non-negative integer", {}
        )
    if maximum is not None and value > maximum:
        raise ValidationError(
            "INVALID_PARAMETERS", f"{field_name} must be at most {maximum}", {}
        )


class BountyBoard:
    """
    Runs every operation as one store transaction.

    Inside the transaction the board reads Config and the Task, asks the
    lifecycle machine for a Transition, plans the transfers against current
    balances, and only then writes. Any failure before the commit leaves
    records, balances and history untouched.
    """

    def __init__(
        self,
        store: AccountStore,
        clock: Clock,
        machine: TaskLifecycleMachine | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._machine = machine if machine is not None else TaskLifecycleMachine()
        self._logger = get_logger(__name__)

    @property
    def store(self) -> AccountStore:
        return self._store

    @contextlib.contextmanager
    def instruction_scope(self, signer: str, nonce: str) -> Iterator[None]:
        """
        Consume ``(signer, nonce)`` in the same transaction as the operation run inside.

        A rejected operation rolls back its own writes; its nonce stays
        consumed.

        Raises:
            InvalidInstructionError: REPLAYED_INSTRUCTION if the nonce was used before.
        """
        now = self._clock.now()
        try:
            with self._store.transaction():
                self._store.consume_nonce(signer, nonce, now)
                yield
        except ServiceError as exc:
            if exc.error != "REPLAYED_INSTRUCTION":
                self._store.consume_nonce(signer, nonce, now)
            raise

    # -- operations -------------------------------------------------------

    def initialize(self, admin: str, protocol_fee_bps: int, dispute_stake: int) -> BoardConfig:
        """
        Create the Config and Treasury records.

        Raises:
            AlreadyExistsError: The board is already initialized.
            ValidationError: INVALID_FEE_BPS or INVALID_AMOUNT.
        """
        try:
            with self._store.transaction():
                now = self._clock.now()
                config, treasury = self._machine.initialize(
                    admin, protocol_fee_bps, dispute_stake, now
                )
                self._store.create(RecordKind.CONFIG, config_address(), config.to_record())
                self._store.create(RecordKind.TREASURY, treasury.address, treasury.to_record())
                self._store.record_event(
                    "initialized",
                    None,
                    admin,
                    {"protocol_fee_bps": protocol_fee_bps, "dispute_stake": dispute_stake},
                    now,
                )
        except ServiceError as exc:
            self._log_rejection("initialize", admin, None, exc)
            raise

        self._logger.info(
            "Board initialized",
            extra={
                "admin": admin,
                "protocol_fee_bps": protocol_fee_bps,
                "dispute_stake": dispute_stake,
            },
        )
        return config

    def create_task(
        self,
        creator: str,
        bounty: int,
        description_hash: bytes,
        deadline: int = 0,
        tags: bytes | list[str] | None = None,
    ) -> Task:
        """Post a task and escrow its bounty. ``tags`` may be raw bytes or names."""
        if tags is None:
            raw_tags = bytes(TAGS_SIZE)
        elif isinstance(tags, bytes):
            raw_tags = tags
        else:
            raw_tags = encode_tags(tags)

        def step(config: BoardConfig, _task: Task | None, now: int) -> Transition:
            return self._machine.create_task(
                config, creator, bounty, description_hash, deadline, raw_tags, now
            )

        return self._run("create_task", creator, None, step).task

    def claim_task(self, actor: str, task_id: int) -> Task:
        def step(config: BoardConfig, task: Task | None, now: int) -> Transition:
            return self._machine.claim_task(config, _existing(task), actor, now)

        return self._run("claim_task", actor, task_id, step).task

    def submit_work(self, actor: str, task_id: int, proof_hash: bytes) -> Task:
        def step(config: BoardConfig, task: Task | None, now: int) -> Transition:
            return self._machine.submit_work(config, _existing(task), actor, proof_hash, now)

        return self._run("submit_work", actor, task_id, step).task

    def approve_work(
        self,
        actor: str,
        task_id: int,
        *,
        claimer: str | None = None,
        treasury: str | None = None,
    ) -> Task:
        accounts = PayoutAccounts(claimer=claimer, treasury=treasury)

        def step(config: BoardConfig, task: Task | None, _now: int) -> Transition:
            return self._machine.approve_work(config, _existing(task), actor, accounts)

        return self._run("approve_work", actor, task_id, step).task

    def reject_work(self, actor: str, task_id: int) -> Task:
        def step(config: BoardConfig, task: Task | None, _now: int) -> Transition:
            return self._machine.reject_work(config, _existing(task), actor)

        return self._run("reject_work", actor, task_id, step).task

    def dispute(self, actor: str, task_id: int) -> Task:
        def step(config: BoardConfig, task: Task | None, _now: int) -> Transition:
            return self._machine.dispute(config, _existing(task), actor)

        return self._run("dispute", actor, task_id, step).task

    def resolve_dispute(
        self,
        actor: str,
        task_id: int,
        winner: int,
        *,
        claimer: str | None = None,
        creator: str | None = None,
        treasury: str | None = None,
    ) -> Task:
        accounts = PayoutAccounts(claimer=claimer, creator=creator, treasury=treasury)

        def step(config: BoardConfig, task: Task | None, _now: int) -> Transition:
            return self._machine.resolve_dispute(config, _existing(task), actor, winner, accounts)

        return self._run("resolve_dispute", actor, task_id, step).task

    def cancel_task(self, actor: str, task_id: int, *, creator: str | None = None) -> Task:
        accounts = PayoutAccounts(creator=creator)

        def step(config: BoardConfig, task: Task | None, _now: int) -> Transition:
            return self._machine.cancel_task(config, _existing(task), actor, accounts)

        return self._run("cancel_task", actor, task_id, step).task

    def claim_expired(
        self,
        actor: str,
        task_id: int,
        *,
        claimer: str | None = None,
        treasury: str | None = None,
    ) -> Task:
        accounts = PayoutAccounts(claimer=claimer, treasury=treasury)

        def step(config: BoardConfig, task: Task | None, now: int) -> Transition:
            return self._machine.claim_expired(config, _existing(task), actor, now, accounts)

        return self._run("claim_expired", actor, task_id, step).task

    # -- execution --------------------------------------------------------

    def _run(
        self,
        operation: str,
        actor: str,
        task_id: int | None,
        step: Callable[[BoardConfig, Task | None, int], Transition],
    ) -> Transition:
        try:
            with self._store.transaction():
                config = self._load_config()
                task = self._load_task(task_id) if task_id is not None else None
                now = self._clock.now()
                transition = step(config, task, now)
                # Escrows of other tasks are only known to the store
                if self._store.exists(RecordKind.TASK, actor):
                    require_participant(actor, config, actor)
                self._commit(transition, actor, now, is_new=task is None)
        except ServiceError as exc:
            self._log_rejection(operation, actor, task_id, exc)
            raise

        self._logger.info(
            "Task operation committed",
            extra={
                "operation": operation,
                "event": transition.event,
                "actor": actor,
                "task_id": transition.task.id,
                "status": transition.task.status.value,
                "transfers": [
                    {
                        "source": transfer.source,
                        "destination": transfer.destination,
                        "amount": transfer.amount,
                        "reason": transfer.reason,
                    }
                    for transfer in transition.transfers
                ],
            },
        )
        return transition

    def _commit(self, transition: Transition, actor: str, now: int, *, is_new: bool) -> None:
        """Apply a computed transition. Must be called inside a store transaction."""
        task = transition.task
        accounts = {transfer.source for transfer in transition.transfers}
        accounts |= {transfer.destination for transfer in transition.transfers}
        balances = {account: self._store.balance(account) for account in accounts}

        # Raises before any write if a debit cannot be covered or a credit overflows
        self._machine.settlement.plan(balances, transition.transfers)

        for transfer in transition.transfers:
            if transfer.amount == 0:
                continue
            self._store.debit(transfer.source, transfer.amount)
            self._store.credit(transfer.destination, transfer.amount)
            self._store.record_transfer(
                transfer.source,
                transfer.destination,
                transfer.amount,
                transfer.reason,
                task.id,
                now,
            )

        self._store.write(RecordKind.CONFIG, config_address(), transition.config.to_record())
        if is_new:
            self._store.create(RecordKind.TASK, task.address, task.to_record())
        else:
            self._store.write(RecordKind.TASK, task.address, task.to_record())

        self._store.record_event(
            transition.event,
            task.id,
            actor,
            {"status": task.status.value, "bounty": task.bounty},
            now,
        )

    def _log_rejection(
        self, operation: str, actor: str, task_id: int | None, exc: ServiceError
    ) -> None:
        self._logger.warning(
            "Task operation rejected",
            extra={
                "operation": operation,
                "actor": actor,
                "task_id": task_id,
                "error": exc.error,
                "error_message": exc.message,
            },
        )

    def _load_config(self) -> BoardConfig:
        try:
            record = self._store.read(RecordKind.CONFIG, config_address())
        except NotFoundError as exc:
            raise NotFoundError(
                "NOT_FOUND", "Board has not been initialized", {"record": "config"}
            ) from exc
        return BoardConfig.from_record(record)

    def _load_task(self, task_id: int) -> Task:
        _validate_task_id(task_id)
        try:
            record = self._store.read(RecordKind.TASK, task_address(task_id))
        except NotFoundError as exc:
            raise NotFoundError(
                "NOT_FOUND", f"Task {task_id} not found", {"task_id": task_id}
            ) from exc
        return Task.from_record(record)

    # -- queries ----------------------------------------------------------

    def get_config(self) -> BoardConfig:
        return self._load_config()

    def get_task(self, task_id: int) -> Task:
        return self._load_task(task_id)

    def get_balance(self, account: str) -> int:
        return self._store.balance(account)

    def get_transfers(self, account: str) -> list[dict[str, Any]]:
        return self._store.get_transfers(account)

    def _all_tasks(self) -> list[Task]:
        return [Task.from_record(record) for record in self._store.list_records(RecordKind.TASK)]

    def list_tasks(
        self,
        status: TaskStatus | str | None = None,
        creator: str | None = None,
        claimer: str | None = None,
        tag: str | None = None,
        sort: str = "newest",
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Task]:
        """
        Filter and order tasks.

        ``sort`` is one of newest (highest id first), bounty (largest first)
        or deadline (soonest first, tasks without a deadline last).
        """
        if sort not in _SORT_KEYS:
            raise ValidationError(
                "INVALID_PARAMETERS",
                f"sort must be one of {sorted(_SORT_KEYS)}",
                {"sort": sort},
            )
        status_filter: TaskStatus | None = None
        if status is not None:
            try:
                status_filter = TaskStatus(status)
            except ValueError as exc:
                raise ValidationError(
                    "INVALID_PARAMETERS", f"Unknown status: {status}", {"status": status}
                ) from exc
        _validate_limit(limit, "limit")
        _validate_limit(offset, "offset")

        tasks = self._all_tasks()
        if status_filter is not None:
            tasks = [task for task in tasks if task.status == status_filter]
        if creator is not None:
            tasks = [task for task in tasks if task.creator == creator]
        if claimer is not None:
            tasks = [task for task in tasks if task.claimer == claimer]
        if tag is not None:
            wanted = tag.strip().lower()
            tasks = [task for task in tasks if wanted in task.tag_names]

        if sort == "newest":
            tasks.sort(key=lambda task: task.id, reverse=True)
        elif sort == "bounty":
            tasks.sort(key=lambda task: (-task.bounty, -task.id))
        else:
            tasks.sort(key=lambda task: (task.deadline <= 0, task.deadline, task.id))

        start = offset or 0
        end = start + limit if limit is not None else None
        return tasks[start:end]

    def get_stats(self) -> dict[str, Any]:
        config = self._load_config()
        tasks = self._all_tasks()
        return {
            "total_escrowed": config.total_escrowed,
            "tasks_completed": config.total_completed,
            "total_tasks": config.task_count,
            "open_tasks": sum(1 for task in tasks if task.status == TaskStatus.OPEN),
            "active_tasks": sum(1 for task in tasks if task.status in _ACTIVE_STATUSES),
            "active_agents": len({task.claimer for task in tasks if task.claimer is not None}),
            "protocol_fee_bps": config.protocol_fee_bps,
            "dispute_stake": config.dispute_stake,
            "treasury_balance": self._store.balance(config.treasury),
        }

    def _agent_profiles(self) -> dict[str, dict[str, Any]]:
        config = self._load_config()
        settlement = self._machine.settlement
        profiles: dict[str, dict[str, Any]] = {}

        def profile(account: str) -> dict[str, Any]:
            if account not in profiles:
                profiles[account] = {
                    "account": account,
                    "tasks_posted": 0,
                    "tasks_claimed": 0,
                    "tasks_completed": 0,
                    "earned": 0,
                    "spent": 0,
                    "approval_rate": 0,
                }
            return profiles[account]

        for task in self._all_tasks():
            posted = profile(task.creator)
            posted["tasks_posted"] += 1
            if task.status == TaskStatus.COMPLETED:
                posted["spent"] += task.bounty

            if task.claimer is None:
                continue
            claimed = profile(task.claimer)
            claimed["tasks_claimed"] += 1
            if task.status == TaskStatus.COMPLETED:
                claimed["tasks_completed"] += 1
                claimed["earned"] += settlement.compute(
                    task.bounty, config.protocol_fee_bps
                ).payment

        for entry in profiles.values():
            if entry["tasks_claimed"] > 0:
                entry["approval_rate"] = round(
                    entry["tasks_completed"] * 100 / entry["tasks_claimed"]
                )
        return profiles

    def get_agent_profile(self, account: str) -> dict[str, Any]:
        profiles = self._agent_profiles()
        if account not in profiles:
            raise NotFoundError(
                "NOT_FOUND", "Account has no board activity", {"account": account}
            )
        result = dict(profiles[account])
        result["balance"] = self._store.balance(account)
        return result

    def get_leaderboard(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Agents ranked by earned, then by completed count."""
        _validate_limit(limit, "limit")
        ranked = sorted(
            self._agent_profiles().values(),
            key=lambda entry: (-entry["earned"], -entry["tasks_completed"], entry["account"]),
        )
        if limit is not None:
            ranked = ranked[:limit]
        return [{"rank": index + 1, **entry} for index, entry in enumerate(ranked)]

    def get_feed(self, limit: int = MAX_FEED_ITEMS) -> list[dict[str, Any]]:
        """Newest-first activity events, at most 50."""
        _validate_limit(limit, "limit", MAX_FEED_ITEMS)
        return self._store.list_events(limit)


def _existing(task: Task | None) -> Task:
    if task is None:
        msg = "Task operation dispatched without a loaded task"
        raise RuntimeError(msg)
    return task
