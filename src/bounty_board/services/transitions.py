"""Transition table and the precondition guards shared by every operation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import assert_never

from bounty_board.core.exceptions import (
    AccountMismatchError,
    InvalidStatusError,
    UnauthorizedError,
)
from bounty_board.models import BoardConfig, Task, TaskStatus
from bounty_board.services.addresses import config_address


class Operation(StrEnum):
    """Lifecycle operations that act on an existing task."""

    CLAIM_TASK = "claim_task"
    SUBMIT_WORK = "submit_work"
    APPROVE_WORK = "approve_work"
    REJECT_WORK = "reject_work"
    DISPUTE = "dispute"
    RESOLVE_DISPUTE = "resolve_dispute"
    CANCEL_TASK = "cancel_task"
    CLAIM_EXPIRED = "claim_expired"


def allowed_operations(status: TaskStatus) -> frozenset[Operation]:
    """Operations legal in ``status``. Terminal statuses allow none."""
    match status:
        case TaskStatus.OPEN:
            return frozenset({Operation.CLAIM_TASK, Operation.DISPUTE, Operation.CANCEL_TASK})
        case TaskStatus.CLAIMED:
            return frozenset({Operation.SUBMIT_WORK})
        case TaskStatus.SUBMITTED:
            return frozenset(
                {Operation.APPROVE_WORK, Operation.REJECT_WORK, Operation.CLAIM_EXPIRED}
            )
        case TaskStatus.DISPUTED:
            return frozenset({Operation.RESOLVE_DISPUTE})
        case TaskStatus.COMPLETED | TaskStatus.CANCELLED:
            return frozenset()
        case _:
            assert_never(status)


# Error code reported when an operation is attempted in the wrong status
_STATUS_ERROR_CODES: dict[Operation, str] = {
    Operation.CLAIM_TASK: "TASK_NOT_OPEN",
    Operation.SUBMIT_WORK: "INVALID_TASK_STATUS",
    Operation.APPROVE_WORK: "INVALID_TASK_STATUS",
    Operation.REJECT_WORK: "INVALID_TASK_STATUS",
    Operation.DISPUTE: "INVALID_TASK_STATUS",
    Operation.RESOLVE_DISPUTE: "TASK_NOT_DISPUTED",
    Operation.CANCEL_TASK: "TASK_ALREADY_CLAIMED",
    Operation.CLAIM_EXPIRED: "INVALID_TASK_STATUS",
}


def require_status(task: Task, operation: Operation) -> None:
    """Raise InvalidStatusError unless ``operation`` is legal for the task's status."""
    if operation in allowed_operations(task.status):
        return
    code = "INVALID_TASK_STATUS" if task.status.is_terminal else _STATUS_ERROR_CODES[operation]
    raise InvalidStatusError(
        code,
        f"Cannot {operation.value} task in '{task.status.value}' status",
        {"task_id": task.id, "status": task.status.value, "operation": operation.value},
    )


def require_actor(actor: str, expected: str | None, code: str, message: str) -> None:
    """Raise UnauthorizedError unless the signer is the expected party."""
    if expected is None or actor != expected:
        raise UnauthorizedError(code, message, {"actor": actor})


def require_participant(actor: str, config: BoardConfig, *escrows: str) -> None:
    """Protocol-owned accounts (config, treasury, task escrows) never sign operations."""
    if actor in (config.treasury, config_address(), *escrows):
        raise UnauthorizedError(
            "PROTOCOL_ACCOUNT",
            "Protocol-owned accounts cannot act on the board",
            {"actor": actor},
        )


def require_account(supplied: str | None, stored: str | None, role: str) -> None:
    """A supplied account reference, when given, must equal the stored one."""
    if supplied is None:
        return
    if supplied != stored:
        raise AccountMismatchError(
            "ACCOUNT_MISMATCH",
            f"Supplied {role} account does not match the recorded {role}",
            {"role": role, "supplied": supplied},
        )


@dataclass(frozen=True)
class PayoutAccounts:
    """
    Account references a caller supplies for a settlement.

    Payouts always go to the recorded parties; a supplied reference only
    guards against settling to a party the caller did not intend.
    """

    claimer: str | None = None
    creator: str | None = None
    treasury: str | None = None
