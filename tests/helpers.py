"""Shared test helpers for bounty board tests."""

from __future__ import annotations

from bounty_board.models import BoardConfig, Task, TaskStatus, fingerprint
from bounty_board.services.addresses import task_address, treasury_address

ADMIN = "admin-account"
CREATOR = "creator-account"
WORKER = "worker-account"
DISPUTER = "disputer-account"
OUTSIDER = "outsider-account"

FEE_BPS = 200
DISPUTE_STAKE = 100_000_000
BOUNTY = 1_000_000_000
START_TIME = 1_700_000_000

CREATOR_FUNDS = 10_000_000_000
WORKER_FUNDS = 1_000_000_000
DISPUTER_FUNDS = 1_000_000_000

DESCRIPTION_HASH = fingerprint("Summarize the attached paper in 200 words")
PROOF_HASH = fingerprint("https://example.com/summary.txt")


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: int = START_TIME) -> None:
        self.current = start

    def now(self) -> int:
        return self.current

    def advance(self, seconds: int) -> None:
        self.current += seconds


def make_config(**overrides: object) -> BoardConfig:
    values: dict[str, object] = {
        "admin": ADMIN,
        "protocol_fee_bps": FEE_BPS,
        "treasury": treasury_address(),
        "dispute_stake": DISPUTE_STAKE,
        "task_count": 1,
        "total_escrowed": BOUNTY,
        "total_completed": 0,
    }
    values.update(overrides)
    return BoardConfig(**values)  # type: ignore[arg-type]


def make_task(status: TaskStatus = TaskStatus.OPEN, **overrides: object) -> Task:
    values: dict[str, object] = {
        "id": 0,
        "address": task_address(0),
        "creator": CREATOR,
        "bounty": BOUNTY,
        "description_hash": DESCRIPTION_HASH,
        "status": status,
        "created_at": START_TIME,
    }
    if status in (TaskStatus.CLAIMED, TaskStatus.SUBMITTED, TaskStatus.DISPUTED):
        values["claimer"] = WORKER
        values["claimed_at"] = START_TIME + 10
    if status == TaskStatus.SUBMITTED:
        values["proof_hash"] = PROOF_HASH
        values["submitted_at"] = START_TIME + 20
    values.update(overrides)
    return Task(**values)  # type: ignore[arg-type]
