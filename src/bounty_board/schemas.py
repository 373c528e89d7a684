"""Pydantic models for signed instruction parameters."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StringConstraints

from bounty_board.constants import I64_MAX, I64_MIN, U64_MAX

HexHash = Annotated[str, StringConstraints(pattern=r"^[0-9a-fA-F]{64}$")]
Amount = Annotated[StrictInt, Field(ge=0, le=U64_MAX)]
TaskId = Annotated[StrictInt, Field(ge=0, le=U64_MAX)]
Timestamp = Annotated[StrictInt, Field(ge=I64_MIN, le=I64_MAX)]
Nonce = Annotated[str, StringConstraints(min_length=1, max_length=128)]


class InstructionParams(BaseModel):
    """Every instruction carries a signer-chosen nonce that may be used once."""

    model_config = ConfigDict(extra="forbid")
    nonce: Nonce


class InitializeParams(InstructionParams):
    protocol_fee_bps: StrictInt
    dispute_stake: Amount


class CreateTaskParams(InstructionParams):
    """Bounty minimum and tag size are checked by the lifecycle machine."""

    bounty: Amount
    description_hash: HexHash
    deadline: Timestamp = 0
    tags: list[str] = Field(default_factory=list)


class TaskParams(InstructionParams):
    """Instructions that only name a task."""

    task_id: TaskId


class SubmitWorkParams(InstructionParams):
    task_id: TaskId
    proof_hash: HexHash


class ApproveWorkParams(InstructionParams):
    task_id: TaskId
    claimer: str | None = None
    treasury: str | None = None


class ClaimExpiredParams(ApproveWorkParams):
    pass


class CancelTaskParams(InstructionParams):
    task_id: TaskId
    creator: str | None = None


class ResolveDisputeParams(InstructionParams):
    task_id: TaskId
    winner: StrictInt
    claimer: str | None = None
    creator: str | None = None
    treasury: str | None = None
