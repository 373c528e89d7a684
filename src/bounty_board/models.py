"""Persistent records and value types shared across the board."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from bounty_board.constants import HASH_SIZE, TAGS_SIZE
from bounty_board.core.exceptions import ValidationError


class TaskStatus(StrEnum):
    """Lifecycle status of a task. COMPLETED and CANCELLED are terminal."""

    OPEN = "open"
    CLAIMED = "claimed"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


class RecordKind(StrEnum):
    """Kinds of record held by the account store."""

    CONFIG = "config"
    TREASURY = "treasury"
    TASK = "task"


@dataclass(frozen=True)
class BoardConfig:
    """Protocol-wide singleton: admin, fee rate, treasury and aggregate counters."""

    admin: str
    protocol_fee_bps: int
    treasury: str
    dispute_stake: int
    task_count: int = 0
    total_escrowed: int = 0
    total_completed: int = 0

    def to_record(self) -> dict[str, Any]:
        return {
            "admin": self.admin,
            "protocol_fee_bps": self.protocol_fee_bps,
            "treasury": self.treasury,
            "dispute_stake": self.dispute_stake,
            "task_count": self.task_count,
            "total_escrowed": self.total_escrowed,
            "total_completed": self.total_completed,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> BoardConfig:
        return cls(
            admin=str(data["admin"]),
            protocol_fee_bps=int(data["protocol_fee_bps"]),
            treasury=str(data["treasury"]),
            dispute_stake=int(data["dispute_stake"]),
            task_count=int(data["task_count"]),
            total_escrowed=int(data["total_escrowed"]),
            total_completed=int(data["total_completed"]),
        )


@dataclass(frozen=True)
class Treasury:
    """Balance sink for protocol fees and forfeited stakes."""

    address: str
    created_at: int

    def to_record(self) -> dict[str, Any]:
        return {"address": self.address, "created_at": self.created_at}


@dataclass(frozen=True)
class Task:
    """
    One bounty and its escrow.

    ``address`` is the escrow account holding the bounty (and the dispute
    stake while disputed). Timestamps are unix seconds; 0 means unset.
    """

    id: int
    address: str
    creator: str
    bounty: int
    description_hash: bytes
    status: TaskStatus
    created_at: int
    claimer: str | None = None
    proof_hash: bytes | None = None
    deadline: int = 0
    submitted_at: int = 0
    claimed_at: int = 0
    tags: bytes = bytes(TAGS_SIZE)

    @property
    def tag_names(self) -> list[str]:
        return decode_tags(self.tags)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "creator": self.creator,
            "claimer": self.claimer,
            "bounty": self.bounty,
            "description_hash": self.description_hash.hex(),
            "proof_hash": self.proof_hash.hex() if self.proof_hash is not None else None,
            "status": self.status.value,
            "created_at": self.created_at,
            "deadline": self.deadline,
            "submitted_at": self.submitted_at,
            "claimed_at": self.claimed_at,
            "tags": self.tags.hex(),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Task:
        proof_hash = data.get("proof_hash")
        return cls(
            id=int(data["id"]),
            address=str(data["address"]),
            creator=str(data["creator"]),
            claimer=data.get("claimer"),
            bounty=int(data["bounty"]),
            description_hash=bytes.fromhex(data["description_hash"]),
            proof_hash=bytes.fromhex(proof_hash) if proof_hash is not None else None,
            status=TaskStatus(data["status"]),
            created_at=int(data["created_at"]),
            deadline=int(data["deadline"]),
            submitted_at=int(data["submitted_at"]),
            claimed_at=int(data.get("claimed_at", 0)),
            tags=bytes.fromhex(data["tags"]),
        )

    def to_response(self) -> dict[str, Any]:
        """Read-side view with decoded tags."""
        response = self.to_record()
        response["tag_names"] = self.tag_names
        return response


@dataclass(frozen=True)
class Transfer:
    """Move ``amount`` from ``source`` to ``destination``."""

    source: str
    destination: str
    amount: int
    reason: str


@dataclass(frozen=True)
class Transition:
    """
    Result of a lifecycle operation, computed before anything is written.

    The caller commits ``config``, ``task`` and ``transfers`` together or
    not at all.
    """

    config: BoardConfig
    task: Task
    transfers: tuple[Transfer, ...] = field(default_factory=tuple)
    event: str = ""


def fingerprint(content: str | bytes) -> bytes:
    """SHA-256 fingerprint for descriptions and proofs."""
    raw = content.encode("utf-8") if isinstance(content, str) else content
    return hashlib.sha256(raw).digest()


def require_hash(value: bytes, field_name: str) -> bytes:
    """Reject fingerprints that are not exactly 32 bytes."""
    if not isinstance(value, bytes) or len(value) != HASH_SIZE:
        raise ValidationError(
            "INVALID_HASH",
            f"{field_name} must be exactly {HASH_SIZE} bytes",
            {"field": field_name},
        )
    return value


def encode_tags(names: list[str]) -> bytes:
    """Pack tag names into the fixed 16-byte tag field (comma-joined UTF-8, zero padded)."""
    cleaned = [name.strip().lower() for name in names if name.strip()]
    if any("," in name for name in cleaned):
        raise ValidationError("INVALID_TAGS", "Tag names must not contain commas", {})
    packed = ",".join(cleaned).encode("utf-8")
    if len(packed) > TAGS_SIZE:
        raise ValidationError(
            "INVALID_TAGS",
            f"Encoded tags must fit in {TAGS_SIZE} bytes",
            {"encoded_length": len(packed)},
        )
    return packed.ljust(TAGS_SIZE, b"\x00")


def decode_tags(raw: bytes) -> list[str]:
    """Inverse of encode_tags. Undecodable payloads yield no names."""
    stripped = raw.rstrip(b"\x00")
    if not stripped:
        return []
    try:
        text = stripped.decode("utf-8")
    except UnicodeDecodeError:
        return []
    return [name for name in text.split(",") if name]
