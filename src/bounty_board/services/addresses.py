"""Deterministic storage identifiers for board records."""

from __future__ import annotations

import hashlib

CONFIG_SEED = b"config"
TREASURY_SEED = b"treasury"
TASK_SEED = b"task"


def derive_address(*seeds: bytes) -> str:
    """Hash length-prefixed seeds into a stable hex identifier."""
    digest = hashlib.sha256()
    for seed in seeds:
        digest.update(len(seed).to_bytes(2, "little"))
        digest.update(seed)
    return digest.hexdigest()


def config_address() -> str:
    return derive_address(CONFIG_SEED)


def treasury_address() -> str:
    return derive_address(TREASURY_SEED)


def task_address(task_id: int) -> str:
    """Escrow/record identifier of the task with the given sequential id."""
    return derive_address(TASK_SEED, task_id.to_bytes(8, "little"))
