"""Service layer components."""

from bounty_board.services.account_store import AccountStore
from bounty_board.services.bounty_board import BountyBoard
from bounty_board.services.clock import Clock, SystemClock
from bounty_board.services.dispute_resolver import DisputeResolver
from bounty_board.services.instruction_router import InstructionRouter
from bounty_board.services.lifecycle import TaskLifecycleMachine
from bounty_board.services.settlement import SettlementEngine
from bounty_board.services.signing import InstructionSigner

__all__ = [
    "AccountStore",
    "BountyBoard",
    "Clock",
    "DisputeResolver",
    "InstructionRouter",
    "InstructionSigner",
    "SettlementEngine",
    "SystemClock",
    "TaskLifecycleMachine",
]
