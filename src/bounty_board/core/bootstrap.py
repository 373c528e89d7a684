"""Wiring of store, clock and board from settings."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

from bounty_board.config import get_settings
from bounty_board.logging import get_logger, setup_logging
from bounty_board.services.account_store import AccountStore
from bounty_board.services.bounty_board import BountyBoard
from bounty_board.services.clock import SystemClock
from bounty_board.services.lifecycle import TaskLifecycleMachine

if TYPE_CHECKING:
    from collections.abc import Iterator

    from bounty_board.config import Settings
    from bounty_board.models import BoardConfig
    from bounty_board.services.clock import Clock


def create_bounty_board(settings: Settings, clock: Clock | None = None) -> BountyBoard:
    """Configure logging, open the database and build a board over it."""
    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    store = AccountStore(db_path=settings.database.path)
    board = BountyBoard(
        store=store,
        clock=clock if clock is not None else SystemClock(),
        machine=TaskLifecycleMachine(),
    )

    logger.info(
        "Bounty board starting",
        extra={
            "service_name": settings.service.name,
            "version": settings.service.version,
            "db_path": settings.database.path,
        },
    )
    return board


def initialize_from_settings(board: BountyBoard, admin: str, settings: Settings) -> BoardConfig:
    """Initialize the board with the fee rate and stake from the ``protocol`` section."""
    return board.initialize(
        admin,
        settings.protocol.protocol_fee_bps,
        settings.protocol.dispute_stake,
    )


@contextmanager
def open_bounty_board(
    settings: Settings | None = None,
    clock: Clock | None = None,
) -> Iterator[BountyBoard]:
    """Board for the duration of a block; the database is closed on exit."""
    resolved = settings if settings is not None else get_settings()
    board = create_bounty_board(resolved, clock)
    try:
        yield board
    finally:
        get_logger(__name__).info("Bounty board shutting down")
        board.store.close()
