"""Core infrastructure components."""

from bounty_board.core.exceptions import ServiceError

__all__ = ["ServiceError"]
