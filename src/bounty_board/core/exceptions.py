"""Typed failures raised by bounty board operations.

Every failure carries a machine-readable ``error`` code, a human-readable
``message`` and a ``details`` dict. Subclasses group codes by failure kind so
callers can match on type or on code.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base class for all bounty board failures."""

    def __init__(
        self,
        error: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.details: dict[str, Any] = details if details is not None else {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.error!r}, {self.message!r})"


class UnauthorizedError(ServiceError):
    """Signer is not the party the operation requires."""


class InvalidStatusError(ServiceError):
    """Operation is not legal in the task's current status."""


class ValidationError(ServiceError):
    """A parameter value is out of range or malformed."""


class ArithmeticOverflowError(ServiceError):
    """Checked arithmetic left the unsigned 64-bit range."""


class InsufficientBalanceError(ServiceError):
    """An account cannot cover a debit."""


class TransferError(ServiceError):
    """A planned transfer is malformed or would not conserve value."""


class DeadlinePassedError(ServiceError):
    """The task deadline has already passed."""


class AccountMismatchError(ServiceError):
    """A supplied account does not match the stored reference."""


class TimeoutNotElapsedError(ServiceError):
    """Auto-release was requested before the timeout elapsed."""


class AlreadyExistsError(ServiceError):
    """A record already occupies the identifier."""


class NotFoundError(ServiceError):
    """No record exists at the identifier."""


class InvalidInstructionError(ServiceError):
    """A signed instruction is malformed or its signature does not verify."""
