"""Fee math and the checked transfer primitive.

All amounts are unsigned 64-bit integers. Python integers never wrap, so
every operation here checks the range explicitly and raises instead of
producing a value a 64-bit ledger could not hold.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from bounty_board.constants import TOTAL_BPS, U64_MAX
from bounty_board.core.exceptions import (
    ArithmeticOverflowError,
    InsufficientBalanceError,
    TransferError,
    ValidationError,
)
from bounty_board.models import Transfer

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


def _overflow(operation: str, left: int, right: int) -> ArithmeticOverflowError:
    return ArithmeticOverflowError(
        "OVERFLOW",
        "Arithmetic overflow",
        {"operation": operation, "left": left, "right": right},
    )


def checked_add(left: int, right: int) -> int:
    result = left + right
    if result < 0 or result > U64_MAX:
        raise _overflow("add", left, right)
    return result


def checked_sub(left: int, right: int) -> int:
    result = left - right
    if result < 0 or result > U64_MAX:
        raise _overflow("sub", left, right)
    return result


def checked_mul(left: int, right: int) -> int:
    result = left * right
    if result < 0 or result > U64_MAX:
        raise _overflow("mul", left, right)
    return result


def validate_fee_bps(fee_bps: int) -> int:
    """Fee rate must be an integer in 0..10000 basis points."""
    if isinstance(fee_bps, bool) or not isinstance(fee_bps, int) or not 0 <= fee_bps <= TOTAL_BPS:
        raise ValidationError(
            "INVALID_FEE_BPS",
            f"protocol_fee_bps must be between 0 and {TOTAL_BPS}",
            {"protocol_fee_bps": fee_bps},
        )
    return fee_bps


def validate_amount(amount: int, field_name: str) -> int:
    """Amounts must be integers in the unsigned 64-bit range."""
    if isinstance(amount, bool) or not isinstance(amount, int) or not 0 <= amount <= U64_MAX:
        raise ValidationError(
            "INVALID_AMOUNT",
            f"{field_name} must be an integer between 0 and {U64_MAX}",
            {"field": field_name},
        )
    return amount


@dataclass(frozen=True)
class Settlement:
    """Split of a bounty into the claimer's payment and the protocol fee."""

    bounty: int
    fee: int
    payment: int


class SettlementEngine:
    """Pure amount computation and transfer planning."""

    def compute(self, bounty: int, fee_bps: int) -> Settlement:
        """
        fee = floor(bounty * fee_bps / 10000), payment = bounty - fee.

        payment + fee == bounty holds exactly; the remainder of the floor
        division stays with the claimer.
        """
        validate_fee_bps(fee_bps)
        fee = checked_mul(bounty, fee_bps) // TOTAL_BPS
        payment = checked_sub(bounty, fee)
        return Settlement(bounty=bounty, fee=fee, payment=payment)

    def payout_transfers(
        self,
        escrow: str,
        claimer: str,
        treasury: str,
        settlement: Settlement,
        *,
        extra_to_claimer: int = 0,
    ) -> tuple[Transfer, ...]:
        """Escrow -> claimer (payment plus any returned stake), escrow -> treasury (fee)."""
        claimer_total = checked_add(settlement.payment, extra_to_claimer)
        return (
            Transfer(escrow, claimer, claimer_total, "payment"),
            Transfer(escrow, treasury, settlement.fee, "protocol_fee"),
        )

    def plan(
        self,
        balances: Mapping[str, int],
        transfers: Iterable[Transfer],
    ) -> dict[str, int]:
        """
        Apply transfers to a snapshot of balances without touching storage.

        Returns the post-transfer balance of every account involved. Raises
        InsufficientBalanceError, ArithmeticOverflowError or TransferError on
        the first transfer that cannot be applied, before anything is written.
        """
        projected: dict[str, int] = dict(balances)
        before_total = sum(projected.values())

        for transfer in transfers:
            validate_amount(transfer.amount, "amount")
            if transfer.amount == 0:
                continue
            if transfer.source == transfer.destination:
                raise TransferError(
                    "SELF_TRANSFER",
                    "Transfer source and destination are the same account",
                    {"account": transfer.source, "reason": transfer.reason},
                )

            source_balance = projected.get(transfer.source, 0)
            if source_balance < transfer.amount:
                raise InsufficientBalanceError(
                    "INSUFFICIENT_BALANCE",
                    "Account balance cannot cover the transfer",
                    {
                        "account": transfer.source,
                        "balance": source_balance,
                        "amount": transfer.amount,
                        "reason": transfer.reason,
                    },
                )
            projected[transfer.source] = source_balance - transfer.amount
            projected[transfer.destination] = checked_add(
                projected.get(transfer.destination, 0), transfer.amount
            )

        if sum(projected.values()) != before_total:
            raise TransferError(
                "VALUE_NOT_CONSERVED", "Transfer plan does not conserve value", {}
            )
        return projected
