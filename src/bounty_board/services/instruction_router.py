"""Verify signed instructions and dispatch them to the board."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from bounty_board.core.exceptions import InvalidInstructionError, ValidationError
from bounty_board.logging import get_logger
from bounty_board.schemas import (
    ApproveWorkParams,
    CancelTaskParams,
    ClaimExpiredParams,
    CreateTaskParams,
    InitializeParams,
    InstructionParams,
    ResolveDisputeParams,
    SubmitWorkParams,
    TaskParams,
)
from bounty_board.services.signing import verify_instruction

if TYPE_CHECKING:
    from collections.abc import Callable

    from bounty_board.services.bounty_board import BountyBoard


class InstructionRouter:
    """
    Entry point for signed instructions.

    The verified JWS signer is the actor of the operation; nothing in the
    payload can override it. Each (signer, nonce) pair runs at most once.
    """

    def __init__(self, board: BountyBoard) -> None:
        self._board = board
        self._logger = get_logger(__name__)
        self._handlers: dict[
            str, tuple[type[InstructionParams], Callable[[str, Any], dict[str, Any]]]
        ] = {
            "initialize": (InitializeParams, self._initialize),
            "create_task": (CreateTaskParams, self._create_task),
            "claim_task": (TaskParams, self._claim_task),
            "submit_work": (SubmitWorkParams, self._submit_work),
            "approve_work": (ApproveWorkParams, self._approve_work),
            "reject_work": (TaskParams, self._reject_work),
            "dispute": (TaskParams, self._dispute),
            "resolve_dispute": (ResolveDisputeParams, self._resolve_dispute),
            "cancel_task": (CancelTaskParams, self._cancel_task),
            "claim_expired": (ClaimExpiredParams, self._claim_expired),
        }

    @property
    def actions(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def execute(self, token: str) -> dict[str, Any]:
        """
        Verify, validate and run one instruction.

        Returns the resulting task (or config for ``initialize``) as a dict.

        Raises:
            InvalidInstructionError: Bad token, bad signature, unknown action
                or REPLAYED_INSTRUCTION for a nonce the signer already used.
            ValidationError: INVALID_PARAMETERS when the payload fails validation.
            ServiceError: Any failure raised by the operation itself.
        """
        signer, payload = verify_instruction(token)

        action = payload.pop("action", None)
        if not isinstance(action, str) or action not in self._handlers:
            raise InvalidInstructionError(
                "UNKNOWN_ACTION",
                f"Unknown instruction action: {action!r}",
                {"action": action, "supported": sorted(self._handlers)},
            )

        model, handler = self._handlers[action]
        try:
            params = model.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(
                "INVALID_PARAMETERS",
                f"Invalid parameters for {action}",
                {
                    "action": action,
                    "errors": [
                        {"loc": list(error["loc"]), "msg": error["msg"]} for error in exc.errors()
                    ],
                },
            ) from exc

        self._logger.debug("Dispatching instruction", extra={"action": action, "signer": signer})
        try:
            with self._board.instruction_scope(signer, params.nonce):
                return handler(signer, params)
        except InvalidInstructionError as exc:
            if exc.error == "REPLAYED_INSTRUCTION":
                self._logger.warning(
                    "Replayed instruction rejected",
                    extra={"action": action, "signer": signer, "nonce": params.nonce},
                )
            raise

    def _initialize(self, signer: str, params: InitializeParams) -> dict[str, Any]:
        config = self._board.initialize(signer, params.protocol_fee_bps, params.dispute_stake)
        return config.to_record()

    def _create_task(self, signer: str, params: CreateTaskParams) -> dict[str, Any]:
        task = self._board.create_task(
            signer,
            params.bounty,
            bytes.fromhex(params.description_hash),
            params.deadline,
            params.tags,
        )
        return task.to_response()

    def _claim_task(self, signer: str, params: TaskParams) -> dict[str, Any]:
        return self._board.claim_task(signer, params.task_id).to_response()

    def _submit_work(self, signer: str, params: SubmitWorkParams) -> dict[str, Any]:
        task = self._board.submit_work(signer, params.task_id, bytes.fromhex(params.proof_hash))
        return task.to_response()

    def _approve_work(self, signer: str, params: ApproveWorkParams) -> dict[str, Any]:
        task = self._board.approve_work(
            signer, params.task_id, claimer=params.claimer, treasury=params.treasury
        )
        return task.to_response()

    def _reject_work(self, signer: str, params: TaskParams) -> dict[str, Any]:
        return self._board.reject_work(signer, params.task_id).to_response()

    def _dispute(self, signer: str, params: TaskParams) -> dict[str, Any]:
        return self._board.dispute(signer, params.task_id).to_response()

    def _resolve_dispute(self, signer: str, params: ResolveDisputeParams) -> dict[str, Any]:
        task = self._board.resolve_dispute(
            signer,
            params.task_id,
            params.winner,
            claimer=params.claimer,
            creator=params.creator,
            treasury=params.treasury,
        )
        return task.to_response()

    def _cancel_task(self, signer: str, params: CancelTaskParams) -> dict[str, Any]:
        return self._board.cancel_task(signer, params.task_id, creator=params.creator).to_response()

    def _claim_expired(self, signer: str, params: ClaimExpiredParams) -> dict[str, Any]:
        task = self._board.claim_expired(
            signer, params.task_id, claimer=params.claimer, treasury=params.treasury
        )
        return task.to_response()
