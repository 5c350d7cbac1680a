from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from vrf_oracle.db import FulfillmentRecord, session_scope, was_fulfilled
from vrf_oracle.execution.fulfillment import FulfillmentOutcome


def outcome_status(outcome: FulfillmentOutcome | None, error: Exception | None) -> str:
    if error is not None:
        return "failed"
    if outcome is None:
        return "ignored"
    return "fulfilled"


@dataclass
class OutcomeRecorder:
    """Completion sink for fulfillment units; persists when a session factory is set."""

    SessionFactory: object | None = None

    def report(
        self,
        program_id: str,
        request_tx: str,
        source: str,
        outcome: FulfillmentOutcome | None = None,
        error: Exception | None = None,
    ) -> str:
        status = outcome_status(outcome, error)
        if outcome is not None:
            logger.info("Fulfilled request {} with {}", request_tx, outcome.transaction)
        if self.SessionFactory is None:
            return status
        with session_scope(self.SessionFactory) as s:
            s.add(
                FulfillmentRecord(
                    program_id=program_id,
                    request_tx=request_tx,
                    response_tx=outcome.transaction if outcome else None,
                    vrf_account=outcome.vrf if outcome else None,
                    seed_hex=outcome.seed.hex() if outcome else None,
                    proof_hex=outcome.proof.hex() if outcome else None,
                    status=status,
                    source=source,
                    error=str(error) if error is not None else None,
                )
            )
        return status

    def already_fulfilled(self, request_tx: str) -> bool:
        if self.SessionFactory is None:
            return False
        return was_fulfilled(self.SessionFactory, request_tx)
