from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from vrf_oracle.errors import (
    ConfirmationTimeout,
    PreflightFailure,
    RpcTransportError,
    SubmissionFailed,
    TransactionRejected,
)
from vrf_oracle.execution.callback import CallbackInstruction

# Ledger transaction errors worth another attempt
RETRYABLE_REJECTIONS = frozenset({"BlockhashNotFound", "AlreadyProcessed"})
# The block reference expired, so no earlier broadcast of the same bytes can land
STALE_BLOCKHASH = "BlockhashNotFound"


@dataclass(frozen=True)
class SignedTransaction:
    raw: bytes
    signature: str


@dataclass(frozen=True)
class SignatureStatus:
    signature: str
    err: Any


class SubmissionRpc(Protocol):
    async def get_latest_blockhash(self) -> str: ...

    async def send_and_confirm(self, raw_tx: bytes) -> str: ...

    async def get_signature_status(self, signature: str) -> SignatureStatus | None: ...


class Signer(Protocol):
    pubkey: str

    def sign(self, instruction: CallbackInstruction, blockhash: str) -> SignedTransaction: ...


@dataclass(frozen=True)
class RetryableFailure:
    """Retry the submission.

    ``refresh_blockhash`` re-signs against a new block reference. Otherwise the
    same signed bytes are reused, and ``check_status`` first asks the node
    whether an earlier broadcast already landed. ``delay_hint`` overrides the
    backoff delay before the next attempt.
    """

    cause: Exception
    refresh_blockhash: bool = False
    check_status: bool = False
    delay_hint: float | None = None


@dataclass(frozen=True)
class TerminalFailure:
    cause: Exception


class _RetrySubmission(Exception):
    def __init__(self, failure: RetryableFailure):
        self.failure = failure
        super().__init__(str(failure.cause))


@dataclass(frozen=True)
class BackoffPolicy:
    max_attempts: int = 10
    initial: float = 0.5
    multiplier: float = 1.5
    max_delay: float = 60.0

    def delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(self.max_delay, self.initial * self.multiplier ** max(0, attempt - 1))

    def wait(self):
        backoff = wait_exponential(multiplier=self.initial, exp_base=self.multiplier, max=self.max_delay)

        def _wait(retry_state) -> float:
            failure = retry_state.outcome.exception() if retry_state.outcome else None
            if isinstance(failure, _RetrySubmission) and failure.failure.delay_hint is not None:
                return failure.failure.delay_hint
            return backoff(retry_state)

        return _wait

    def stop(self):
        return stop_after_attempt(max(1, self.max_attempts))


def rejection_kind(tx_err: Any) -> str:
    """Name of a ledger transaction error (dict key, enum member or plain string)."""
    if isinstance(tx_err, dict) and tx_err:
        return str(next(iter(tx_err)))
    for text in (str(tx_err), repr(tx_err)):
        tail = text.rsplit(".", 1)[-1]
        if tail.isidentifier():
            return tail
    return type(tx_err).__name__


def classify_submission_error(err: Exception) -> RetryableFailure | TerminalFailure:
    if isinstance(err, PreflightFailure):
        # deterministic rejection; retrying cannot help
        return TerminalFailure(err)
    if isinstance(err, TransactionRejected):
        if err.kind == STALE_BLOCKHASH:
            return RetryableFailure(err, refresh_blockhash=True)
        if err.kind in RETRYABLE_REJECTIONS:
            # these exact bytes were processed before
            return RetryableFailure(err, check_status=True)
        return TerminalFailure(err)
    if isinstance(err, ConfirmationTimeout):
        # confirmation already waited out its window
        return RetryableFailure(err, check_status=True, delay_hint=0.0)
    if isinstance(err, RpcTransportError):
        # the transaction may already be in flight
        return RetryableFailure(err, check_status=True)
    return TerminalFailure(err)


@dataclass
class SubmissionDriver:
    rpc: SubmissionRpc
    signer: Signer
    policy: BackoffPolicy = BackoffPolicy()
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    async def submit(self, instruction: CallbackInstruction) -> str:
        """Sign and send ``instruction``; return the confirmed signature.

        A transaction that might have been broadcast is never replaced by a
        differently signed one unless its block reference has expired.
        """
        blockhash = await self.rpc.get_latest_blockhash()
        signed: SignedTransaction | None = None
        pending: str | None = None
        retrying = AsyncRetrying(
            stop=self.policy.stop(),
            wait=self.policy.wait(),
            retry=retry_if_exception_type(_RetrySubmission),
            sleep=self.sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if signed is None:
                        signed = self.signer.sign(instruction, blockhash)
                    try:
                        if pending is not None and await self._landed(pending):
                            logger.info("Transaction {} already landed", pending)
                            return pending
                        logger.info("Sending request...")
                        return await self.rpc.send_and_confirm(signed.raw)
                    except Exception as e:  # noqa: BLE001
                        outcome = classify_submission_error(e)
                        if isinstance(outcome, TerminalFailure):
                            raise
                        logger.warning("Transient submission failure: {}", e)
                        if outcome.refresh_blockhash:
                            blockhash = await self._refresh_blockhash(blockhash)
                            signed, pending = None, None
                        elif outcome.check_status:
                            pending = signed.signature
                        raise _RetrySubmission(outcome) from e
        except RetryError as e:
            last = e.last_attempt.exception()
            cause = last.failure.cause if isinstance(last, _RetrySubmission) else last
            raise SubmissionFailed(
                f"Send transaction failed after {self.policy.max_attempts} attempts: {cause}"
            ) from cause
        raise SubmissionFailed("Send transaction failed!")

    async def _landed(self, signature: str) -> bool:
        status = await self.rpc.get_signature_status(signature)
        if status is None:
            return False
        if status.err is not None:
            raise TransactionRejected(rejection_kind(status.err), f"Transaction {signature} failed: {status.err}")
        return True

    async def _refresh_blockhash(self, current: str) -> str:
        try:
            return await self.rpc.get_latest_blockhash()
        except Exception as e:  # noqa: BLE001
            logger.warning("Blockhash refresh failed, keeping {}: {}", current, e)
            return current
