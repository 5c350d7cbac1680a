from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, Sequence

from loguru import logger

from vrf_oracle.analytics.outcomes import OutcomeRecorder
from vrf_oracle.chains.solana_rpc import LogNotification, SignatureInfo, SolanaRpc
from vrf_oracle.config import AppSettings
from vrf_oracle.context import VrfContext
from vrf_oracle.errors import SubscriptionSetupError
from vrf_oracle.execution.fulfillment import FulfillmentOutcome, FulfillmentPipeline
from vrf_oracle.execution.submitter import BackoffPolicy


class SubscriptionState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"


class WatcherRpc(Protocol):
    def logs_subscribe(self, program_id: str) -> AsyncIterator[LogNotification]: ...

    async def get_signatures_for_address(
        self, address: str, before: str | None = None, limit: int | None = None, commitment: str | None = None
    ) -> list[SignatureInfo]: ...

    async def get_transaction_logs(self, signature: str, commitment: str | None = None) -> list[str] | None: ...


class Pipeline(Protocol):
    async def process(self, program_id: str, logs: Sequence[str]) -> FulfillmentOutcome | None: ...


@dataclass
class SolanaWatcher:
    program_ids: tuple[str, ...]
    rpc: WatcherRpc
    pipeline: Pipeline
    recorder: OutcomeRecorder = field(default_factory=OutcomeRecorder)
    reconnect_policy: BackoffPolicy = BackoffPolicy(max_attempts=0)
    backfill_enabled: bool = True
    backfill_pages: int = 1
    backfill_limit: int | None = None
    backfill_commitment: str = "finalized"
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    states: dict[str, SubscriptionState] = field(default_factory=dict, init=False)
    _inflight: set[asyncio.Task] = field(default_factory=set, init=False, repr=False)

    @classmethod
    def create(
        cls, settings: AppSettings, context: VrfContext, rpc: Any = None, SessionFactory=None
    ) -> SolanaWatcher:
        rpc = rpc or SolanaRpc.create(settings.rpc_url, settings.websocket_url(), settings.commitment)
        submit_policy = BackoffPolicy(
            max_attempts=settings.submit_max_attempts,
            initial=settings.submit_backoff_initial_sec,
            multiplier=settings.submit_backoff_multiplier,
            max_delay=settings.submit_backoff_max_sec,
        )
        reconnect_policy = BackoffPolicy(
            max_attempts=0,
            initial=settings.subscribe_backoff_initial_sec,
            max_delay=settings.subscribe_backoff_max_sec,
        )
        return cls(
            program_ids=context.program_ids,
            rpc=rpc,
            pipeline=FulfillmentPipeline.create(context, rpc, submit_policy),
            recorder=OutcomeRecorder(SessionFactory if settings.record_outcomes else None),
            reconnect_policy=reconnect_policy,
            backfill_enabled=settings.backfill_enabled,
            backfill_pages=settings.backfill_pages,
            backfill_limit=settings.backfill_limit,
            backfill_commitment=settings.backfill_commitment,
        )

    async def run(self):
        if not self.program_ids:
            logger.warning("No programs configured to track.")
            return
        tasks = [asyncio.create_task(self.run_subscribe(pid)) for pid in self.program_ids]
        if self.backfill_enabled:
            tasks.append(asyncio.create_task(self._run_backfill()))
        await asyncio.gather(*tasks)

    async def _run_backfill(self) -> None:
        try:
            processed = await self.backfill()
        except Exception as e:
            logger.opt(exception=e).error("Backfill aborted: {}", e)
            return
        logger.info("Backfill finished, processed {} old transactions", processed)

    def _set_state(self, program_id: str, state: SubscriptionState) -> None:
        self.states[program_id] = state
        logger.debug("Subscription {} -> {}", program_id, state.value)

    async def run_subscribe(self, program_id: str, max_cycles: int | None = None):
        """Keep one log stream open for ``program_id``; reconnect forever with backoff."""
        failures = 0
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            cycles += 1
            self._set_state(program_id, SubscriptionState.CONNECTING)
            received = 0
            try:
                async for note in self.rpc.logs_subscribe(program_id):
                    if received == 0:
                        self._set_state(program_id, SubscriptionState.STREAMING)
                    received += 1
                    self.dispatch(program_id, note)
                logger.warning("Logs subscribe stream ({}) stopped, retrying...", program_id)
            except SubscriptionSetupError as e:
                logger.error("Logs subscribe ({}) could not be established: {}", program_id, e)
            except Exception as e:
                logger.warning("Logs subscribe stream ({}) failed, retrying...: {}", program_id, e)

            self._set_state(program_id, SubscriptionState.DISCONNECTED)
            failures = 1 if received else failures + 1
            await self.sleep(self.reconnect_policy.delay(failures))

    def dispatch(self, program_id: str, note: LogNotification) -> asyncio.Task | None:
        if note.err is not None:
            with logger.contextualize(program_id=program_id, transaction=note.signature):
                logger.debug("Skipping error transaction: {}", note.err)
            return None
        task = asyncio.create_task(self.fulfill(program_id, note.signature, note.logs, source="live"))
        self._inflight.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Fulfillment task crashed: {}", exc)

    async def drain(self) -> None:
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def fulfill(
        self, program_id: str, signature: str, logs: Sequence[str], source: str = "live"
    ) -> FulfillmentOutcome | None:
        with logger.contextualize(program_id=program_id, transaction=signature):
            logger.info("Start processing")
            try:
                outcome = await self.pipeline.process(program_id, logs)
            except Exception as e:
                logger.error("Error processing transaction:\n{}", e)
                self._report(program_id, signature, source, error=e)
                return None
            self._report(program_id, signature, source, outcome=outcome)
            logger.info("Finished!")
            return outcome

    def _report(self, program_id: str, signature: str, source: str, **kwargs) -> None:
        try:
            self.recorder.report(program_id, signature, source, **kwargs)
        except Exception as e:
            logger.exception("Recording outcome failed: {}", e)

    def _already_fulfilled(self, signature: str) -> bool:
        try:
            return self.recorder.already_fulfilled(signature)
        except Exception as e:
            logger.warning("Fulfillment lookup failed for {}, processing anyway: {}", signature, e)
            return False

    async def backfill(self) -> int:
        """Replay historical successful transactions of every tracked program once."""
        processed = 0
        for program_id in self.program_ids:
            before = None
            for _ in range(max(1, self.backfill_pages)):
                try:
                    sigs = await self.rpc.get_signatures_for_address(
                        program_id,
                        before=before,
                        limit=self.backfill_limit,
                        commitment=self.backfill_commitment,
                    )
                except Exception as e:
                    logger.warning("Backfill signature listing failed for {}: {}", program_id, e)
                    break
                if not sigs:
                    break
                before = sigs[-1].signature

                ok = [s for s in sigs if s.err is None]
                if ok:
                    logger.info(
                        "Process old transaction: processing {} in {} fetched transactions",
                        len(ok),
                        len(sigs),
                    )
                for s in ok:
                    if self._already_fulfilled(s.signature):
                        logger.debug("Old transaction {} already fulfilled", s.signature)
                        continue
                    try:
                        logs = await self.rpc.get_transaction_logs(
                            s.signature, commitment=self.backfill_commitment
                        )
                    except Exception as e:
                        logger.warning("Fetching old transaction {} failed: {}", s.signature, e)
                        continue
                    if logs is None:
                        continue
                    await self.fulfill(program_id, s.signature, logs, source="backfill")
                    processed += 1
        return processed
