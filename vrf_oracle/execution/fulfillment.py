from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from loguru import logger

from vrf_oracle.chains.layout import (
    DISCRIMINATOR_LEN,
    VRF_REQUEST_EVENT_DISCRIMINATOR,
    VrfAccountData,
    VrfRequestRandomness,
    decode_request_event,
    decode_vrf_account,
    validate_seed,
)
from vrf_oracle.chains.log_parser import AnchorEvent, ParseLogError, parse_logs
from vrf_oracle.context import VrfContext
from vrf_oracle.errors import DataIntegrityError, LogParseFailure, ProgramMismatch
from vrf_oracle.execution.callback import build_callback_instruction
from vrf_oracle.execution.submitter import BackoffPolicy, SubmissionDriver


class AccountFetcher(Protocol):
    async def get_account_data(self, address: str) -> bytes: ...


class RandomnessSource(Protocol):
    def randomness(self, seed: bytes) -> tuple[bytes, bytes]: ...


@dataclass(frozen=True)
class FulfillmentOutcome:
    transaction: str
    vrf: str
    seed: bytes
    proof: bytes
    result: bytes


def find_request_event(
    events: Sequence[AnchorEvent],
    errors: Sequence[ParseLogError],
    program_id: str,
) -> VrfRequestRandomness | None:
    if errors:
        raise LogParseFailure(list(errors))

    event = next(
        (e for e in events if e.data[:DISCRIMINATOR_LEN] == VRF_REQUEST_EVENT_DISCRIMINATOR),
        None,
    )
    if event is None:
        return None
    if event.program_id != program_id:
        raise ProgramMismatch(
            f"program_id not match: event from {event.program_id}, expected {program_id}"
        )
    return decode_request_event(event.data)


async def load_request_record(rpc: AccountFetcher, address: str) -> VrfAccountData:
    data = await rpc.get_account_data(address)
    return decode_vrf_account(data)


@dataclass
class FulfillmentPipeline:
    program_ids: tuple[str, ...]
    rpc: AccountFetcher
    engine: RandomnessSource
    submitter: SubmissionDriver

    @classmethod
    def create(cls, context: VrfContext, rpc, policy: BackoffPolicy | None = None) -> FulfillmentPipeline:
        submitter = SubmissionDriver(rpc=rpc, signer=context.signer, policy=policy or BackoffPolicy())
        return cls(
            program_ids=context.program_ids,
            rpc=rpc,
            engine=context.engine,
            submitter=submitter,
        )

    async def process(self, program_id: str, logs: Sequence[str]) -> FulfillmentOutcome | None:
        """Fulfill the randomness request found in one transaction's logs, if any."""
        events, errors = parse_logs(logs, self.program_ids)
        request = find_request_event(events, errors, program_id)
        if request is None:
            logger.debug("No randomness request in transaction")
            return None

        record = await load_request_record(self.rpc, request.vrf)
        if record.result.is_fulfilled():
            logger.info("VRF account {} already fulfilled, skipping", request.vrf)
            return None

        try:
            seed = validate_seed(record.seeds)
        except ValueError as e:
            raise DataIntegrityError(f"VRF account {request.vrf}: {e}") from e

        proof, random = self.engine.randomness(seed)
        logger.info("Random value: {}", random.hex())

        instruction = build_callback_instruction(record.callback, random)
        signature = await self.submitter.submit(instruction)
        return FulfillmentOutcome(
            transaction=signature,
            vrf=request.vrf,
            seed=seed,
            proof=proof,
            result=random,
        )
