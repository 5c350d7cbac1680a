from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from vrf_oracle.chains.layout import (
    DISCRIMINATOR_LEN,
    RESULT_BYTE_LEN,
    VRF_RESULT_DISCRIMINATOR,
    AccountMetaPacked,
    CallbackTemplate,
)
from vrf_oracle.errors import PlaceholderNotFound

# Right after the callback instruction's own 8-byte discriminator
EXPECTED_PLACEHOLDER_OFFSET = DISCRIMINATOR_LEN


@dataclass(frozen=True)
class CallbackInstruction:
    program_id: str
    accounts: tuple[AccountMetaPacked, ...]
    data: bytes


def find_placeholder(ix_data: bytes, placeholder: bytes = VRF_RESULT_DISCRIMINATOR) -> int | None:
    offset = ix_data.find(placeholder)
    return None if offset == -1 else offset


def build_callback_instruction(template: CallbackTemplate, result: bytes) -> CallbackInstruction:
    if len(result) != RESULT_BYTE_LEN:
        raise ValueError(f"randomness result must be {RESULT_BYTE_LEN} bytes, got {len(result)}")

    offset = find_placeholder(template.ix_data)
    if offset is None:
        raise PlaceholderNotFound("cannot find VrfResult placeholder in callback ix_data")
    if offset != EXPECTED_PLACEHOLDER_OFFSET:
        logger.warning("VrfResult may not be the first parameter, offset={}", offset)

    data = bytearray(template.ix_data)
    data[offset:offset + RESULT_BYTE_LEN] = result
    return CallbackInstruction(
        program_id=template.program_id,
        accounts=tuple(
            AccountMetaPacked(m.pubkey, m.is_signer, m.is_writable) for m in template.accounts
        ),
        data=bytes(data),
    )
