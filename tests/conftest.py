from __future__ import annotations

import base64

import pytest


@pytest.fixture
def pubkey():
    from vrf_oracle.chains.layout import encode_pubkey

    def _make(n: int) -> str:
        return encode_pubkey(bytes([n]) * 32)

    return _make


@pytest.fixture
def make_record(pubkey):
    from vrf_oracle.chains.layout import (
        VRF_RESULT_DISCRIMINATOR,
        AccountMetaPacked,
        CallbackTemplate,
        VrfAccountData,
        VrfResult,
        encode_vrf_account,
    )

    def _make(
        program_id: str,
        seeds: bytes = b"\x11" * 32,
        ix_data: bytes | None = None,
        result: bytes = VRF_RESULT_DISCRIMINATOR,
    ) -> bytes:
        if ix_data is None:
            ix_data = b"\xaa" * 8 + VRF_RESULT_DISCRIMINATOR + b"\x01\x02\x03\x04"
        record = VrfAccountData(
            result=VrfResult(result),
            proof=bytes(80),
            seeds=seeds,
            request_timestamp=1_700_000_000,
            callback=CallbackTemplate(
                program_id=program_id,
                accounts=(
                    AccountMetaPacked(pubkey(7), False, True),
                    AccountMetaPacked(pubkey(8), False, False),
                ),
                ix_data=ix_data,
            ),
        )
        return encode_vrf_account(record)

    return _make


@pytest.fixture
def request_logs():
    from vrf_oracle.chains.layout import encode_request_event

    def _make(program_id: str, vrf: str) -> list[str]:
        payload = base64.b64encode(encode_request_event(vrf)).decode()
        return [
            f"Program {program_id} invoke [1]",
            "Program log: Instruction: RequestRandomness",
            f"Program data: {payload}",
            f"Program {program_id} consumed 12000 of 200000 compute units",
            f"Program {program_id} success",
        ]

    return _make
