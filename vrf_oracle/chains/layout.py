from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass

import base58

from vrf_oracle.errors import DataIntegrityError, DiscriminatorMismatch, NotFulfilledError

DISCRIMINATOR_LEN = 8
PUBKEY_LEN = 32
RESULT_BYTE_LEN = 32
PROOF_BYTE_LEN = 80
SEEDS_BYTE_LEN = 32
MAX_CALLBACK_ACCOUNTS = 32
MAX_IX_DATA_LEN = 1024
RESERVED_LEN = 1024

# Placeholder written by the requesting program where the result belongs
VRF_RESULT_DISCRIMINATOR = bytes(
    [
        169, 181, 96, 37, 231, 213, 250, 114, 103, 201, 179, 141, 92, 38, 30, 87,
        115, 210, 50, 29, 136, 193, 41, 211, 45, 205, 112, 191, 205, 195, 2, 105,
    ]
)

VRF_ACCOUNT_DISCRIMINATOR = bytes([101, 35, 62, 239, 103, 151, 6, 18])


def event_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"event:{name}".encode()).digest()[:DISCRIMINATOR_LEN]


VRF_REQUEST_EVENT_DISCRIMINATOR = event_discriminator("VrfRequestRandomness")

_ACCOUNT_META = struct.Struct(f"<{PUBKEY_LEN}s??")
_HEAD = struct.Struct(f"<{RESULT_BYTE_LEN}s{PROOF_BYTE_LEN}s{SEEDS_BYTE_LEN}sq{PUBKEY_LEN}s")
_U32 = struct.Struct("<I")

CALLBACK_SIZE = PUBKEY_LEN + MAX_CALLBACK_ACCOUNTS * _ACCOUNT_META.size + 4 + MAX_IX_DATA_LEN + 4
VRF_ACCOUNT_DATA_SIZE = (
    RESULT_BYTE_LEN + PROOF_BYTE_LEN + SEEDS_BYTE_LEN + 8 + CALLBACK_SIZE + RESERVED_LEN
)
# Space a requesting program allocates for one request record
ACCOUNT_SIZE = DISCRIMINATOR_LEN + VRF_ACCOUNT_DATA_SIZE


def encode_pubkey(raw: bytes) -> str:
    return base58.b58encode(raw).decode()


def decode_pubkey(value: str) -> bytes:
    raw = base58.b58decode(value)
    if len(raw) != PUBKEY_LEN:
        raise ValueError(f"Invalid public key length {len(raw)} for {value}")
    return raw


@dataclass(frozen=True)
class VrfResult:
    result: bytes

    def is_fulfilled(self) -> bool:
        return self.result not in (bytes(RESULT_BYTE_LEN), VRF_RESULT_DISCRIMINATOR)

    def random(self, low: int, high: int) -> int:
        """Map the result onto ``[low, high)``.

        The first 16 bytes are read as a signed big-endian 128-bit integer.
        """
        if not self.is_fulfilled():
            raise NotFulfilledError("random() called on an unfulfilled VRF result")
        bound = high - low
        if bound <= 0:
            raise ValueError("high must be greater than low")
        rand = int.from_bytes(self.result[:16], "big", signed=True)
        return (rand % bound) + low


@dataclass(frozen=True)
class AccountMetaPacked:
    pubkey: str
    is_signer: bool
    is_writable: bool


@dataclass(frozen=True)
class CallbackTemplate:
    program_id: str
    accounts: tuple[AccountMetaPacked, ...]
    ix_data: bytes


@dataclass(frozen=True)
class VrfAccountData:
    result: VrfResult
    proof: bytes
    seeds: bytes
    request_timestamp: int
    callback: CallbackTemplate


@dataclass(frozen=True)
class VrfRequestRandomness:
    vrf: str


def decode_request_event(payload: bytes) -> VrfRequestRandomness:
    body = payload[DISCRIMINATOR_LEN:]
    if len(body) < PUBKEY_LEN:
        raise DataIntegrityError(
            f"VrfRequestRandomness event too short: {len(payload)} bytes"
        )
    return VrfRequestRandomness(vrf=encode_pubkey(body[:PUBKEY_LEN]))


def decode_vrf_account(data: bytes) -> VrfAccountData:
    if data[:DISCRIMINATOR_LEN] != VRF_ACCOUNT_DISCRIMINATOR:
        raise DiscriminatorMismatch(
            f"invalid discriminator {data[:DISCRIMINATOR_LEN].hex()} for VRF account"
        )
    body = data[DISCRIMINATOR_LEN:]
    # The reserved tail is not needed to interpret the record
    needed = VRF_ACCOUNT_DATA_SIZE - RESERVED_LEN
    if len(body) < needed:
        raise DataIntegrityError(f"VRF account too short: {len(body)} < {needed} bytes")

    result, proof, seeds, ts, cb_program = _HEAD.unpack_from(body, 0)
    offset = _HEAD.size

    metas = []
    for i in range(MAX_CALLBACK_ACCOUNTS):
        pk, is_signer, is_writable = _ACCOUNT_META.unpack_from(body, offset + i * _ACCOUNT_META.size)
        metas.append(AccountMetaPacked(encode_pubkey(pk), is_signer, is_writable))
    offset += MAX_CALLBACK_ACCOUNTS * _ACCOUNT_META.size

    (accounts_len,) = _U32.unpack_from(body, offset)
    offset += _U32.size
    ix_data = body[offset:offset + MAX_IX_DATA_LEN]
    offset += MAX_IX_DATA_LEN
    (ix_data_len,) = _U32.unpack_from(body, offset)

    if accounts_len > MAX_CALLBACK_ACCOUNTS:
        raise DataIntegrityError(f"callback accounts_len out of range: {accounts_len}")
    if ix_data_len > MAX_IX_DATA_LEN:
        raise DataIntegrityError(f"callback ix_data_len out of range: {ix_data_len}")

    return VrfAccountData(
        result=VrfResult(result),
        proof=proof,
        seeds=seeds,
        request_timestamp=ts,
        callback=CallbackTemplate(
            program_id=encode_pubkey(cb_program),
            accounts=tuple(metas[:accounts_len]),
            ix_data=ix_data[:ix_data_len],
        ),
    )


def encode_vrf_account(record: VrfAccountData) -> bytes:
    """Serialize a record in the on-chain layout (used for fixtures and tooling)."""
    cb = record.callback
    out = bytearray(VRF_ACCOUNT_DISCRIMINATOR)
    out += _HEAD.pack(
        record.result.result,
        record.proof,
        record.seeds,
        record.request_timestamp,
        decode_pubkey(cb.program_id),
    )
    for i in range(MAX_CALLBACK_ACCOUNTS):
        if i < len(cb.accounts):
            m = cb.accounts[i]
            out += _ACCOUNT_META.pack(decode_pubkey(m.pubkey), m.is_signer, m.is_writable)
        else:
            out += bytes(_ACCOUNT_META.size)
    out += _U32.pack(len(cb.accounts))
    out += cb.ix_data.ljust(MAX_IX_DATA_LEN, b"\x00")
    out += _U32.pack(len(cb.ix_data))
    out += bytes(RESERVED_LEN)
    return bytes(out)


def encode_request_event(vrf: str) -> bytes:
    return VRF_REQUEST_EVENT_DISCRIMINATOR + decode_pubkey(vrf)


def validate_seed(seed: bytes) -> bytes:
    if not seed or not any(seed):
        raise ValueError("Vrf seeds is zeroed or empty")
    return seed[:SEEDS_BYTE_LEN].ljust(SEEDS_BYTE_LEN, b"\x00")
