from __future__ import annotations

import struct

import pytest


def test_account_size_matches_on_chain_allocation():
    from vrf_oracle.chains.layout import ACCOUNT_SIZE, CALLBACK_SIZE

    assert CALLBACK_SIZE == 32 + 32 * 34 + 4 + 1024 + 4
    assert ACCOUNT_SIZE == 3336


def test_event_discriminator_is_anchor_hash():
    import hashlib

    from vrf_oracle.chains.layout import VRF_REQUEST_EVENT_DISCRIMINATOR

    assert VRF_REQUEST_EVENT_DISCRIMINATOR == hashlib.sha256(b"event:VrfRequestRandomness").digest()[:8]


def test_decode_vrf_account_reads_callback_template(make_record, pubkey):
    from vrf_oracle.chains.layout import VRF_RESULT_DISCRIMINATOR, decode_vrf_account

    data = make_record(pubkey(3), seeds=b"\x42" * 32)
    record = decode_vrf_account(data)

    assert record.seeds == b"\x42" * 32
    assert record.request_timestamp == 1_700_000_000
    assert record.proof == bytes(80)
    assert record.result.result == VRF_RESULT_DISCRIMINATOR
    assert not record.result.is_fulfilled()
    cb = record.callback
    assert cb.program_id == pubkey(3)
    # truncated to accounts_len / ix_data_len
    assert [(m.pubkey, m.is_signer, m.is_writable) for m in cb.accounts] == [
        (pubkey(7), False, True),
        (pubkey(8), False, False),
    ]
    assert cb.ix_data == b"\xaa" * 8 + VRF_RESULT_DISCRIMINATOR + b"\x01\x02\x03\x04"


def test_decode_vrf_account_without_reserved_tail(make_record, pubkey):
    from vrf_oracle.chains.layout import RESERVED_LEN, decode_vrf_account

    data = make_record(pubkey(3))
    record = decode_vrf_account(data[:-RESERVED_LEN])
    assert record.callback.program_id == pubkey(3)


def test_decode_vrf_account_rejects_wrong_discriminator(make_record, pubkey):
    from vrf_oracle.chains.layout import decode_vrf_account
    from vrf_oracle.errors import DiscriminatorMismatch

    data = bytearray(make_record(pubkey(3)))
    data[0] ^= 0xFF
    with pytest.raises(DiscriminatorMismatch):
        decode_vrf_account(bytes(data))


def test_decode_vrf_account_rejects_short_or_inconsistent_data(make_record, pubkey):
    from vrf_oracle.chains.layout import decode_vrf_account
    from vrf_oracle.errors import DataIntegrityError

    data = make_record(pubkey(3))
    with pytest.raises(DataIntegrityError):
        decode_vrf_account(data[:200])

    # accounts_len sits after the head (8 + 184) and the 32 packed metas
    broken = bytearray(data)
    struct.pack_into("<I", broken, 8 + 184 + 32 * 34, 40)
    with pytest.raises(DataIntegrityError, match="accounts_len"):
        decode_vrf_account(bytes(broken))


def test_request_event_decoding(pubkey):
    from vrf_oracle.chains.layout import decode_request_event, encode_request_event
    from vrf_oracle.errors import DataIntegrityError

    payload = encode_request_event(pubkey(9))
    assert decode_request_event(payload).vrf == pubkey(9)
    with pytest.raises(DataIntegrityError):
        decode_request_event(payload[:20])


def test_vrf_result_fulfilled_states():
    from vrf_oracle.chains.layout import VRF_RESULT_DISCRIMINATOR, VrfResult
    from vrf_oracle.errors import NotFulfilledError

    assert not VrfResult(bytes(32)).is_fulfilled()
    assert not VrfResult(VRF_RESULT_DISCRIMINATOR).is_fulfilled()
    assert VrfResult(b"\x01" * 32).is_fulfilled()
    with pytest.raises(NotFulfilledError):
        VrfResult(bytes(32)).random(0, 10)


def test_vrf_result_random_range():
    from vrf_oracle.chains.layout import VrfResult

    seven = VrfResult(bytes(15) + b"\x07" + b"\xff" * 16)
    assert seven.random(0, 5) == 2
    assert seven.random(10, 15) == 12

    # the leading 16 bytes are read as a signed integer
    minus_one = VrfResult(b"\xff" * 32)
    assert minus_one.random(0, 10) == 9

    with pytest.raises(ValueError):
        seven.random(5, 5)


def test_validate_seed():
    from vrf_oracle.chains.layout import validate_seed

    assert validate_seed(b"\x01") == b"\x01" + bytes(31)
    for bad in (b"", bytes(32)):
        with pytest.raises(ValueError):
            validate_seed(bad)


def test_pubkey_helpers():
    from vrf_oracle.chains.layout import decode_pubkey, encode_pubkey

    assert encode_pubkey(bytes(32)) == "11111111111111111111111111111111"
    assert decode_pubkey("11111111111111111111111111111111") == bytes(32)
    with pytest.raises(ValueError):
        decode_pubkey("abc")
