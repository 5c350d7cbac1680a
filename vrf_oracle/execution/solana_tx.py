from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import base58

from vrf_oracle.errors import ConfigurationError
from vrf_oracle.execution.callback import CallbackInstruction
from vrf_oracle.execution.submitter import SignedTransaction

KEYPAIR_LEN = 64


def parse_secret_key(value: str) -> bytes:
    """Accept a base58 string or a JSON byte array (solana-keygen file format)."""
    value = value.strip()
    if value.startswith("["):
        try:
            raw = bytes(json.loads(value))
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid keypair byte array: {e}") from e
    else:
        try:
            raw = base58.b58decode(value)
        except ValueError as e:
            raise ConfigurationError(f"Invalid base58 keypair: {e}") from e
    if len(raw) != KEYPAIR_LEN:
        raise ConfigurationError(f"Keypair must be {KEYPAIR_LEN} bytes, got {len(raw)}")
    return raw


@dataclass(frozen=True)
class SolanaSigner:
    keypair: Any

    @classmethod
    def from_secret(cls, secret: str) -> SolanaSigner:
        from solders.keypair import Keypair  # type: ignore

        raw = parse_secret_key(secret)
        try:
            return cls(keypair=Keypair.from_bytes(raw))
        except ValueError as e:
            raise ConfigurationError(f"recover signer Keypair from bytes: {e}") from e

    @property
    def pubkey(self) -> str:
        return str(self.keypair.pubkey())

    def sign(self, instruction: CallbackInstruction, blockhash: str) -> SignedTransaction:
        from solders.hash import Hash  # type: ignore
        from solders.instruction import AccountMeta, Instruction  # type: ignore
        from solders.pubkey import Pubkey  # type: ignore
        from solders.transaction import Transaction  # type: ignore

        ix = Instruction(
            Pubkey.from_string(instruction.program_id),
            instruction.data,
            [
                AccountMeta(Pubkey.from_string(m.pubkey), m.is_signer, m.is_writable)
                for m in instruction.accounts
            ],
        )
        tx = Transaction.new_signed_with_payer(
            [ix], self.keypair.pubkey(), [self.keypair], Hash.from_string(blockhash)
        )
        return SignedTransaction(raw=bytes(tx), signature=str(tx.signatures[0]))
