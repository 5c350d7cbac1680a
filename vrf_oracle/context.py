from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from vrf_oracle.chains.layout import decode_pubkey
from vrf_oracle.config import AppSettings
from vrf_oracle.errors import ConfigurationError
from vrf_oracle.randomness.ecvrf import ECVRF


def parse_vrf_secret(value: str) -> bytes:
    value = value.strip()
    try:
        if value.startswith("["):
            return bytes(json.loads(value))
        return bytes.fromhex(value.removeprefix("0x"))
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid VRF private key: {e}") from e


@dataclass(frozen=True)
class VrfContext:
    """Process-wide configuration, fixed for the lifetime of the service."""

    program_ids: tuple[str, ...]
    commitment: str
    signer: Any
    engine: ECVRF

    @classmethod
    def from_settings(cls, settings: AppSettings, signer: Any = None) -> VrfContext:
        programs = settings.programs_to_track()
        for pid in programs:
            try:
                decode_pubkey(pid)
            except ValueError as e:
                raise ConfigurationError(f"invalid program id: {pid}") from e

        if not settings.vrf_private_key:
            raise ConfigurationError("VRF private key is not configured (VRF_VRF_PRIVATE_KEY)")
        try:
            engine = ECVRF(parse_vrf_secret(settings.vrf_private_key))
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        if signer is None:
            if not settings.signer_private_key:
                raise ConfigurationError("Signer key is not configured (VRF_SIGNER_PRIVATE_KEY)")
            from vrf_oracle.execution.solana_tx import SolanaSigner

            signer = SolanaSigner.from_secret(settings.signer_private_key)

        return cls(
            program_ids=tuple(programs),
            commitment=settings.commitment,
            signer=signer,
            engine=engine,
        )
