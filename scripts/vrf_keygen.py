from __future__ import annotations

import argparse
import json
import secrets
import sys

from vrf_oracle.randomness.ecvrf import CURVE_ORDER, ECVRF


def generate_secret() -> bytes:
    while True:
        candidate = secrets.token_bytes(32)
        if 0 < int.from_bytes(candidate, "big") < CURVE_ORDER:
            return candidate


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Generate a VRF secret key and print its public key")
    p.add_argument("--secret", help="Existing hex secret; prints its public key instead of generating one")
    p.add_argument("--json", action="store_true", help="Emit JSON")
    args = p.parse_args(argv)

    try:
        secret = bytes.fromhex(args.secret) if args.secret else generate_secret()
        engine = ECVRF(secret)
    except ValueError as e:
        print(f"Invalid secret: {e}", file=sys.stderr)
        return 1

    out = {"vrf_private_key": secret.hex(), "vrf_public_key": engine.public_key().hex()}
    if args.json:
        print(json.dumps(out))
    else:
        print(f"VRF_VRF_PRIVATE_KEY={out['vrf_private_key']}")
        print(f"# public key: {out['vrf_public_key']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
