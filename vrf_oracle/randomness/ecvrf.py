"""ECVRF over secp256k1 with SHA-256 and try-and-increment hash-to-curve.

Proof layout: Gamma (33 bytes, compressed) || c (16 bytes) || s (32 bytes).
The engine keeps only the immutable secret scalar, so one instance can be
shared by any number of concurrent fulfillments.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass, field

from coincurve import PrivateKey, PublicKey

from vrf_oracle.chains.layout import RESULT_BYTE_LEN

SUITE_STRING = 0xFE
CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
QLEN = 32
C_LEN = 16
PROOF_LEN = 33 + C_LEN + QLEN


def _int_to_bytes(value: int, length: int = QLEN) -> bytes:
    return value.to_bytes(length, "big")


def _bits2octets(data: bytes) -> bytes:
    return _int_to_bytes(int.from_bytes(data, "big") % CURVE_ORDER)


def _point_bytes(point: PublicKey) -> bytes:
    return point.format(compressed=True)


def _combine(a: PublicKey, b: PublicKey) -> PublicKey:
    return PublicKey.combine_keys([a, b])


def hash_to_curve(public_key: bytes, alpha: bytes) -> PublicKey:
    prefix = bytes([SUITE_STRING, 0x01]) + public_key + alpha
    for ctr in range(256):
        digest = hashlib.sha256(prefix + bytes([ctr])).digest()
        try:
            return PublicKey(b"\x02" + digest)
        except ValueError:
            continue
    raise ValueError("hash_to_curve: no valid point found")


def hash_points(*points: PublicKey) -> int:
    data = bytes([SUITE_STRING, 0x02]) + b"".join(_point_bytes(p) for p in points)
    return int.from_bytes(hashlib.sha256(data).digest()[:C_LEN], "big")


def generate_nonce(secret: int, h_string: bytes) -> int:
    """RFC 6979 deterministic nonce (HMAC-SHA256)."""
    h1 = _bits2octets(hashlib.sha256(h_string).digest())
    x = _int_to_bytes(secret)
    v = b"\x01" * 32
    k = b"\x00" * 32
    k = hmac.new(k, v + b"\x00" + x + h1, hashlib.sha256).digest()
    v = hmac.new(k, v, hashlib.sha256).digest()
    k = hmac.new(k, v + b"\x01" + x + h1, hashlib.sha256).digest()
    v = hmac.new(k, v, hashlib.sha256).digest()
    while True:
        v = hmac.new(k, v, hashlib.sha256).digest()
        candidate = int.from_bytes(v, "big")
        if 1 <= candidate < CURVE_ORDER:
            return candidate
        k = hmac.new(k, v + b"\x00", hashlib.sha256).digest()
        v = hmac.new(k, v, hashlib.sha256).digest()


def proof_to_hash(proof: bytes) -> bytes:
    if len(proof) != PROOF_LEN:
        raise ValueError(f"invalid proof length {len(proof)}")
    gamma = PublicKey(proof[:33])
    return hashlib.sha256(bytes([SUITE_STRING, 0x03]) + _point_bytes(gamma)).digest()


def verify(public_key: bytes, proof: bytes, alpha: bytes) -> bytes | None:
    """Return the VRF hash when ``proof`` is valid for ``alpha``, else None."""
    if len(proof) != PROOF_LEN:
        return None
    try:
        y = PublicKey(public_key)
        gamma = PublicKey(proof[:33])
    except ValueError:
        return None
    c = int.from_bytes(proof[33:33 + C_LEN], "big")
    s = int.from_bytes(proof[33 + C_LEN:], "big")
    if not 0 < s < CURVE_ORDER or c == 0:
        return None

    h = hash_to_curve(y.format(compressed=True), alpha)
    neg_c = _int_to_bytes(CURVE_ORDER - c)
    s_bytes = _int_to_bytes(s)
    try:
        u = _combine(PublicKey.from_secret(s_bytes), y.multiply(neg_c))
        v = _combine(h.multiply(s_bytes), gamma.multiply(neg_c))
    except ValueError:
        return None
    if hash_points(h, gamma, u, v) != c:
        return None
    return proof_to_hash(proof)


@dataclass(frozen=True)
class ECVRF:
    secret_key: bytes = field(repr=False)

    def __post_init__(self):
        scalar = int.from_bytes(self.secret_key, "big")
        if not 0 < scalar < CURVE_ORDER:
            raise ValueError("VRF secret key out of range")

    @property
    def _scalar(self) -> int:
        return int.from_bytes(self.secret_key, "big")

    def _private_key(self) -> PrivateKey:
        return PrivateKey(_int_to_bytes(self._scalar))

    def public_key(self) -> bytes:
        return self._private_key().public_key.format(compressed=True)

    def prove(self, alpha: bytes) -> bytes:
        x = self._scalar
        x_bytes = _int_to_bytes(x)
        h = hash_to_curve(self.public_key(), alpha)
        gamma = h.multiply(x_bytes)
        k = generate_nonce(x, _point_bytes(h))
        k_bytes = _int_to_bytes(k)
        c = hash_points(h, gamma, PublicKey.from_secret(k_bytes), h.multiply(k_bytes))
        s = (k + c * x) % CURVE_ORDER
        return _point_bytes(gamma) + _int_to_bytes(c, C_LEN) + _int_to_bytes(s)

    def prove_and_hash(self, seed: bytes) -> tuple[bytes, bytes]:
        proof = self.prove(seed)
        return proof, proof_to_hash(proof)

    def randomness(self, seed: bytes) -> tuple[bytes, bytes]:
        """Proof plus the fixed-length randomness result for ``seed``."""
        proof, digest = self.prove_and_hash(seed)
        return proof, digest[:RESULT_BYTE_LEN]


def prove_and_hash(secret_key: bytes, seed: bytes) -> tuple[bytes, bytes]:
    return ECVRF(secret_key).prove_and_hash(seed)
