"""Stateless TCP SYN cookies built on SipHash-1-3."""

from __future__ import annotations

import secrets
import struct
from dataclasses import dataclass

_MASK64 = (1 << 64) - 1
_MASK32 = (1 << 32) - 1

# Length prefix written before each 4-byte address, as a 64-bit length.
_ADDRESS_PREFIX = (4).to_bytes(8, "little")


@dataclass(frozen=True)
class SipHashKey:
    """A 128-bit SipHash key, held as two 64-bit halves."""

    k1: int
    k2: int

    def __post_init__(self) -> None:
        for half in (self.k1, self.k2):
            if not 0 <= half <= _MASK64:
                raise ValueError("SipHash key halves must be unsigned 64-bit integers")

    @classmethod
    def generate(cls) -> SipHashKey:
        """Return a fresh random key."""
        return cls(secrets.randbits(64), secrets.randbits(64))


def _rotl(value: int, bits: int) -> int:
    return ((value << bits) | (value >> (64 - bits))) & _MASK64


def _sip_round(v0: int, v1: int, v2: int, v3: int) -> tuple[int, int, int, int]:
    v0 = (v0 + v1) & _MASK64
    v1 = _rotl(v1, 13) ^ v0
    v0 = _rotl(v0, 32)
    v2 = (v2 + v3) & _MASK64
    v3 = _rotl(v3, 16) ^ v2
    v0 = (v0 + v3) & _MASK64
    v3 = _rotl(v3, 21) ^ v0
    v2 = (v2 + v1) & _MASK64
    v1 = _rotl(v1, 17) ^ v2
    v2 = _rotl(v2, 32)
    return v0, v1, v2, v3


def siphash13(k0: int, k1: int, data: bytes) -> int:
    """Return the 64-bit SipHash-1-3 of ``data`` under the key ``(k0, k1)``."""
    data = bytes(data)
    v0 = k0 ^ 0x736F6D6570736575
    v1 = k1 ^ 0x646F72616E646F6D
    v2 = k0 ^ 0x6C7967656E657261
    v3 = k1 ^ 0x7465646279746573

    whole = len(data) - len(data) % 8
    for (block,) in struct.iter_unpack("<Q", data[:whole]):
        v3 ^= block
        v0, v1, v2, v3 = _sip_round(v0, v1, v2, v3)
        v0 ^= block

    last = ((len(data) & 0xFF) << 56) | int.from_bytes(data[whole:], "little")
    v3 ^= last
    v0, v1, v2, v3 = _sip_round(v0, v1, v2, v3)
    v0 ^= last

    v2 ^= 0xFF
    for _ in range(3):
        v0, v1, v2, v3 = _sip_round(v0, v1, v2, v3)
    return v0 ^ v1 ^ v2 ^ v3


def tcp_cookie(
    ip_src: bytes,
    ip_dst: bytes,
    th_sport: int,
    th_dport: int,
    key: SipHashKey,
    uts: int,
) -> int:
    """Return the 32-bit cookie for a connection at time ``uts``.

    Addresses are 4-byte IPv4 addresses and ports are host integers; ports
    enter the hash in network byte order, as they appear on the wire.
    """
    ip_src, ip_dst = bytes(ip_src), bytes(ip_dst)
    if len(ip_src) != 4 or len(ip_dst) != 4:
        raise ValueError("IPv4 addresses must be 4 bytes long")
    try:
        message = b"".join(
            (
                _ADDRESS_PREFIX,
                ip_src,
                _ADDRESS_PREFIX,
                ip_dst,
                th_sport.to_bytes(2, "big"),
                th_dport.to_bytes(2, "big"),
                uts.to_bytes(8, "little"),
            )
        )
    except OverflowError as exc:
        raise ValueError("port or timestamp out of range") from exc
    return siphash13(key.k1, key.k2, message) & _MASK32