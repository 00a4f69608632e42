"""
The 128 bit variant of the murmur3 hash for 64 bit platforms, following the reference given by
Fredrik Kihlander in [pymmh3](https://github.com/wc-duck/pymmh3). Its leading 64 bits are the
`murmur3-x64-64` multihash, which UnixFS uses to distribute directory entries over the buckets of
a HAMT shard.
"""
from __future__ import annotations

import struct

from carverify.lib.types import buf

_MASK = 0xFFFFFFFFFFFFFFFF
_C1 = 0x87C37B91114253D5
_C2 = 0x4CF5AD432745937F


def _rotl(x: int, r: int) -> int:
    return (x << r | x >> (64 - r)) & _MASK


def _fmix(k: int) -> int:
    k ^= k >> 33
    k = k * 0xFF51AFD7ED558CCD & _MASK
    k ^= k >> 33
    k = k * 0xC4CEB9FE1A85EC53 & _MASK
    k ^= k >> 33
    return k


def _scramble1(k1: int) -> int:
    return _rotl(k1 * _C1 & _MASK, 31) * _C2 & _MASK


def _scramble2(k2: int) -> int:
    return _rotl(k2 * _C2 & _MASK, 33) * _C1 & _MASK


def mmh128x64(key: buf, seed: int = 0) -> int:
    """
    Compute the 128 bit murmur3 hash of `key` as an integer; the first of the two 64 bit lanes
    makes up the upper half.
    """
    key = memoryview(key)
    length = len(key)
    body = length & ~15
    h1 = h2 = seed & _MASK

    for k1, k2 in struct.iter_unpack('<QQ', key[:body]):
        h1 ^= _scramble1(k1)
        h1 = (_rotl(h1, 27) + h2) & _MASK
        h1 = (h1 * 5 + 0x52DCE729) & _MASK
        h2 ^= _scramble2(k2)
        h2 = (_rotl(h2, 31) + h1) & _MASK
        h2 = (h2 * 5 + 0x38495AB5) & _MASK

    tail = bytes(key[body:])
    if len(tail) > 8:
        h2 ^= _scramble2(int.from_bytes(tail[8:], 'little'))
    if tail:
        h1 ^= _scramble1(int.from_bytes(tail[:8], 'little'))

    h1 ^= length
    h2 ^= length
    h1 = (h1 + h2) & _MASK
    h2 = (h1 + h2) & _MASK
    h1 = _fmix(h1)
    h2 = _fmix(h2)
    h1 = (h1 + h2) & _MASK
    h2 = (h1 + h2) & _MASK
    return h1 << 64 | h2


def mmh128digest(key: buf, seed: int = 0) -> bytes:
    return mmh128x64(key, seed).to_bytes(16, 'big')


def murmur3_x64_64(key: buf) -> bytes:
    """
    The first 8 bytes of the 128 bit murmur3 digest of `key`, as used by HAMT sharding.
    """
    return mmh128digest(key)[:8]
