"""
The digest verifier recomputes the multihash of a block and compares it to the digest that its
content identifier commits to. Functions are looked up by their multihash name, and the digest
must be the complete output of the function. Hash functions from `hashlib` are used where
available; keccak, BLAKE2 with arbitrary output length, and RIPEMD-160 are provided by
`Cryptodome.Hash`. Importing the latter happens on first use.
"""
from __future__ import annotations

import functools
import hashlib
import hmac
import re

from typing import TYPE_CHECKING, Callable

from carverify.errors import DigestMismatch, UnsupportedHash
from carverify.lib.dependencies import dependency
from carverify.lib.murmur import murmur3_x64_64

if TYPE_CHECKING:
    from multiformats import CID

    from carverify.lib.types import buf

Hasher = Callable[['buf'], bytes]


@dependency('blake3', ['all'])
def _blake3():
    import blake3
    return blake3


def _hashlib(name: str) -> Hasher:
    constructor = getattr(hashlib, name)

    def compute(data):
        return constructor(data).digest()
    return compute


def _cryptodome(kernel: str, **kwargs) -> Hasher:
    module = __import__(F'Cryptodome.Hash.{kernel}')
    for t in ('Hash', kernel, 'new'):
        module = getattr(module, t)

    def compute(data):
        return module(data=bytes(data), **kwargs).digest()
    return compute


def _identity(data):
    return bytes(data)


def _blake3_hash(data):
    return _blake3().blake3(bytes(data)).digest()


_FACTORIES: dict[str, Callable[[], Hasher]] = {
    'identity'      : lambda: _identity,
    'sha1'          : lambda: _hashlib('sha1'),
    'sha2-256'      : lambda: _hashlib('sha256'),
    'sha2-512'      : lambda: _hashlib('sha512'),
    'sha3-224'      : lambda: _hashlib('sha3_224'),
    'sha3-256'      : lambda: _hashlib('sha3_256'),
    'sha3-384'      : lambda: _hashlib('sha3_384'),
    'sha3-512'      : lambda: _hashlib('sha3_512'),
    'keccak-224'    : lambda: _cryptodome('keccak', digest_bits=224),
    'keccak-256'    : lambda: _cryptodome('keccak', digest_bits=256),
    'keccak-384'    : lambda: _cryptodome('keccak', digest_bits=384),
    'keccak-512'    : lambda: _cryptodome('keccak', digest_bits=512),
    'blake3'        : lambda: _blake3_hash,
    'murmur3-x64-64': lambda: murmur3_x64_64,
    'md5'           : lambda: _hashlib('md5'),
    'ripemd-160'    : lambda: _cryptodome('RIPEMD160'),
}

_BLAKE2 = re.compile(R'blake2([bs])-(\d+)')
_BLAKE2_MAX_BITS = {'b': 512, 's': 256}


@functools.lru_cache(maxsize=None)
def hasher(name: str) -> Hasher:
    """
    Return the function that computes the digest for the multihash function of the given name.
    Raises `carverify.errors.UnsupportedHash` for functions that have no implementation.
    """
    if match := _BLAKE2.fullmatch(name):
        variant, bits = match[1], int(match[2])
        if bits % 8 == 0 and 8 <= bits <= _BLAKE2_MAX_BITS[variant]:
            return _cryptodome(F'BLAKE2{variant}', digest_bits=bits)
    try:
        factory = _FACTORIES[name]
    except KeyError:
        raise UnsupportedHash(name) from None
    return factory()


def verify_digest(name: str, expected: buf, data: buf) -> bool:
    """
    Test whether the data hashes to the expected digest under the named function. The digest has
    to be the complete output of the function; a shorter or longer digest never matches.
    """
    computed = hasher(name)(data)
    if len(computed) != len(expected):
        return False
    return hmac.compare_digest(computed, bytes(expected))


def verify(cid: CID, data: buf) -> bool:
    """
    Test whether the given data hashes to the digest of the identifier.
    """
    return verify_digest(cid.hashfun.name, cid.raw_digest, data)


def assert_verified(cid: CID, data: buf) -> None:
    if not verify(cid, data):
        raise DigestMismatch(str(cid))
