"""
Content identifiers are `multiformats.CID` objects. This module provides the conversions that the
archive reader and the node decoders need on top of it: decoding the binary form with uniform
errors, splitting an identifier from the front of an archive frame, and parsing path requests.

Version 0 identifiers are a bare sha2-256 multihash in binary form; version 1 identifiers are a
sequence of varints followed by the digest:

    <version> <codec> <hash function> <digest length> <digest>

Every version 1 identifier produced by this module is rendered in base32.
"""
from __future__ import annotations

from typing import NamedTuple

from multiformats import CID, varint

from carverify.lib.types import buf

__all__ = [
    'CID',
    'PathRequest',
    'decode_cid',
    'parse_cid',
    'split_cid',
]

_V0_PREFIX = B'\x12\x20'
_V0_SIZE = 34


def _canonical(cid: CID) -> CID:
    if cid.version == 1 and cid.base.name != 'base32':
        cid = cid.set(base='base32')
    return cid


def decode_cid(data: buf) -> CID:
    """
    Decode an identifier from its complete binary form. Every kind of invalid input raises a
    `ValueError`.
    """
    try:
        return _canonical(CID.decode(bytes(data)))
    except (IndexError, KeyError, TypeError, ValueError) as E:
        raise ValueError(F'invalid content identifier: {E!s}') from E


def parse_cid(text: str) -> CID:
    """
    Parse an identifier from its text form: base58btc without a prefix for version 0, any
    multibase encoding for version 1.
    """
    try:
        return _canonical(CID.decode(text.strip()))
    except (IndexError, KeyError, TypeError, ValueError) as E:
        raise ValueError(F'invalid content identifier {text!r}: {E!s}') from E


def split_cid(data: memoryview) -> tuple[CID, memoryview]:
    """
    Decode the identifier at the start of an archive frame and return it together with the
    remaining data. The length of the identifier follows from its varint fields.
    """
    if data[:2] == _V0_PREFIX:
        size = _V0_SIZE
    else:
        size = 0
        rest = data
        try:
            for _ in range(3):
                _, n, rest = varint.decode_raw(rest)
                size += n
            length, n, rest = varint.decode_raw(rest)
        except IndexError as E:
            raise ValueError('truncated content identifier') from E
        size += n + length
    if size > len(data):
        raise ValueError(F'truncated content identifier; expected {size} bytes, got {len(data)}')
    return decode_cid(data[:size]), data[size:]


class PathRequest(NamedTuple):
    """
    A root identifier and the sequence of path segments to resolve below it.
    """
    root: CID
    segments: tuple[str, ...] = ()

    @classmethod
    def parse(cls, path: str) -> PathRequest:
        """
        Parse `<root>[/<segment>]*`. An `/ipfs/` prefix is accepted, empty segments are dropped.
        """
        path = path.strip()
        if path.startswith('/ipfs/'):
            path = path[6:]
        root, *segments = path.strip('/').split('/')
        if not root:
            raise ValueError('the path does not start with a content identifier')
        return cls(parse_cid(root), tuple(s for s in segments if s))

    def __str__(self):
        return '/'.join((str(self.root), *self.segments))
