#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
A decoder for the subset of CBOR (RFC 8949) that occurs in archive headers and DAG-CBOR blocks.
Semantic tag 42 is decoded into a `multiformats.CID`.
"""
from __future__ import annotations

from typing import Callable

from carverify.lib.cid import decode_cid
from carverify.lib.structures import StructReader
from carverify.lib.types import buf

CID_TAG = 42


class CBORReader(StructReader[memoryview]):
    """
    Every item starts with a byte that holds the major type in its upper three bits and the
    additional information in the lower five. The reader dispatches on the major type; nested
    containers are limited to `MAX_DEPTH` levels.
    """

    BREAK = object()
    MAX_DEPTH = 256
    INDEFINITE = 31

    def __init__(self, data: buf):
        super().__init__(memoryview(data), bigendian=True)
        self._depth = 0
        self._majors: tuple[Callable[[int], object], ...] = (
            self._unsigned,
            self._negative,
            self._bytes,
            self._text,
            self._array,
            self._map,
            self._tagged,
            self._simple,
        )

    def read_argument(self, additional: int) -> int:
        if additional < 24:
            return additional
        try:
            reader = (self.u8, self.u16, self.u32, self.u64)[additional - 24]
        except IndexError:
            raise ValueError(F'Invalid additional information value: {additional}') from None
        return reader()

    def read_item(self):
        if self._depth > self.MAX_DEPTH:
            raise ValueError('Maximum nesting depth exceeded.')
        self._depth += 1
        try:
            head = self.u8()
            return self._majors[head >> 5](head & 0x1F)
        finally:
            self._depth -= 1

    def _items_until_break(self):
        while (item := self.read_item()) is not self.BREAK:
            yield item

    def _chunks(self, kind: type) -> list:
        chunks = list(self._items_until_break())
        for chunk in chunks:
            if not isinstance(chunk, kind):
                raise ValueError(F'Indefinite-length {kind.__name__} contains a chunk of a different type.')
        return chunks

    def _unsigned(self, additional: int) -> int:
        return self.read_argument(additional)

    def _negative(self, additional: int) -> int:
        return ~self.read_argument(additional)

    def _bytes(self, additional: int) -> bytes:
        if additional == self.INDEFINITE:
            return B''.join(self._chunks(bytes))
        return bytes(self.read_exactly(self.read_argument(additional)))

    def _text(self, additional: int) -> str:
        if additional == self.INDEFINITE:
            return ''.join(self._chunks(str))
        return bytes(self.read_exactly(self.read_argument(additional))).decode('utf-8')

    def _array(self, additional: int) -> list:
        if additional == self.INDEFINITE:
            return list(self._items_until_break())
        return [self.read_item() for _ in range(self.read_argument(additional))]

    def _map(self, additional: int) -> dict:
        if additional == self.INDEFINITE:
            keys = self._items_until_break()
        else:
            keys = (self.read_item() for _ in range(self.read_argument(additional)))
        result = {}
        for key in keys:
            if isinstance(key, (list, dict)):
                raise ValueError('Map keys must not be containers.')
            result[key] = self.read_item()
        return result

    def _tagged(self, additional: int):
        tag = self.read_argument(additional)
        content = self.read_item()
        if tag == CID_TAG:
            if not isinstance(content, bytes) or content[:1] != B'\0':
                raise ValueError('Tag 42 must wrap a byte string with a leading zero byte.')
            return decode_cid(content[1:])
        if tag in (2, 3) and isinstance(content, bytes):
            value = int.from_bytes(content, 'big')
            return ~value if tag == 3 else value
        raise ValueError(F'Unsupported tag {tag}.')

    def _simple(self, additional: int):
        if additional == self.INDEFINITE:
            return self.BREAK
        if additional == 25:
            return self.f16()
        if additional == 26:
            return self.f32()
        if additional == 27:
            return self.f64()
        if additional == 24:
            additional = self.u8()
        elif additional > 24:
            raise ValueError(F'Invalid additional information for simple values: {additional}')
        try:
            return {20: False, 21: True, 22: None, 23: None}[additional]
        except KeyError:
            raise ValueError(F'Unsupported simple value {additional}.') from None


def loads(data: buf):
    """
    Decode a single CBOR item that must span the entire input.
    """
    reader = CBORReader(data)
    item = reader.read_item()
    if item is CBORReader.BREAK:
        raise ValueError('Unexpected break code.')
    if not reader.eof:
        raise ValueError(F'{reader.remaining_bytes} trailing bytes after CBOR item.')
    return item
