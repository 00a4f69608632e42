"""
A streaming decoder for content addressable archives (CAR). Version 1 archives consist of a header
and a sequence of frames:

    <varint header length> <DAG-CBOR header {version: 1, roots: [CID, ...]}>
    <varint frame length> <binary CID> <block data>
    ...

Version 2 archives start with a fixed pragma, followed by a 40 byte header that locates an inner
version 1 archive; the index that may follow the inner archive is never read.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, NamedTuple

from multiformats import varint

from carverify.errors import MalformedArchive
from carverify.lib import cbor
from carverify.lib.cid import CID, split_cid
from carverify.lib.environment import Loggable, environment
from carverify.lib.structures import StreamReader, Struct, StructReader

if TYPE_CHECKING:
    from carverify.lib.types import ByteSource

CARV2_PRAGMA = bytes.fromhex('0AA16776657273696F6E02')

_VARINT_MAX_SIZE = 9


class Block(NamedTuple):
    """
    A single frame of the archive: the claimed identifier and the block data. The identifier has
    not been checked against the data.
    """
    cid: CID
    data: bytes


class CarV2Header(Struct):
    """
    The fixed size header of a version 2 archive that follows the pragma. All integers are
    unsigned 64-bit little endian values.
    """
    SIZE = 40

    def __init__(self, reader: StructReader[memoryview]):
        self.characteristics = reader.read_bytes(16)
        self.data_offset = reader.u64()
        self.data_size = reader.u64()
        self.index_offset = reader.u64()

    @property
    def fully_indexed(self) -> bool:
        return bool(self.characteristics[0] & 0x80)


@dataclass
class CarHeader:
    version: int
    roots: list[CID]
    v2: CarV2Header | None = field(default=None, repr=False)

    @classmethod
    def decode(cls, data: bytes) -> CarHeader:
        try:
            header = cbor.loads(data)
        except (EOFError, OverflowError, ValueError) as E:
            raise MalformedArchive(F'invalid header encoding: {E!s}') from E
        if not isinstance(header, dict):
            raise MalformedArchive('the header is not a map')
        version = header.get('version')
        if version not in (1, 2) or isinstance(version, bool):
            raise MalformedArchive(F'unsupported archive version {version!r}')
        if version == 2:
            return cls(2, [])
        roots = header.get('roots')
        if not isinstance(roots, list) or not roots:
            raise MalformedArchive('the header does not list any roots')
        if not all(isinstance(root, CID) for root in roots):
            raise MalformedArchive('the header roots must be content identifiers')
        return cls(1, roots)


class CarReader(Loggable):
    """
    Reads an archive incrementally from a binary stream, a buffer, or an iterable of byte chunks.
    The header is decoded on first access of `header`; iterating the reader yields one
    `carverify.car.Block` for each frame. At most one frame is held in memory at any time, and
    frames larger than `max_frame_size` are rejected when it is nonzero. If no maximum frame size
    is given, the value of `CARVERIFY_MAX_FRAME_SIZE` is used.
    """
    def __init__(self, stream: ByteSource, max_frame_size: int | None = None):
        if max_frame_size is None:
            max_frame_size = environment.max_frame_size.value or 0
        self.max_frame_size = max_frame_size
        self._reader = StreamReader(stream)
        self._header: CarHeader | None = None
        self._count = 0

    def _read_varint(self, what: str) -> int:
        encoded = bytearray()
        try:
            while True:
                encoded.append(self._reader.u8())
                if encoded[-1] < 0x80 or len(encoded) >= _VARINT_MAX_SIZE:
                    break
        except EOFError as E:
            raise MalformedArchive(F'truncated {what} length') from E
        try:
            return varint.decode(bytes(encoded))
        except ValueError as E:
            raise MalformedArchive(F'invalid {what} length: {E!s}') from E

    def _read_frame(self, size: int, what: str) -> bytes:
        if size == 0:
            raise MalformedArchive(F'{what} has length zero')
        if 0 < self.max_frame_size < size:
            raise MalformedArchive(F'{what} of length {size} exceeds the limit of {self.max_frame_size}')
        try:
            return self._reader.read_bytes(size)
        except EOFError as E:
            raise MalformedArchive(F'truncated {what}; expected {size} bytes') from E

    def _read_v2(self) -> CarHeader:
        try:
            v2 = CarV2Header.Parse(memoryview(self._reader.read_bytes(CarV2Header.SIZE)))
        except EOFError as E:
            raise MalformedArchive('truncated version 2 header') from E
        self.log_debug(lambda: (
            F'version 2 archive with data at offset 0x{v2.data_offset:X} '
            F'of size 0x{v2.data_size:X}'))
        skip = v2.data_offset - self._reader.tell()
        if skip < 0:
            raise MalformedArchive(F'invalid data offset {v2.data_offset}')
        try:
            self._reader.skip(skip)
        except EOFError as E:
            raise MalformedArchive('data offset exceeds the archive') from E
        self._reader = self._reader.limit(v2.data_size)
        header = self._read_v1()
        if header.version != 1:
            raise MalformedArchive('the inner archive of a version 2 archive must have version 1')
        header.v2 = v2
        return header

    def _read_v1(self) -> CarHeader:
        size = self._read_varint('header')
        return CarHeader.decode(self._read_frame(size, 'header'))

    @property
    def header(self) -> CarHeader:
        if (header := self._header) is None:
            try:
                pragma = self._reader.read_bytes(len(CARV2_PRAGMA), peek=True)
            except EOFError:
                pragma = None
            if pragma == CARV2_PRAGMA:
                self._reader.skip(len(CARV2_PRAGMA))
                header = self._read_v2()
            else:
                header = self._read_v1()
                if header.version != 1:
                    raise MalformedArchive('version 2 header without the version 2 pragma')
            self.log_debug(lambda: F'archive roots: {", ".join(str(r) for r in header.roots)}')
            self._header = header
        return header

    def __iter__(self) -> Iterator[Block]:
        self.header
        while True:
            if self._reader.eof:
                self.log_debug(F'end of archive after {self._count} blocks')
                return
            size = self._read_varint('frame')
            frame = self._read_frame(size, 'frame')
            try:
                cid, data = split_cid(memoryview(frame))
            except ValueError as E:
                raise MalformedArchive(F'invalid identifier in frame {self._count}: {E!s}') from E
            self._count += 1
            yield Block(cid, bytes(data))


def iter_blocks(stream: ByteSource, max_frame_size: int | None = None) -> Iterator[Block]:
    """
    Generate all blocks of the archive in the given stream after reading its header.
    """
    yield from CarReader(stream, max_frame_size)
