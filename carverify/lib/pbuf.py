"""
Protocol buffer decoding for the two schemas that make up UnixFS: the DAG-PB envelope (`PBNode`
and `PBLink`) and the UnixFS `Data` message that is stored in the data field of a `PBNode`.

    message PBLink {
      optional bytes Hash = 1;
      optional string Name = 2;
      optional uint64 Tsize = 3;
    }

    message PBNode {
      repeated PBLink Links = 2;
      optional bytes Data = 1;
    }

    message Data {
      enum DataType { Raw = 0; Directory = 1; File = 2; Metadata = 3; Symlink = 4; HAMTShard = 5; }
      required DataType Type = 1;
      optional bytes Data = 2;
      optional uint64 filesize = 3;
      repeated uint64 blocksizes = 4;
      optional uint64 hashType = 5;
      optional uint64 fanout = 6;
      optional uint32 mode = 7;
      optional UnixTime mtime = 8;
    }
"""
from __future__ import annotations

import enum

from typing import Iterator

from carverify.lib.cid import CID, decode_cid
from carverify.lib.structures import Struct, StructReader


class WireType(enum.IntEnum):
    VARINT = 0
    I64 = 1
    I32 = 5
    LEN = 2
    SGROUP = 3
    EGROUP = 4


class ProtoBufReader(StructReader[memoryview]):

    def varint(self):
        return self.read_7bit_encoded_int(70)

    def read_key_value_pair(self):
        nr, wt = divmod(self.varint(), 8)
        if nr not in range(1, 536_870_912):
            raise ValueError(F'Invalid field number {nr}.')
        try:
            wt = WireType(wt)
        except ValueError:
            raise ValueError(F'Invalid wire type {wt} for field {nr}.') from None
        return nr, wt

    def read_fields(self) -> Iterator[tuple[int, WireType, int | memoryview]]:
        """
        Generate all fields of the message as triples of field number, wire type, and value. The
        value is an integer for varints and fixed size fields, and a buffer for length-delimited
        fields. Groups are not supported.
        """
        while not self.eof:
            nr, wt = self.read_key_value_pair()
            if wt == WireType.VARINT:
                yield nr, wt, self.varint()
            elif wt == WireType.I64:
                yield nr, wt, self.u64()
            elif wt == WireType.I32:
                yield nr, wt, self.u32()
            elif wt == WireType.LEN:
                size = self.varint()
                yield nr, wt, self.read_exactly(size)
            else:
                raise ValueError(F'Unsupported wire type {wt.name} for field {nr}.')


def _expect(nr: int, wt: WireType, expected: WireType):
    if wt != expected:
        raise ValueError(F'Field {nr} has wire type {wt.name}, expected {expected.name}.')


class PBLink(Struct):
    def __init__(self, reader: ProtoBufReader):
        self.Hash: CID | None = None
        self.Name: str | None = None
        self.Tsize: int | None = None
        for nr, wt, value in reader.read_fields():
            if nr == 1:
                _expect(nr, wt, WireType.LEN)
                if self.Hash is not None:
                    raise ValueError('Duplicate Hash field in PBLink.')
                self.Hash = decode_cid(value)
            elif nr == 2:
                _expect(nr, wt, WireType.LEN)
                if self.Name is not None:
                    raise ValueError('Duplicate Name field in PBLink.')
                self.Name = bytes(value).decode('utf-8')
            elif nr == 3:
                _expect(nr, wt, WireType.VARINT)
                self.Tsize = value
            else:
                raise ValueError(F'Unknown field {nr} in PBLink.')
        if self.Hash is None:
            raise ValueError('PBLink without Hash field.')


class PBNode(Struct):
    def __init__(self, reader: ProtoBufReader):
        self.Links: list[PBLink] = []
        self.Data: bytes | None = None
        for nr, wt, value in reader.read_fields():
            if nr == 2:
                _expect(nr, wt, WireType.LEN)
                self.Links.append(PBLink.Parse(value))
            elif nr == 1:
                _expect(nr, wt, WireType.LEN)
                if self.Data is not None:
                    raise ValueError('Duplicate Data field in PBNode.')
                self.Data = bytes(value)
            else:
                raise ValueError(F'Unknown field {nr} in PBNode.')


class DataType(enum.IntEnum):
    Raw = 0
    Directory = 1
    File = 2
    Metadata = 3
    Symlink = 4
    HAMTShard = 5


class UnixFSData(Struct):
    """
    The UnixFS `Data` message. Unknown fields as well as the `mode` and `mtime` metadata are
    skipped; they have no influence on content.
    """
    def __init__(self, reader: ProtoBufReader):
        self.Type: DataType | None = None
        self.Data: bytes = B''
        self.filesize: int | None = None
        self.blocksizes: list[int] = []
        self.hashType: int | None = None
        self.fanout: int | None = None
        for nr, wt, value in reader.read_fields():
            if nr == 1:
                _expect(nr, wt, WireType.VARINT)
                try:
                    self.Type = DataType(value)
                except ValueError:
                    raise ValueError(F'Unknown UnixFS data type {value}.') from None
            elif nr == 2:
                _expect(nr, wt, WireType.LEN)
                self.Data = bytes(value)
            elif nr == 3:
                _expect(nr, wt, WireType.VARINT)
                self.filesize = value
            elif nr == 4:
                if wt == WireType.LEN:
                    packed = ProtoBufReader(value)
                    while not packed.eof:
                        self.blocksizes.append(packed.varint())
                else:
                    _expect(nr, wt, WireType.VARINT)
                    self.blocksizes.append(value)
            elif nr == 5:
                _expect(nr, wt, WireType.VARINT)
                self.hashType = value
            elif nr == 6:
                _expect(nr, wt, WireType.VARINT)
                self.fanout = value
        if self.Type is None:
            raise ValueError('UnixFS data without Type field.')
