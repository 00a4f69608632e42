"""
The DAG resolver interprets the payload of a verified block. Every block is classified once by the
codec of its identifier into a `carverify.dag.DagNode`, and the functions of this module resolve
path segments and child links against such nodes. None of the functions have side effects.
"""
from __future__ import annotations

import base64
import binascii
import enum
import json

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NamedTuple

from carverify.errors import MalformedNode, PathNotFound, UnsupportedCodec
from carverify.lib import cbor
from carverify.lib.cid import CID, parse_cid
from carverify.lib.murmur import murmur3_x64_64
from carverify.lib.pbuf import DataType, PBNode, UnixFSData

if TYPE_CHECKING:
    from carverify.lib.types import JSON, buf

HAMT_HASH_TYPE = 0x22
"""
The multihash code of murmur3-x64-64, the only hash function for HAMT sharded directories.
"""


class NodeKind(str, enum.Enum):
    LEAF = 'leaf'
    DIRECTORY = 'directory'
    CHUNKS = 'chunks'
    SHARD = 'shard'
    DOCUMENT = 'document'


class Link(NamedTuple):
    cid: CID
    name: str = ''
    size: int | None = None


@dataclass
class DagNode:
    """
    A classified block. The meaning of the fields depends on the `kind`:

    - `LEAF`: `data` is the content.
    - `DIRECTORY`: `links` are the named directory entries.
    - `CHUNKS`: `data` is the inline content that precedes the content of the ordered `links`.
    - `SHARD`: `links` are the buckets of a HAMT sharded directory with the given `fanout`.
    - `DOCUMENT`: `value` is the decoded document, `data` is the encoded block.
    """
    kind: NodeKind
    cid: CID
    data: bytes = B''
    links: list[Link] = field(default_factory=list)
    fanout: int = 0
    value: JSON = None

    @property
    def is_leaf(self) -> bool:
        return self.kind is NodeKind.LEAF


class ShardStep(NamedTuple):
    """
    The result of resolving a segment in one level of a sharded directory: either the entry for
    the segment, or a sub-shard in which the same segment has to be resolved at the next depth.
    """
    cid: CID
    descend: bool


class DocumentStep(NamedTuple):
    """
    The result of walking a path inside a document. Either the walk stopped at a `link` with the
    `remaining` segments still to be resolved from the linked block, or it ended on a value whose
    `content` is emitted.
    """
    link: CID | None = None
    remaining: tuple[str, ...] = ()
    content: bytes | None = None


def _classify_unixfs(cid: CID, data: buf) -> DagNode:
    try:
        node = PBNode.Parse(memoryview(data))
    except (EOFError, OverflowError, ValueError) as E:
        raise MalformedNode(F'invalid dag-pb block {cid}: {E!s}') from E
    if node.Data is None:
        raise MalformedNode(F'dag-pb block {cid} has no UnixFS data')
    try:
        unixfs = UnixFSData.Parse(memoryview(node.Data))
    except (EOFError, OverflowError, ValueError) as E:
        raise MalformedNode(F'invalid UnixFS data in {cid}: {E!s}') from E

    links = [Link(link.Hash, link.Name or '', link.Tsize) for link in node.Links]
    kind = unixfs.Type

    if kind in (DataType.File, DataType.Raw):
        if not links:
            return DagNode(NodeKind.LEAF, cid, unixfs.Data)
        if len(unixfs.blocksizes) != len(links):
            raise MalformedNode(
                F'file {cid} has {len(links)} links but {len(unixfs.blocksizes)} block sizes')
        return DagNode(NodeKind.CHUNKS, cid, unixfs.Data, links)
    if kind == DataType.Directory:
        return DagNode(NodeKind.DIRECTORY, cid, links=links)
    if kind == DataType.HAMTShard:
        fanout = unixfs.fanout or 0
        if unixfs.hashType != HAMT_HASH_TYPE:
            raise MalformedNode(F'shard {cid} uses unsupported hash type {unixfs.hashType}')
        if fanout < 2 or fanout & (fanout - 1):
            raise MalformedNode(F'shard {cid} has invalid fanout {fanout}')
        return DagNode(NodeKind.SHARD, cid, links=links, fanout=fanout)
    if kind == DataType.Symlink:
        return DagNode(NodeKind.LEAF, cid, unixfs.Data)
    raise MalformedNode(F'UnixFS type {kind.name} of {cid} is not supported')


def _dag_json_hook(obj: dict):
    if len(obj) != 1 or '/' not in obj:
        return obj
    ref = obj['/']
    if isinstance(ref, str):
        return parse_cid(ref)
    if isinstance(ref, dict) and len(ref) == 1 and isinstance(encoded := ref.get('bytes'), str):
        return base64.b64decode(encoded + '=' * (-len(encoded) % 4), validate=True)
    return obj


def _classify_document(cid: CID, data: buf) -> DagNode:
    try:
        if cid.codec.name == 'dag-cbor':
            value = cbor.loads(data)
        elif cid.codec.name == 'dag-json':
            value = json.loads(bytes(data), object_hook=_dag_json_hook)
        else:
            value = json.loads(bytes(data))
    except (EOFError, OverflowError, ValueError, binascii.Error) as E:
        raise MalformedNode(F'invalid {cid.codec.name} block {cid}: {E!s}') from E
    return DagNode(NodeKind.DOCUMENT, cid, bytes(data), value=value)


def classify(cid: CID, data: buf) -> DagNode:
    """
    Classify a block by the codec of its identifier. Raw blocks are leaves, DAG-PB blocks are
    interpreted as UnixFS nodes, and DAG-CBOR, DAG-JSON and JSON blocks are documents. Raises
    `carverify.errors.UnsupportedCodec` for all other codecs and `carverify.errors.MalformedNode`
    for payloads that cannot be decoded.
    """
    codec = cid.codec.name
    if codec == 'raw':
        return DagNode(NodeKind.LEAF, cid, bytes(data))
    if codec == 'dag-pb':
        return _classify_unixfs(cid, data)
    if codec in ('dag-cbor', 'dag-json', 'json'):
        return _classify_document(cid, data)
    raise UnsupportedCodec(codec)


def resolve_segment(node: DagNode, segment: str) -> CID:
    """
    Look up a directory entry by exact name. If the name occurs more than once, the first entry
    wins.
    """
    if node.kind is not NodeKind.DIRECTORY:
        raise PathNotFound(F'{segment}; {node.cid} is not a directory')
    for link in node.links:
        if link.name == segment:
            return link.cid
    raise PathNotFound(segment)


def chunk_links(node: DagNode) -> list[CID]:
    if node.kind is not NodeKind.CHUNKS:
        return []
    return [link.cid for link in node.links]


def next_chunk(node: DagNode, index: int) -> CID:
    """
    The identifier of the chunk at the given position; raises `IndexError` past the last chunk.
    """
    if node.kind is not NodeKind.CHUNKS:
        raise IndexError(F'{node.cid} has no chunks')
    return node.links[index].cid


def shard_prefix(fanout: int, segment: str, depth: int) -> str:
    """
    Compute the bucket name prefix under which `segment` is stored at the given depth of a shard.
    The murmur3 hash of the name is consumed most significant bit first, `log2(fanout)` bits at a
    time, and the bucket index is written as upper case hex padded to the width of `fanout - 1`.
    """
    bits = fanout.bit_length() - 1
    start = depth * bits
    hashed = murmur3_x64_64(segment.encode('utf8'))
    total = len(hashed) * 8
    if start + bits > total:
        raise PathNotFound(F'{segment}; shard depth {depth} exceeds the hash length')
    index = int.from_bytes(hashed, 'big') >> (total - start - bits) & (fanout - 1)
    width = len(F'{fanout - 1:X}')
    return F'{index:0{width}X}'


def resolve_shard(node: DagNode, segment: str, depth: int = 0) -> ShardStep:
    if node.kind is not NodeKind.SHARD:
        raise PathNotFound(F'{segment}; {node.cid} is not a sharded directory')
    prefix = shard_prefix(node.fanout, segment, depth)
    for link in node.links:
        if link.name == prefix:
            return ShardStep(link.cid, True)
        if link.name == prefix + segment:
            return ShardStep(link.cid, False)
    raise PathNotFound(segment)


def resolve_document(node: DagNode, segments: tuple[str, ...]) -> DocumentStep:
    """
    Walk the segments through the map keys and list indices of a document. The walk stops at the
    first link, which has to be resolved in the block it refers to. A path that ends inside the
    document has to end on a byte string or a text string.
    """
    value = node.value
    for k, segment in enumerate(segments):
        if isinstance(value, CID):
            return DocumentStep(value, segments[k:])
        if isinstance(value, dict):
            if segment not in value:
                raise PathNotFound(segment)
            value = value[segment]
        elif isinstance(value, list):
            if not (segment.isascii() and segment.isdigit()) or int(segment) >= len(value):
                raise PathNotFound(segment)
            value = value[int(segment)]
        else:
            raise PathNotFound(F'{segment}; cannot descend into a {type(value).__name__} value')
    if isinstance(value, CID):
        return DocumentStep(value)
    if isinstance(value, bytes):
        return DocumentStep(content=value)
    if isinstance(value, str):
        return DocumentStep(content=value.encode('utf8'))
    raise PathNotFound(F'{"/".join(segments)} refers to a {type(value).__name__} value')
