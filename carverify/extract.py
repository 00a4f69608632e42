"""
The verified extractor consumes an archive block by block and releases the content that a path
request resolves to. Every block has to be the one identifier that is expected next, and it has to
pass digest verification before its payload is interpreted. Content is emitted as soon as the block
that contains it has been verified:

    from carverify import extract_verified_content

    with open('response.car', 'rb') as car:
        for chunk in extract_verified_content('bafy.../docs/readme.md', car):
            sys.stdout.buffer.write(chunk)

Once the requested content is complete, the rest of the archive is ignored. Any verification
failure stops the extraction and is raised from the iterator; the same error is raised again on
every later attempt to pull from it.
"""
from __future__ import annotations

import enum

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator

from carverify.car import Block, CarHeader, CarReader
from carverify.dag import (
    DagNode,
    NodeKind,
    chunk_links,
    classify,
    resolve_document,
    resolve_segment,
    resolve_shard,
)
from carverify.digest import assert_verified
from carverify.errors import (
    IncompleteArchive,
    MalformedNode,
    PathNotFound,
    UnexpectedBlock,
    VerificationError,
)
from carverify.lib.cid import CID, PathRequest
from carverify.lib.environment import Loggable

if TYPE_CHECKING:
    from carverify.lib.types import ByteSource


class ExtractionState(str, enum.Enum):
    AWAITING_ROOT = 'AwaitingRoot'
    RESOLVING_PATH = 'ResolvingPath'
    RESOLVING_CHUNKS = 'ResolvingChunks'
    DONE = 'Done'
    FAILED = 'Failed'


@dataclass
class ResolutionFrontier:
    """
    The mutable state of an extraction. The head of `pending` is the identifier that the next block
    must have; `segments` are the path segments that remain to be resolved, and `shard_depth` is
    the current level inside a sharded directory while its head segment is being resolved.
    """
    pending: deque[CID] = field(default_factory=deque)
    segments: deque[str] = field(default_factory=deque)
    shard_depth: int = 0

    @property
    def expected(self) -> CID | None:
        return self.pending[0] if self.pending else None


class VerifiedExtractor(Loggable):
    """
    An iterator over the verified content for a path request. The `cid_path` is either a string of
    the form `<root>[/<segment>]*` or a `carverify.lib.cid.PathRequest`. The `stream` is anything
    that `carverify.car.CarReader` accepts.
    """
    def __init__(
        self,
        cid_path: str | PathRequest,
        stream: ByteSource,
        max_frame_size: int | None = None,
    ):
        if not isinstance(cid_path, PathRequest):
            cid_path = PathRequest.parse(cid_path)
        self.request = cid_path
        self._reader = CarReader(stream, max_frame_size)
        self._blocks: Iterator[Block] | None = None
        self._output: deque[bytes] = deque()
        self._state = ExtractionState.AWAITING_ROOT
        self._error: VerificationError | None = None
        self._frontier = ResolutionFrontier(
            deque((cid_path.root,)),
            deque(cid_path.segments),
        )
        self.log_debug(lambda: F'extracting {cid_path!s}')

    @property
    def state(self) -> ExtractionState:
        return self._state

    @property
    def frontier(self) -> ResolutionFrontier:
        return self._frontier

    @property
    def error(self) -> VerificationError | None:
        return self._error

    @property
    def header(self) -> CarHeader:
        return self._reader.header

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        if (error := self._error) is not None:
            raise error
        while not self._output:
            if self._state is ExtractionState.DONE:
                raise StopIteration
            try:
                self._step()
            except VerificationError as error:
                self._fail(error)
                raise
        return self._output.popleft()

    def _transition(self, state: ExtractionState):
        if state is not self._state:
            self.log_debug(F'transition from {self._state.value} to {state.value}')
            self._state = state

    def _fail(self, error: VerificationError):
        self.log_info(F'extraction failed with {error.name}: {error!s}')
        self._error = error
        self._blocks = None
        self._output.clear()
        self._transition(ExtractionState.FAILED)

    def _emit(self, data: bytes):
        if data:
            self._output.append(data)

    def _next_block(self) -> Block | None:
        if self._blocks is None:
            self._blocks = iter(self._reader)
        return next(self._blocks, None)

    def _step(self):
        frontier = self._frontier
        expected = frontier.expected
        block = self._next_block()
        if block is None:
            raise IncompleteArchive
        if block.cid != expected:
            raise UnexpectedBlock(block.cid, expected)
        assert_verified(block.cid, block.data)
        frontier.pending.popleft()
        node = classify(block.cid, block.data)
        self.log_debug(lambda: F'verified {node.kind.value} block {node.cid} of size {len(block.data)}')
        if frontier.segments:
            self._resolve(node)
            next_state = ExtractionState.RESOLVING_PATH
        else:
            self._expand(node)
            next_state = ExtractionState.RESOLVING_CHUNKS
        self._transition(next_state if frontier.pending else ExtractionState.DONE)

    def _resolve(self, node: DagNode):
        frontier = self._frontier
        segments = frontier.segments
        if frontier.shard_depth and node.kind is not NodeKind.SHARD:
            raise MalformedNode(F'sub-shard link to {node.cid} does not refer to a shard')
        if node.kind is NodeKind.DIRECTORY:
            frontier.pending.append(resolve_segment(node, segments.popleft()))
        elif node.kind is NodeKind.SHARD:
            step = resolve_shard(node, segments[0], frontier.shard_depth)
            if step.descend:
                frontier.shard_depth += 1
            else:
                segments.popleft()
                frontier.shard_depth = 0
            frontier.pending.append(step.cid)
        elif node.kind is NodeKind.DOCUMENT:
            step = resolve_document(node, tuple(segments))
            segments.clear()
            if step.link is not None:
                segments.extend(step.remaining)
                frontier.pending.append(step.link)
            elif step.content is not None:
                self._emit(step.content)
        else:
            raise PathNotFound(F'{segments[0]}; cannot descend into {node.kind.value} {node.cid}')

    def _expand(self, node: DagNode):
        """
        Emit the content of a node and queue its children in front of all other pending
        identifiers, so that the export proceeds depth first in link order.
        """
        pending = self._frontier.pending
        if node.kind is NodeKind.LEAF or node.kind is NodeKind.DOCUMENT:
            self._emit(node.data)
        elif node.kind is NodeKind.CHUNKS:
            self._emit(node.data)
            pending.extendleft(reversed(chunk_links(node)))
        else:
            pending.extendleft(reversed([link.cid for link in node.links]))


def extract_verified_content(
    cid_path: str | PathRequest,
    stream: ByteSource,
    max_frame_size: int | None = None,
) -> VerifiedExtractor:
    """
    Create a `carverify.extract.VerifiedExtractor` for the given path request and archive stream.
    """
    return VerifiedExtractor(cid_path, stream, max_frame_size)


def extract_verified_buffer(
    cid_path: str | PathRequest,
    stream: ByteSource,
    max_frame_size: int | None = None,
) -> bytearray:
    """
    Extract the verified content for the path request into a single buffer.
    """
    output = bytearray()
    for chunk in VerifiedExtractor(cid_path, stream, max_frame_size):
        output.extend(chunk)
    return output


def validate_archive(stream: ByteSource, max_frame_size: int | None = None) -> CarHeader:
    """
    Verify the digest of every block in the archive without resolving any path. Returns the header
    of the archive and raises the first verification error that occurs.
    """
    reader = CarReader(stream, max_frame_size)
    count = 0
    for count, block in enumerate(reader, 1):
        assert_verified(block.cid, block.data)
    reader.log_info(F'verified {count} blocks')
    return reader.header
