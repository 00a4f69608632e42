"""
All conditions under which a verified extraction is aborted. Every error is a
`carverify.errors.VerificationError`; the subclasses distinguish the reason, which is also available
as the `kind` attribute.
"""
from __future__ import annotations

import enum


class FailureKind(str, enum.Enum):
    MALFORMED_ARCHIVE = 'MalformedArchive'
    INCOMPLETE_ARCHIVE = 'IncompleteArchive'
    UNEXPECTED_BLOCK = 'UnexpectedBlock'
    DIGEST_MISMATCH = 'DigestMismatch'
    UNSUPPORTED_HASH = 'UnsupportedHash'
    UNSUPPORTED_CODEC = 'UnsupportedCodec'
    MALFORMED_NODE = 'MalformedNode'
    PATH_NOT_FOUND = 'PathNotFound'


class VerificationError(Exception):
    """
    Content could not be verified against the requested identifiers.
    """
    kind: FailureKind
    message: str = 'verification failed'

    def __init__(self, detail: str | None = None):
        message = self.message
        if detail:
            message = F'{message}: {detail}'
        super().__init__(message)
        self.detail = detail

    @property
    def name(self) -> str:
        return self.kind.value


class MalformedArchive(VerificationError):
    kind = FailureKind.MALFORMED_ARCHIVE
    message = 'archive is malformed'


class IncompleteArchive(VerificationError):
    kind = FailureKind.INCOMPLETE_ARCHIVE
    message = 'CAR file has no more blocks.'

    def __init__(self):
        super().__init__()


class UnexpectedBlock(VerificationError):
    kind = FailureKind.UNEXPECTED_BLOCK

    def __init__(self, actual, expected):
        self.actual = actual
        self.expected = expected
        self.message = F'received block with cid {actual!s}, expected {expected!s}'
        super().__init__()


class DigestMismatch(VerificationError):
    kind = FailureKind.DIGEST_MISMATCH
    message = 'block failed digest verification'


class UnsupportedHash(VerificationError):
    kind = FailureKind.UNSUPPORTED_HASH
    message = 'unsupported hash function'


class UnsupportedCodec(VerificationError):
    kind = FailureKind.UNSUPPORTED_CODEC
    message = 'unsupported codec'


class MalformedNode(VerificationError):
    kind = FailureKind.MALFORMED_NODE
    message = 'node is malformed'


class PathNotFound(VerificationError):
    kind = FailureKind.PATH_NOT_FOUND
    message = 'path segment not found'
