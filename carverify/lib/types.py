"""
Types that are primarily used for type hints, and tests for the kinds of byte sources that the
archive reader accepts.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from typing import (
        BinaryIO,
        Iterable,
        Union,
    )

    JSON = Union[
        None,
        str,
        int,
        float,
        bool,
        bytes,
        dict[str, 'JSON'],
        list['JSON'],
    ]

    buf = Union[bytes, bytearray, memoryview]
    ByteSource = Union[BinaryIO, bytes, bytearray, memoryview, Iterable[bytes]]

else:
    JSON = Any
    buf = Any
    ByteSource = Any


__all__ = [
    'asbuffer',
    'buf',
    'ByteSource',
    'isstream',
    'JSON',
]


def isstream(obj) -> bool:
    """
    An object is treated as a stream if it has a `read` method.
    """
    return hasattr(obj, 'read')


def asbuffer(obj) -> memoryview | None:
    """
    Attempts to acquire a memoryview of the given object. The return value is `None` for objects
    that do not support the buffer protocol.
    """
    try:
        return memoryview(obj)
    except TypeError:
        return None
