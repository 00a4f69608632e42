"""
Interfaces and classes to read structured data, both from buffers that are entirely held in memory
and from streams that are consumed incrementally.
"""
from __future__ import annotations

import abc
import functools
import inspect
import io
import struct
import sys

from typing import (
    TYPE_CHECKING,
    Generic,
    Iterator,
    TypeVar,
    Union,
    cast,
    get_origin,
)

from carverify.lib.types import asbuffer, isstream

if TYPE_CHECKING:
    from typing import Self

    from carverify.lib.types import ByteSource, buf

    T = TypeVar('T', bound=Union[bytearray, bytes, memoryview])
else:
    T = TypeVar('T')

if sys.version_info >= (3, 12):
    from collections.abc import Buffer
else:
    Buffer = object


class EOF(EOFError):
    """
    While reading from a `carverify.lib.structures.MemoryFile` or a
    `carverify.lib.structures.StreamReader`, less bytes were available than requested. The
    exception contains the data from the incomplete read.
    """
    def __init__(self, size: int, rest: buf = B''):
        super().__init__(F'Unexpected end of buffer; attempted to read {size} bytes, but got only {len(rest)}.')
        self.rest = rest
        self.size = size

    def __bytes__(self):
        return bytes(self.rest)


class ReaderMethods(abc.ABC):
    """
    Methods to read structured data that only depend on an implementation of
    `carverify.lib.structures.ReaderMethods.read_exactly`.
    """
    bigendian: bool

    @abc.abstractmethod
    def read_exactly(self, size: int, peek: bool = False) -> buf:
        raise NotImplementedError

    @property
    def byteorder_format(self) -> str:
        return '>' if self.bigendian else '<'

    @property
    def byteorder_name(self):
        return 'big' if self.bigendian else 'little'

    def read_bytes(self, size: int, peek: bool = False) -> bytes:
        data = self.read_exactly(size, peek)
        if not isinstance(data, bytes):
            data = bytes(data)
        return data

    def read_integer(self, size: int, peek: bool = False, signed: bool = False) -> int:
        """
        Read an integer of the given size (in bits) from the stream.
        """
        nbytes, rest = divmod(size, 8)
        if rest > 0:
            raise ValueError(
                F'A {self.__class__.__name__} cannot read {size} bit{"s" * (size > 1)}, only multiples of 8 are possible.')
        data = self.read_exactly(nbytes, peek)
        return int.from_bytes(data, self.byteorder_name, signed=signed)

    def read_one_struct(self, spec: str, peek: bool = False):
        if spec[:1] not in '<!=@>':
            spec = F'{self.byteorder_format}{spec}'
        item, = struct.unpack(spec, self.read_bytes(struct.calcsize(spec), peek))
        return item

    def u8(self, peek: bool = False) -> int:
        return self.read_integer(8, peek)

    def u16(self, peek: bool = False) -> int:
        return self.read_integer(16, peek)

    def u32(self, peek: bool = False) -> int:
        return self.read_integer(32, peek)

    def u64(self, peek: bool = False) -> int:
        return self.read_integer(64, peek)

    def f16(self, peek: bool = False) -> float:
        return cast(float, self.read_one_struct('e', peek=peek))

    def f32(self, peek: bool = False) -> float:
        return cast(float, self.read_one_struct('f', peek=peek))

    def f64(self, peek: bool = False) -> float:
        return cast(float, self.read_one_struct('d', peek=peek))

    def read_7bit_encoded_int(self, max_bits: int = 0) -> int:
        """
        Read an unsigned LEB128 integer, the varint format of the multiformats family and of
        protocol buffers. An `OverflowError` is raised when the value needs more than `max_bits`
        bits, where a value of zero means no limit.
        """
        value = 0
        shift = 0
        while True:
            b = self.u8()
            value |= (b & 0x7F) << shift
            if not b & 0x80:
                return value
            if (shift := shift + 7) >= max_bits > 0:
                raise OverflowError('Maximum bits were exceeded by encoded integer.')


class MemoryFile(Generic[T], io.RawIOBase):
    """
    A thin wrapper around (potentially mutable) byte sequences which gives it the features of a
    read-only file-like object.
    """
    _data: T
    _cursor: int

    def __init__(self, data: T | MemoryFile[T]) -> None:
        if isinstance(data, MemoryFile):
            self._data = data._data
            self._cursor = data._cursor
        elif isinstance(data, (bytearray, bytes, memoryview)):
            self._data = data
            self._cursor = 0
        else:
            raise TypeError(F'Invalid input: {data!r}.')

    def __bytes__(self):
        return bytes(self._data)

    def __len__(self):
        return len(self._data)

    def readable(self) -> bool:
        return not self.closed

    def seekable(self) -> bool:
        return not self.closed

    @property
    def eof(self) -> bool:
        return self.closed or self._cursor >= len(self._data)

    @property
    def remaining_bytes(self) -> int:
        return len(self._data) - self.tell()

    def read(self, size: int | None = None, peek: bool = False) -> T:
        beginning = self._cursor
        if size is None or size < 0:
            end = len(self._data)
        else:
            end = min(self._cursor + size, len(self._data))
        result = self._data[beginning:end]
        if not peek:
            self._cursor = end
        return result

    def tell(self) -> int:
        return self._cursor

    def skip(self, n: int):
        self._cursor += n

    def seek(self, offset: int, whence=io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            if offset < 0:
                raise ValueError('no negative offsets allowed for SEEK_SET.')
            self._cursor = offset
        elif whence == io.SEEK_CUR:
            self._cursor += offset
        elif whence == io.SEEK_END:
            self._cursor = len(self._data) + offset
        self._cursor = max(self._cursor, 0)
        self._cursor = min(self._cursor, len(self._data))
        return self._cursor

    def getbuffer(self) -> memoryview:
        return memoryview(self._data)


class StructReader(ReaderMethods, MemoryFile[T]):
    """
    An extension of a `carverify.lib.structures.MemoryFile` which provides methods to read
    structured data.
    """
    def __init__(self, data: T | StructReader[T], bigendian: bool | None = None):
        super().__init__(data)
        if bigendian is None:
            if isinstance(data, StructReader):
                bigendian = data.bigendian
            else:
                bigendian = False
        self.bigendian = bigendian

    def read_exactly(self, size: int | None = None, peek: bool = False) -> T:
        """
        Read bytes from the underlying buffer. Raises an exception of type
        `carverify.lib.structures.EOF` when fewer data is available in the buffer than requested
        via the `size` parameter. The remaining data can be extracted from the exception.
        """
        data = self.read(size, peek)
        if size and len(data) < size:
            raise EOF(size, data)
        return data

    def u8(self, peek: bool = False) -> int:
        try:
            b = self._data[self._cursor]
        except IndexError:
            raise EOF(1)
        if not peek:
            self._cursor += 1
        return b


class StreamReader(ReaderMethods):
    """
    A reader for data that arrives incrementally. The source can be a binary file-like object,
    a bytes-like object, or an iterable of byte chunks such as the body iterator of an HTTP
    response. The reader only pulls as many bytes from the source as it needs to satisfy the
    current read, so no more than the largest single read is ever held in memory.
    """
    def __init__(self, source: ByteSource, bigendian: bool = False):
        self.bigendian = bigendian
        self._buffer = bytearray()
        self._offset = 0
        self._stream = None
        self._chunks: Iterator[buf] | None = None
        if isstream(source):
            self._stream = source
        elif (view := asbuffer(source)) is not None:
            self._buffer[:] = view
        else:
            self._chunks = iter(source)

    def _pull(self, size: int) -> bool:
        want = size - len(self._buffer)
        if (stream := self._stream) is not None:
            while want > 0:
                data = stream.read(want)
                if not data:
                    self._stream = None
                    break
                self._buffer.extend(data)
                want -= len(data)
        elif (chunks := self._chunks) is not None:
            while want > 0:
                try:
                    data = next(chunks)
                except StopIteration:
                    self._chunks = None
                    break
                self._buffer.extend(data)
                want -= len(data)
        return want <= 0

    def tell(self) -> int:
        """
        The number of bytes that have been consumed from the source.
        """
        return self._offset

    @property
    def eof(self) -> bool:
        return not self._buffer and not self._pull(1)

    def read_exactly(self, size: int, peek: bool = False) -> bytes:
        if size < 0:
            raise ValueError('the size of a stream read must be specified.')
        if len(self._buffer) < size and not self._pull(size):
            raise EOF(size, bytes(self._buffer))
        data = bytes(self._buffer[:size])
        if not peek:
            del self._buffer[:size]
            self._offset += size
        return data

    def skip(self, n: int):
        """
        Discard the next `n` bytes of the source in bounded steps.
        """
        while n > 0:
            step = min(n, 0x10000)
            self.read_exactly(step)
            n -= step

    def limit(self, size: int) -> StreamReader:
        """
        Return a reader that consumes at most `size` further bytes from this one.
        """
        def _chunks():
            remaining = size
            while remaining > 0:
                step = min(remaining, 0x10000)
                if len(self._buffer) < step:
                    self._pull(step)
                if not self._buffer:
                    return
                step = min(step, len(self._buffer))
                yield self.read_exactly(step)
                remaining -= step
        return StreamReader(_chunks(), self.bigendian)


class StructMeta(abc.ABCMeta):
    """
    A metaclass to facilitate the behavior outlined for `carverify.lib.structures.Struct`.
    """
    def __new__(mcls, name, bases, namespace: dict, interface: type[StructReader] | None = None):
        if interface is None:
            if init := namespace.get('__init__'):
                args = iter(inspect.signature(init).parameters.values())
                next(args)
                interface = next(args).annotation
                if isinstance(interface, str):
                    try:
                        module = sys.modules[namespace['__module__']]
                        interface = eval(interface, module.__dict__)
                    except Exception:
                        interface = None
                if not isinstance(interface, type):
                    interface = get_origin(interface)
                if not isinstance(interface, type) or not issubclass(interface, StructReader):
                    interface = StructReader
            else:
                interface = StructReader

        def parse(cls, reader: T | StructReader[T], *args, **kwargs):
            if not isinstance(reader, interface):
                reader = interface(reader)
            return cls(reader, *args, **kwargs)

        namespace.update(Parse=classmethod(parse))
        return super().__new__(mcls, name, bases, namespace)

    def __init__(cls, name, bases, nmspc, **_):
        super().__init__(name, bases, nmspc)
        original__init__ = cls.__init__

        @functools.wraps(original__init__)
        def wrapped__init__(self: Struct, reader: StructReader, *args, **kwargs):
            start = reader.tell()
            view = reader.getbuffer()
            original__init__(self, reader, *args, **kwargs)
            self._data = view[start:reader.tell()]
            del view

        setattr(cls, '__init__', wrapped__init__)


class Struct(Generic[T], Buffer, metaclass=StructMeta):
    """
    A class to parse structured data. A `carverify.lib.structures.Struct` class can be instantiated
    as follows:

        foo = Struct.Parse(data, bar=29)

    The initialization routine of the structure will be called with a single argument `reader`. If
    the object `data` is already a `carverify.lib.structures.StructReader`, then it will be passed
    as `reader`. Otherwise, the argument will be wrapped in a `carverify.lib.structures.StructReader`.
    Additional arguments to the struct are passed through.
    """
    _data: memoryview | bytearray

    @classmethod
    def Parse(cls, reader: T | StructReader[T], *args, **kwargs) -> Self:
        ...

    def __len__(self):
        return len(self._data)

    def __bytes__(self):
        return bytes(self._data)

    def __buffer__(self, flags: int, /):
        return memoryview(self._data)

    def __init__(self, reader: StructReader[T], *args, **kwargs):
        pass
