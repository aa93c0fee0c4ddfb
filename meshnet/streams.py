"""Binary stream abstractions used to serialise models and data pages."""

from __future__ import annotations

import gzip
import struct
import sys
from abc import ABC, abstractmethod
from array import array
from typing import IO, Any, Iterable

from .errors import assert_that, check, fopen_check

_LENGTH = struct.Struct("<Q")
_INT = struct.Struct("<i")


def _binary_mode(mode: str) -> str:
    mode = mode.replace("t", "")
    return mode if "b" in mode else mode + "b"


class Stream(ABC):
    """A readable and writable byte stream with helpers for common records."""

    @abstractmethod
    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes."""

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write ``data`` to the stream."""

    def write_array(self, values: Iterable[Any], typecode: str) -> None:
        """Write a length-prefixed array of values of one array typecode."""
        arr = array(typecode, values)
        if sys.byteorder == "big":
            arr.byteswap()
        self.write(_LENGTH.pack(len(arr)))
        if arr:
            self.write(arr.tobytes())

    def read_array(self, typecode: str) -> list[Any]:
        """Read an array written by :meth:`write_array`."""
        (count,) = self.read_struct("<Q")
        arr = array(typecode)
        nbytes = count * arr.itemsize
        if nbytes:
            data = self.read(nbytes)
            if len(data) < nbytes:
                raise EOFError("stream ended inside an array")
            arr.frombytes(data)
            if sys.byteorder == "big":
                arr.byteswap()
        return arr.tolist()

    def write_string(self, text: str | bytes) -> None:
        """Write a length-prefixed byte string; text is encoded as UTF-8."""
        data = text.encode("utf-8") if isinstance(text, str) else bytes(text)
        self.write(_LENGTH.pack(len(data)))
        if data:
            self.write(data)

    def read_string(self) -> bytes:
        """Read a byte string written by :meth:`write_string`."""
        (length,) = self.read_struct("<Q")
        data = self.read(length) if length else b""
        if len(data) < length:
            raise EOFError("stream ended inside a string")
        return data

    def read_struct(self, fmt: str) -> tuple[Any, ...]:
        """Read and unpack one record of the given struct format."""
        size = struct.calcsize(fmt)
        data = self.read(size)
        if len(data) < size:
            raise EOFError("stream ended before a full record was read")
        return struct.unpack(fmt, data)


class SeekStream(Stream):
    """A stream that supports random access."""

    @abstractmethod
    def seek(self, pos: int) -> None:
        """Move to an absolute position."""

    @abstractmethod
    def tell(self) -> int:
        """Return the current position."""


class MemoryBufferStream(SeekStream):
    """A stream over an in-memory, growable byte buffer."""

    def __init__(self, buffer: bytearray | bytes | None = None) -> None:
        if buffer is None:
            buffer = bytearray()
        elif not isinstance(buffer, bytearray):
            buffer = bytearray(buffer)
        self._buffer = buffer
        self._pos = 0

    def read(self, size: int) -> bytes:
        assert_that(
            self._pos <= len(self._buffer),
            "read can not have position excceed buffer length",
        )
        end = min(len(self._buffer), self._pos + size)
        data = bytes(self._buffer[self._pos:end])
        self._pos = end
        return data

    def write(self, data: bytes) -> None:
        if not data:
            return
        if self._pos > len(self._buffer):
            self._buffer.extend(bytes(self._pos - len(self._buffer)))
        self._buffer[self._pos:self._pos + len(data)] = data
        self._pos += len(data)

    def seek(self, pos: int) -> None:
        self._pos = pos

    def tell(self) -> int:
        return self._pos

    def getvalue(self) -> bytes:
        """Return the whole buffer contents."""
        return bytes(self._buffer)


class GzFile(SeekStream):
    """A gzip-compressed file stream."""

    def __init__(self, path: str, mode: str) -> None:
        try:
            self._fp: IO[bytes] | None = gzip.open(path, _binary_mode(mode))
        except OSError:
            self._fp = None
        check(self._fp is not None, "Failed to open file %s\n", path)

    def read(self, size: int) -> bytes:
        return self._fp.read(size)

    def write(self, data: bytes) -> None:
        self._fp.write(data)

    def seek(self, pos: int) -> None:
        self._fp.seek(pos)

    def tell(self) -> int:
        return self._fp.tell()

    def close(self) -> None:
        if self._fp is not None:
            self._fp.close()
            self._fp = None

    def __enter__(self) -> GzFile:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class FileStream(SeekStream):
    """A stream over an already opened binary file object."""

    def __init__(self, fp: IO[bytes] | None = None) -> None:
        self._fp = fp

    def read(self, size: int) -> bytes:
        return self._fp.read(size)

    def write(self, data: bytes) -> None:
        self._fp.write(data)

    def seek(self, pos: int) -> None:
        self._fp.seek(pos)

    def tell(self) -> int:
        return self._fp.tell()

    def close(self) -> None:
        if self._fp is not None:
            self._fp.close()
            self._fp = None


class StdFile(SeekStream):
    """A binary file stream opened by name, remembering the size at open."""

    def __init__(self, fname: str | None = None, mode: str = "rb") -> None:
        self._fp: IO[bytes] | None = None
        self._size = 0
        if fname is not None:
            self.open(fname, mode)

    def open(self, fname: str, mode: str) -> None:
        """Open ``fname``, raising CheckError when it cannot be opened."""
        self._fp = fopen_check(fname, _binary_mode(mode))
        self._fp.seek(0, 2)
        self._size = self._fp.tell()
        self._fp.seek(0)

    def read(self, size: int) -> bytes:
        return self._fp.read(size)

    def write(self, data: bytes) -> None:
        self._fp.write(data)

    def seek(self, pos: int) -> None:
        self._fp.seek(pos)

    def tell(self) -> int:
        return self._fp.tell()

    def close(self) -> None:
        if self._fp is not None:
            self._fp.close()
            self._fp = None

    def size(self) -> int:
        """Size of the file in bytes at the time it was opened."""
        return self._size

    def __enter__(self) -> StdFile:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class BinaryPage:
    """A fixed-size page packing binary objects.

    The page is an array of 32-bit integers: slot 0 holds the object count,
    slots 1.. hold cumulative end offsets, and object bytes are stored from
    the end of the page backwards.
    """

    PAGE_SIZE = 64 << 18
    PAGE_BYTES = PAGE_SIZE * _INT.size

    def __init__(self) -> None:
        self._data = bytearray(self.PAGE_BYTES)

    def _slot(self, i: int) -> int:
        return _INT.unpack_from(self._data, i * _INT.size)[0]

    def _set_slot(self, i: int, value: int) -> None:
        _INT.pack_into(self._data, i * _INT.size, value)

    def _free_bytes(self) -> int:
        count = len(self)
        return (self.PAGE_SIZE - (count + 2)) * _INT.size - self._slot(count + 1)

    def load(self, stream: Stream) -> bool:
        """Load one page from ``stream``; return False when nothing was read."""
        data = stream.read(self.PAGE_BYTES)
        if not data:
            return False
        self._data[: len(data)] = data
        return True

    def save(self, stream: Stream) -> None:
        """Write the whole page to ``stream``."""
        stream.write(bytes(self._data))

    def __len__(self) -> int:
        return self._slot(0)

    def push(self, data: bytes) -> bool:
        """Append an object; return False when the page has no room for it."""
        size = len(data)
        if self._free_bytes() < size + _INT.size:
            return False
        count = len(self)
        end = self._slot(count + 1) + size
        self._set_slot(count + 2, end)
        start = self.PAGE_BYTES - end
        self._data[start:start + size] = data
        self._set_slot(0, count + 1)
        return True

    def clear(self) -> None:
        """Remove every object from the page."""
        self._data = bytearray(self.PAGE_BYTES)

    def __getitem__(self, r: int) -> bytes:
        count = len(self)
        if r < 0:
            r += count
        if not 0 <= r < count:
            raise IndexError("index excceed bound")
        end = self._slot(r + 2)
        size = end - self._slot(r + 1)
        start = self.PAGE_BYTES - end
        return bytes(self._data[start:start + size])