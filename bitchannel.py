from typing import BinaryIO

from bitarray import bitarray
from bitarray.util import ba2int, int2ba

CHUNK_SIZE = 1 << 16


class BitReader:
    """Sequential MSB-first bit reader over a binary stream.

    read_bits() returns None once fewer than the requested number of
    bits are left. reset() rewinds to the start, the stream must be seekable
    for that.
    """

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self._buffer = bitarray(endian='big')
        self._pos = 0
        self.bits_read = 0

    def _fill(self, n: int) -> bool:
        while len(self._buffer) - self._pos < n:
            chunk = self._stream.read(CHUNK_SIZE)
            if not chunk:
                return False
            del self._buffer[:self._pos]
            self._pos = 0
            self._buffer.frombytes(chunk)
        return True

    def read_bits(self, n: int) -> int | None:
        if not self._fill(n):
            return None
        value = ba2int(self._buffer[self._pos:self._pos + n])
        self._pos += n
        self.bits_read += n
        return value

    def reset(self) -> None:
        self._stream.seek(0)
        self._buffer = bitarray(endian='big')
        self._pos = 0


class BitWriter:
    """Sequential MSB-first bit writer; close() pads the last byte with zeros."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self._buffer = bitarray(endian='big')
        self._closed = False
        self.bits_written = 0

    def write_bits(self, n: int, value: int) -> None:
        if self._closed:
            raise ValueError('write to closed BitWriter')
        self._buffer += int2ba(value & ((1 << n) - 1), length=n, endian='big')
        self.bits_written += n
        if len(self._buffer) >= 8 * CHUNK_SIZE:
            self._flush_whole_bytes()

    def _flush_whole_bytes(self):
        whole = len(self._buffer) - len(self._buffer) % 8
        self._stream.write(self._buffer[:whole].tobytes())
        del self._buffer[:whole]

    def close(self) -> None:
        if self._closed:
            return
        # tobytes() zero-fills the unused bits of the last byte
        self._stream.write(self._buffer.tobytes())
        self._stream.flush()
        self._buffer = bitarray(endian='big')
        self._closed = True
