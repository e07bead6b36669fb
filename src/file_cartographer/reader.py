"""Byte-addressable readers: the plain one and the instrumented cartographer.

Decoders only depend on :class:`ByteReader`.  Hand them an
:class:`EndianReader` to parse normally or a :class:`CartographerReader` to
additionally record which category of code read every byte.
"""

# mypy: ignore-errors

from __future__ import annotations

import collections.abc as cabc
import logging
import os
import struct
from typing import Protocol

from .attribution import Resolver, ScopeResolver
from .categories import DEFAULT_REGISTRY, CategoryRegistry
from .pixels import DEFAULT_BYTES_PER_PIXEL, OutOfBoundsError, PixelBuffer
from .render import RenderOptions, render, render_image, write_atomic

logger = logging.getLogger(__name__)

__all__ = [
    "ByteReader",
    "CartographerReader",
    "EndianReader",
    "OutOfBoundsError",
]

Buffer = bytes | bytearray | memoryview


class ByteReader(Protocol):
    """The read contract every decoder is written against."""

    image_base: int

    def __len__(self) -> int: ...
    def __getitem__(self, address: int) -> int: ...
    def read_byte(self, address: int) -> int: ...
    def read_bytes(self, address: int, length: int) -> bytes: ...
    def read_bytes_into(
        self, source_address: int, destination: bytearray | memoryview,
        destination_offset: int, length: int,
    ) -> None: ...
    def read_int8(self, address: int) -> int: ...
    def read_uint8(self, address: int) -> int: ...
    def read_int16(self, address: int) -> int: ...
    def read_uint16(self, address: int) -> int: ...
    def read_int32(self, address: int) -> int: ...
    def read_uint32(self, address: int) -> int: ...
    def read_int64(self, address: int) -> int: ...
    def read_uint64(self, address: int) -> int: ...
    def read_float32(self, address: int) -> float: ...
    def read_float64(self, address: int) -> float: ...
    def read_string(self, address: int, encoding: str, count: int) -> str: ...
    def slice(self, address: int, length: int) -> memoryview: ...
    def read_pointer(self, address: int) -> int: ...


class EndianReader:
    """Plain reader over an in-memory buffer with an endianness stack."""

    def __init__(self, source: Buffer, image_base: int = 0, big_endian: bool = False) -> None:
        self.source = source
        self._view = memoryview(source)
        self.image_base = image_base
        self._endian_stack: list[bool] = [big_endian]

    # -------- endianness --------

    @property
    def big_endian(self) -> bool:
        return self._endian_stack[-1]

    def push_big_endian(self, big_endian: bool) -> None:
        self._endian_stack.append(big_endian)

    def pop_endian(self) -> None:
        if len(self._endian_stack) == 1:
            raise RuntimeError("Cannot pop the reader's initial endianness")
        self._endian_stack.pop()

    # -------- helpers --------

    def _check_range(self, address: int, length: int) -> None:
        if address < 0 or length < 0 or address + length > len(self._view):
            msg = (
                f"read of {length} bytes at 0x{address:X} is outside the "
                f"{len(self._view)}-byte buffer"
            )
            raise OutOfBoundsError(msg)

    def _check_destination(
        self, destination: bytearray | memoryview, offset: int, length: int,
    ) -> None:
        if offset < 0 or length < 0 or offset + length > len(destination):
            msg = (
                f"destination of {len(destination)} bytes cannot hold {length} "
                f"bytes at offset {offset}"
            )
            raise OutOfBoundsError(msg)

    def _unpack(self, code: str, address: int) -> int | float:
        fmt = (">" if self.big_endian else "<") + code
        self._check_range(address, struct.calcsize(fmt))
        return struct.unpack_from(fmt, self._view, address)[0]

    # -------- reads --------

    def __len__(self) -> int:
        return len(self._view)

    def __getitem__(self, address: int) -> int:
        return self.read_byte(address)

    def read_byte(self, address: int) -> int:
        self._check_range(address, 1)
        return self._view[address]

    def read_bytes(self, address: int, length: int) -> bytes:
        self._check_range(address, length)
        return bytes(self._view[address : address + length])

    def read_bytes_into(
        self,
        source_address: int,
        destination: bytearray | memoryview,
        destination_offset: int,
        length: int,
    ) -> None:
        """Copy ``length`` bytes into ``destination`` without allocating."""
        self._check_range(source_address, length)
        self._check_destination(destination, destination_offset, length)
        destination[destination_offset : destination_offset + length] = (
            self._view[source_address : source_address + length]
        )

    def read_int8(self, address: int) -> int:
        return self._unpack("b", address)

    def read_uint8(self, address: int) -> int:
        return self._unpack("B", address)

    def read_int16(self, address: int) -> int:
        return self._unpack("h", address)

    def read_uint16(self, address: int) -> int:
        return self._unpack("H", address)

    def read_int32(self, address: int) -> int:
        return self._unpack("i", address)

    def read_uint32(self, address: int) -> int:
        return self._unpack("I", address)

    def read_int64(self, address: int) -> int:
        return self._unpack("q", address)

    def read_uint64(self, address: int) -> int:
        return self._unpack("Q", address)

    def read_float32(self, address: int) -> float:
        return self._unpack("f", address)

    def read_float64(self, address: int) -> float:
        return self._unpack("d", address)

    def read_string(self, address: int, encoding: str, count: int) -> str:
        """Decode ``count`` bytes at ``address`` as ``encoding``."""
        self._check_range(address, count)
        return bytes(self._view[address : address + count]).decode(encoding)

    def slice(self, address: int, length: int) -> memoryview:
        """Return a read-only view over ``length`` bytes at ``address``."""
        self._check_range(address, length)
        return self._view[address : address + length].toreadonly()

    def read_pointer(self, address: int) -> int:
        """Read a 32-bit pointer and translate it to a buffer address.

        Null pointers stay ``0``.
        """
        value = self.read_uint32(address)
        return value - self.image_base if value else 0


class CartographerReader(EndianReader):
    """Reader that paints every read into a per-category pixel buffer."""

    def __init__(
        self,
        source: Buffer,
        bytes_per_pixel: int = DEFAULT_BYTES_PER_PIXEL,
        image_base: int = 0,
        big_endian: bool = False,
        *,
        registry: CategoryRegistry | None = None,
        resolver: Resolver | None = None,
    ) -> None:
        super().__init__(source, image_base=image_base, big_endian=big_endian)
        self.pixels = PixelBuffer(len(self._view), bytes_per_pixel)
        self.registry = DEFAULT_REGISTRY if registry is None else registry
        self.registry.freeze()
        self.resolver = ScopeResolver() if resolver is None else resolver
        self._lowest_read = len(self._view)
        logger.debug(
            "Instrumented %d bytes at %d bytes/pixel (%d pixels, %d categories)",
            len(self._view), bytes_per_pixel, len(self.pixels), len(self.registry),
        )

    @property
    def bytes_per_pixel(self) -> int:
        return self.pixels.bytes_per_pixel

    @property
    def lowest_read(self) -> int:
        """Lowest address read so far; the buffer length before any read."""
        return self._lowest_read

    @lowest_read.setter
    def lowest_read(self, address: int) -> None:
        self._lowest_read = address

    def paint(self, address: int, length: int) -> range:
        """Attribute ``length`` bytes at ``address`` to the current category."""
        category_id = self.resolver.resolve(self.registry)
        self._check_range(address, length)
        return self.pixels.mark(address, length, category_id)

    def _map(self, address: int, length: int) -> None:
        self._check_range(address, length)
        if length > 0:
            self.paint(address, length)
        if address < self._lowest_read:
            self._lowest_read = address

    # -------- image output --------

    def render_image(self, options: RenderOptions = RenderOptions()):
        """Return the heat map as a Pillow image."""
        return render_image(self.pixels, self.registry, options)

    def emit_image(
        self, path: str | os.PathLike[str], options: RenderOptions = RenderOptions(),
    ) -> None:
        """Render the heat map and write it to ``path`` as a PNG."""
        target = write_atomic(path, render(self.pixels, self.registry, options))
        logger.debug("Wrote cartograph of %d bytes to %s", len(self._view), target)

    # -------- instrumented reads --------

    def read_byte(self, address: int) -> int:
        self._map(address, 1)
        return super().read_byte(address)

    def read_bytes(self, address: int, length: int) -> bytes:
        self._map(address, length)
        return super().read_bytes(address, length)

    def read_bytes_into(
        self,
        source_address: int,
        destination: bytearray | memoryview,
        destination_offset: int,
        length: int,
    ) -> None:
        self._check_destination(destination, destination_offset, length)
        self._map(source_address, length)
        super().read_bytes_into(source_address, destination, destination_offset, length)

    def read_int8(self, address: int) -> int:
        self._map(address, 1)
        return super().read_int8(address)

    def read_uint8(self, address: int) -> int:
        self._map(address, 1)
        return super().read_uint8(address)

    def read_int16(self, address: int) -> int:
        self._map(address, 2)
        return super().read_int16(address)

    def read_uint16(self, address: int) -> int:
        self._map(address, 2)
        return super().read_uint16(address)

    def read_int32(self, address: int) -> int:
        self._map(address, 4)
        return super().read_int32(address)

    def read_uint32(self, address: int) -> int:
        self._map(address, 4)
        return super().read_uint32(address)

    def read_int64(self, address: int) -> int:
        self._map(address, 8)
        return super().read_int64(address)

    def read_uint64(self, address: int) -> int:
        self._map(address, 8)
        return super().read_uint64(address)

    def read_float32(self, address: int) -> float:
        self._map(address, 4)
        return super().read_float32(address)

    def read_float64(self, address: int) -> float:
        self._map(address, 8)
        return super().read_float64(address)

    def read_string(self, address: int, encoding: str, count: int) -> str:
        self._map(address, count)
        return super().read_string(address, encoding, count)

    def slice(self, address: int, length: int) -> memoryview:
        self._map(address, length)
        return super().slice(address, length)


def open_reader(
    data: Buffer,
    *,
    instrumented: bool,
    **kwargs: object,
) -> EndianReader:
    """Return a cartographer or a plain reader over ``data``.

    ``bytes_per_pixel``, ``registry`` and ``resolver`` are only meaningful for
    the instrumented reader and are dropped otherwise.
    """
    if instrumented:
        return CartographerReader(data, **kwargs)
    plain_keys: cabc.Set[str] = {"image_base", "big_endian"}
    return EndianReader(data, **{k: v for k, v in kwargs.items() if k in plain_keys})
