"""Downsampled per-region category map."""

# mypy: ignore-errors

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeAlias

import numpy as np

from .categories import DEFAULT_CATEGORY_ID

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from numpy import ndarray as NDArray
else:
    NDArray: TypeAlias = Any

DEFAULT_BYTES_PER_PIXEL = 4


class OutOfBoundsError(IndexError):
    """Raised for an access outside the instrumented buffer."""


class PixelBuffer:
    """One category id per ``bytes_per_pixel`` source bytes; last write wins."""

    def __init__(self, source_length: int, bytes_per_pixel: int = DEFAULT_BYTES_PER_PIXEL) -> None:
        if bytes_per_pixel < 1:
            msg = f"bytes_per_pixel must be positive, got {bytes_per_pixel}"
            raise ValueError(msg)
        if source_length < 0:
            msg = f"source_length must not be negative, got {source_length}"
            raise ValueError(msg)
        self.source_length = source_length
        self.bytes_per_pixel = bytes_per_pixel
        count = -(-source_length // bytes_per_pixel)
        self._pixels = np.full(count, DEFAULT_CATEGORY_ID, dtype=np.uint8)

    def pixel_range(self, address: int, length: int) -> range:
        """Return the pixel indices covered by ``length`` bytes at ``address``."""
        start = address // self.bytes_per_pixel
        count = max(1, -(-length // self.bytes_per_pixel))
        if address < 0 or start + count > len(self._pixels):
            msg = (
                f"pixels {start}..{start + count} for 0x{address:X}+{length} "
                f"exceed buffer of {len(self._pixels)} pixels"
            )
            raise OutOfBoundsError(msg)
        return range(start, start + count)

    def mark(self, address: int, length: int, category_id: int) -> range:
        """Paint ``category_id`` over the pixels covering the byte range."""
        covered = self.pixel_range(address, length)
        self._pixels[covered.start : covered.stop] = category_id
        return covered

    @property
    def values(self) -> NDArray:
        """Read-only view of the category ids."""
        view = self._pixels.view()
        view.flags.writeable = False
        return view

    def __len__(self) -> int:
        return len(self._pixels)
