"""Turn a pixel buffer of category ids into a PNG heat map with a legend."""

# mypy: ignore-errors

from __future__ import annotations

import contextlib
import functools
import io
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeAlias

import numpy as np
from matplotlib import font_manager as fm
from PIL import Image, ImageDraw, ImageFont

from .categories import MAX_CATEGORIES, CategoryRegistry
from .pixels import PixelBuffer

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from numpy import ndarray as NDArray

    FreeTypeFont = ImageFont.FreeTypeFont
else:
    NDArray: TypeAlias = Any
    FreeTypeFont: TypeAlias = Any

logger = logging.getLogger(__name__)

RASTER_WIDTH = 256
MIN_HEIGHT = 352
LEGEND_WIDTH = 100
LEGEND_ROW_HEIGHT = 16
LEGEND_TOP = 2
FONT_SIZE = 12
PNG_COMPRESS_LEVEL = 9


@dataclass(frozen=True)
class RenderOptions:
    """Geometry of the rendered heat map."""

    width: int = RASTER_WIDTH
    min_height: int = MIN_HEIGHT
    legend_width: int = LEGEND_WIDTH
    legend_row_height: int = LEGEND_ROW_HEIGHT
    font_size: int = FONT_SIZE


@functools.lru_cache(maxsize=None)
def pick_mono_font(size: int = FONT_SIZE) -> FreeTypeFont:
    """Return a readable monospace font, falling back to Pillow's default."""
    path = fm.findfont("DejaVu Sans Mono", fallback_to_default=True)
    try:
        return ImageFont.truetype(path, size=size)
    except OSError:  # pragma: no cover - Pillow fallback path
        logger.debug("Could not load %s, using Pillow's default font", path)
        return ImageFont.load_default()


def build_palette(registry: CategoryRegistry) -> NDArray:
    """Return a ``(256, 4)`` RGBA lookup table indexed by category id."""
    palette = np.zeros((MAX_CATEGORIES, 4), dtype=np.uint8)
    for category in registry.categories:
        palette[category.id] = category.fill_color
    return palette


def layout_raster(values: NDArray, palette: NDArray, width: int) -> NDArray:
    """Lay category ids out row-major and color them; trailing cells stay clear."""
    count = len(values)
    rows = -(-count // width)
    grid = np.zeros((rows * width, 4), dtype=np.uint8)
    grid[:count] = palette[values]
    return grid.reshape(rows, width, 4)


def render_image(
    pixels: PixelBuffer | NDArray,
    registry: CategoryRegistry,
    options: RenderOptions = RenderOptions(),
) -> Image.Image:
    """Render ``pixels`` as an RGBA image with the legend on the right."""
    values = pixels.values if isinstance(pixels, PixelBuffer) else np.asarray(pixels, dtype=np.uint8)
    raster = layout_raster(values, build_palette(registry), options.width)

    entries = registry.legend_entries()
    legend_height = LEGEND_TOP + len(entries) * options.legend_row_height
    height = max(raster.shape[0], options.min_height, legend_height)
    canvas = np.zeros((height, options.width + options.legend_width, 4), dtype=np.uint8)
    canvas[: raster.shape[0], : options.width] = raster
    image = Image.fromarray(canvas)

    draw = ImageDraw.Draw(image)
    font = pick_mono_font(options.font_size)
    left = options.width + 1
    right = options.width + options.legend_width - 1
    y = LEGEND_TOP
    for category in entries:
        top = y - LEGEND_TOP
        draw.rectangle(
            [left, top, right, top + options.legend_row_height - 1],
            fill=category.fill_color,
        )
        draw.text((options.width + 4, y), category.display_name, fill=category.label_color, font=font)
        y += options.legend_row_height

    logger.debug(
        "Rendered %d pixels into %dx%d canvas with %d legend rows",
        len(values), image.width, image.height, len(entries),
    )
    return image


def encode_png(image: Image.Image) -> bytes:
    """Encode ``image`` losslessly with fixed settings and no metadata."""
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", compress_level=PNG_COMPRESS_LEVEL)
    return buffer.getvalue()


def render(
    pixels: PixelBuffer | NDArray,
    registry: CategoryRegistry,
    options: RenderOptions = RenderOptions(),
) -> bytes:
    """Render ``pixels`` and return the PNG bytes."""
    return encode_png(render_image(pixels, registry, options))


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def write_atomic(path: str | os.PathLike[str], data: bytes) -> Path:
    """Write ``data`` to ``path`` through a temporary file in the same directory.

    The target is only replaced once the whole payload is on disk, so a failed
    write leaves any existing file untouched.
    """
    target = Path(path)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.chmod(tmp_name, 0o666 & ~_current_umask())
        os.replace(tmp_name, target)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
    return target
