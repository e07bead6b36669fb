"""Ordered registry of the parsing-code categories shown in a cartograph.

Each category ties an *owner key* (the code unit responsible for a read) to a
fill color and an optional legend label.  Category ids are positional: id 0 is
the reserved "unattributed" category and every registered category takes the
next id, which is also the order the legend is drawn in.
"""

# mypy: ignore-errors

from __future__ import annotations

import collections.abc as cabc
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeAlias

from matplotlib import colors as mcolors

logger = logging.getLogger(__name__)

RGBA: TypeAlias = tuple[int, int, int, int]
ColorSpec: TypeAlias = str | cabc.Sequence[float]
CategoryEntry: TypeAlias = tuple[str, str | None, ColorSpec, ColorSpec]

DEFAULT_CATEGORY_ID = 0
MAX_CATEGORIES = 256  # ids are stored in a uint8 pixel buffer
UNATTRIBUTED_KEY = "<unattributed>"


class DuplicateCategoryError(ValueError):
    """Raised when an owner key is registered twice."""


def to_rgba8(color: ColorSpec) -> RGBA:
    """Normalise any matplotlib color spec to an 8-bit RGBA tuple."""
    r, g, b, a = mcolors.to_rgba(color)
    return (round(r * 255), round(g * 255), round(b * 255), round(a * 255))


@dataclass(frozen=True)
class Category:
    """A named class of parsing code whose reads are painted together."""

    id: int
    display_name: str | None
    owner_key: str
    fill_color: RGBA
    label_color: RGBA

    @property
    def in_legend(self) -> bool:
        """Return ``True`` when the category is listed in the legend."""
        return self.display_name is not None


class CategoryRegistry:
    """Positional category table with O(1) owner-key lookup."""

    def __init__(self) -> None:
        self._categories: list[Category] = [
            Category(
                id=DEFAULT_CATEGORY_ID,
                display_name=None,
                owner_key=UNATTRIBUTED_KEY,
                fill_color=to_rgba8("black"),
                label_color=to_rgba8("black"),
            )
        ]
        self._lookup: dict[str, int] = {}
        self._frozen = False

    @classmethod
    def from_entries(cls, entries: cabc.Iterable[CategoryEntry]) -> CategoryRegistry:
        """Build a registry from ``(owner_key, name, fill, label)`` tuples."""
        registry = cls()
        for owner_key, display_name, fill_color, label_color in entries:
            registry.register(owner_key, display_name, fill_color, label_color)
        return registry

    def register(
        self,
        owner_key: str,
        display_name: str | None,
        fill_color: ColorSpec,
        label_color: ColorSpec = "black",
    ) -> int:
        """Append a category and return its id."""
        if self._frozen:
            msg = "Category registry is frozen; register categories before reading"
            raise RuntimeError(msg)
        if owner_key in self._lookup or owner_key == UNATTRIBUTED_KEY:
            raise DuplicateCategoryError(f"owner key {owner_key!r} is already registered")
        if len(self._categories) >= MAX_CATEGORIES:
            msg = f"at most {MAX_CATEGORIES - 1} categories can be registered"
            raise ValueError(msg)

        category_id = len(self._categories)
        self._categories.append(
            Category(
                id=category_id,
                display_name=display_name,
                owner_key=owner_key,
                fill_color=to_rgba8(fill_color),
                label_color=to_rgba8(label_color),
            )
        )
        self._lookup[owner_key] = category_id
        return category_id

    def freeze(self) -> None:
        """Reject any further registration."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def resolve(self, owner_key: str) -> int:
        """Return the id registered for ``owner_key`` or the default id."""
        return self._lookup.get(owner_key, DEFAULT_CATEGORY_ID)

    def lookup(self, owner_key: str) -> int | None:
        """Return the id registered for ``owner_key``, ``None`` if absent."""
        return self._lookup.get(owner_key)

    @property
    def categories(self) -> tuple[Category, ...]:
        return tuple(self._categories)

    def legend_entries(self) -> list[Category]:
        """Return the categories with a display name, in registration order."""
        return [category for category in self._categories if category.in_legend]

    def __len__(self) -> int:
        return len(self._categories)

    def __getitem__(self, category_id: int) -> Category:
        return self._categories[category_id]

    def __contains__(self, owner_key: object) -> bool:
        return owner_key in self._lookup


def load_registry(path: str | Path) -> CategoryRegistry:
    """Load a registry from a JSON list of category objects.

    Each object needs an ``owner`` and a ``color``; ``name`` may be omitted or
    ``null`` to keep the category out of the legend, and ``text_color``
    defaults to black.
    """
    raw: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        msg = f"{path}: expected a JSON list of categories"
        raise ValueError(msg)

    registry = CategoryRegistry()
    for index, item in enumerate(raw):
        if not isinstance(item, dict) or "owner" not in item or "color" not in item:
            msg = f"{path}: category #{index} needs 'owner' and 'color'"
            raise ValueError(msg)
        registry.register(
            str(item["owner"]),
            item.get("name"),
            item["color"],
            item.get("text_color", "black"),
        )
    logger.debug("Loaded %d categories from %s", len(registry) - 1, path)
    return registry


# Layers of the model/level/motion/event decoders, innermost data first.  The
# unnamed entries still claim their bytes but stay out of the legend.
MODEL_CATEGORIES: tuple[CategoryEntry, ...] = (
    ("model.mesh.gc.polygon", "GC poly", "powderblue", "black"),
    ("model.mesh.gc.parameter_extensions", None, "slateblue", "black"),
    ("model.mesh.gc.parameter", "GC Parameter", "slateblue", "black"),
    ("model.mesh.gc.mesh", "GC Mesh", "cornflowerblue", "black"),
    ("model.mesh.gc.vertex_set", "GC Vertices", "deepskyblue", "black"),
    ("model.mesh.gc.attach", "GC Attach", "skyblue", "black"),
    ("model.mesh.chunk.poly_chunk", "Poly Chunk", "mediumblue", "white"),
    ("model.mesh.chunk.vertex_chunk", "Vertex Chunk", "darkblue", "white"),
    ("model.mesh.chunk.attach", "CHUNK Attach", "steelblue", "black"),
    ("model.mesh.basic.attach", "BASIC Attach", "darkcyan", "black"),
    ("model.mesh.attach", "Attach", "blue", "white"),
    ("animation.surface_animation", "UV Anim", "rebeccapurple", "black"),
    ("animation.keyframe_read", "Keyframe body", "deeppink", "black"),
    ("animation.keyframes", "Keyframe head", "mediumpurple", "black"),
    ("animation.motion", "Motion", "purple", "white"),
    ("level.land_entry", "Land Entry", "greenyellow", "black"),
    ("object.node", "Node", "limegreen", "black"),
    ("texturing.texture_name_list", "Tex List", "gray", "black"),
    ("event.big_the_cat_entry", "Event BtC", "forestgreen", "black"),
    ("event.event_entry", "Event Entry", "greenyellow", "black"),
    ("event.scene", "Event Scene", "orangered", "black"),
    ("file.meta_data", "Meta data", "orange", "black"),
    ("event.model_data", "File Header", "red", "black"),
    ("file.animation_file", None, "red", "black"),
    ("file.level_file", None, "red", "black"),
    ("file.model_file", None, "red", "black"),
)


def default_registry() -> CategoryRegistry:
    """Return a fresh, frozen registry of :data:`MODEL_CATEGORIES`."""
    registry = CategoryRegistry.from_entries(MODEL_CATEGORIES)
    registry.freeze()
    return registry


DEFAULT_REGISTRY = default_registry()
