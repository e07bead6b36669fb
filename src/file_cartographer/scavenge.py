"""Recover structs that nothing points to by scanning backward from an anchor.

Pointer-based formats usually pack their structs downward from a known table,
so after decoding one struct the lowest byte it touched is a good guess for
where the previous struct ends.  The caller supplies candidate layouts; they
are tried in order, each guess ``stride`` bytes lower than the previous one,
which lets one scan cope with two struct revisions that differ in size.
"""

# mypy: ignore-errors

from __future__ import annotations

import collections.abc as cabc
import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from .reader import CartographerReader

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StructLayout(Generic[T]):
    """A guess at what a struct below the watermark looks like."""

    label: str
    probe: cabc.Callable[[CartographerReader, int], bool]
    decode: cabc.Callable[[CartographerReader, int], T]


@dataclass(frozen=True)
class ScavengedStruct(Generic[T]):
    address: int
    label: str
    value: T


def scan_backward(
    reader: CartographerReader,
    anchor: int,
    struct_size: int,
    layouts: cabc.Sequence[StructLayout[T]],
    *,
    stride: int = 4,
    floor: int = 0,
) -> list[ScavengedStruct[T]]:
    """Decode structs packed below ``anchor``, nearest first."""
    if struct_size <= 0 or stride <= 0:
        msg = "struct_size and stride must be positive"
        raise ValueError(msg)

    found: list[ScavengedStruct[T]] = []
    reader.lowest_read = len(reader)
    address = anchor - struct_size
    while floor <= address < anchor:
        match: ScavengedStruct[T] | None = None
        for layout in layouts:
            if address < floor:
                break
            if layout.probe(reader, address):
                match = ScavengedStruct(address, layout.label, layout.decode(reader, address))
                break
            address -= stride
        if match is None:
            break
        found.append(match)
        logger.debug("Recovered %s at 0x%X", match.label, match.address)
        address = reader.lowest_read - struct_size

    return found
