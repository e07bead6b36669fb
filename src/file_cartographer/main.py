"""Run a binary decoder through the cartographer and write its heat map."""

# mypy: ignore-errors

from __future__ import annotations

import argparse
import bz2
import collections.abc as cabc
import gzip
import importlib
import logging
import lzma
import os
import zlib
from pathlib import Path

from .attribution import RESOLVERS, Resolver
from .categories import DEFAULT_REGISTRY, CategoryRegistry, load_registry
from .pixels import DEFAULT_BYTES_PER_PIXEL
from .reader import CartographerReader, EndianReader, open_reader
from .render import write_atomic

logger = logging.getLogger(__name__)

Decoder = cabc.Callable[..., object]

DECOMPRESSORS: dict[str, cabc.Callable[[bytes], bytes]] = {
    "zlib": zlib.decompress,
    "gzip": gzip.decompress,
    "lzma": lzma.decompress,
    "bz2": bz2.decompress,
}


def parse_address(text: str) -> int:
    """Parse a decimal or ``0x``-prefixed address."""
    try:
        return int(text, 0)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid address: {text!r}") from exc


def load_decoder(spec: str) -> Decoder:
    """Import ``module:callable`` and return the callable."""
    module_name, sep, attr_path = spec.partition(":")
    if not sep or not module_name or not attr_path:
        msg = f"decoder must look like 'package.module:function', got {spec!r}"
        raise ValueError(msg)
    target: object = importlib.import_module(module_name)
    for attr in attr_path.split("."):
        target = getattr(target, attr)
    if not callable(target):
        raise ValueError(f"{spec} is not callable")
    return target


def cartograph(
    source: bytes | bytearray,
    decoder: Decoder,
    out_path: str | os.PathLike[str],
    *,
    bytes_per_pixel: int = DEFAULT_BYTES_PER_PIXEL,
    image_base: int = 0,
    big_endian: bool = False,
    registry: CategoryRegistry | None = None,
    resolver: Resolver | None = None,
    companion: EndianReader | None = None,
) -> CartographerReader:
    """Decode ``source`` with ``decoder`` and write the heat map to ``out_path``."""
    reader = CartographerReader(
        source,
        bytes_per_pixel,
        image_base,
        big_endian,
        registry=registry,
        resolver=resolver,
    )
    if companion is None:
        decoder(reader)
    else:
        decoder(reader, companion)
    reader.emit_image(out_path)
    return reader


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Paint which decoder layer read every byte of a binary file",
    )
    p.add_argument("path", help="file to decode")
    p.add_argument(
        "--decoder",
        required=True,
        help="decoder entry point as module:callable; it receives the reader",
    )
    p.add_argument("-o", "--out", help="output PNG path (default: PATH.png)")
    p.add_argument("--bytes-per-pixel", type=int, default=DEFAULT_BYTES_PER_PIXEL)
    p.add_argument("--image-base", type=parse_address, default=0)
    p.add_argument("--big-endian", action="store_true")
    p.add_argument("--decompress", choices=sorted(DECOMPRESSORS))
    p.add_argument(
        "--dump-decompressed",
        action="store_true",
        help="also write the decompressed buffer next to the output (needs --decompress)",
    )
    p.add_argument("--categories", help="JSON category table (default: model layers)")
    p.add_argument("--attribution", choices=sorted(RESOLVERS), default="scope")
    p.add_argument(
        "--companion",
        help="second file handed to the decoder as its companion reader",
    )
    p.add_argument(
        "--map-companion",
        action="store_true",
        help="instrument the companion too and write its own heat map",
    )
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def main(argv: list[str] | None = None) -> None:
    """Command line entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.dump_decompressed and not args.decompress:
        parser.error("--dump-decompressed requires --decompress")
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    path = Path(args.path)
    if not path.is_file():
        raise SystemExit(f"{path}: no such file")
    out_path = Path(args.out) if args.out else path.with_name(path.name + ".png")

    data = path.read_bytes()
    if args.decompress:
        data = DECOMPRESSORS[args.decompress](data)
        logger.debug("Decompressed %s to %d bytes", path, len(data))
        if args.dump_decompressed:
            write_atomic(out_path.with_suffix(".bin"), data)

    registry = load_registry(args.categories) if args.categories else DEFAULT_REGISTRY
    try:
        decoder = load_decoder(args.decoder)
    except (ImportError, AttributeError, ValueError) as exc:
        raise SystemExit(f"cannot load decoder {args.decoder!r}: {exc}") from exc

    companion: EndianReader | None = None
    if args.companion:
        companion = open_reader(
            Path(args.companion).read_bytes(),
            instrumented=args.map_companion,
            bytes_per_pixel=args.bytes_per_pixel,
            big_endian=args.big_endian,
            registry=registry,
            resolver=RESOLVERS[args.attribution](),
        )

    cartograph(
        data,
        decoder,
        out_path,
        bytes_per_pixel=args.bytes_per_pixel,
        image_base=args.image_base,
        big_endian=args.big_endian,
        registry=registry,
        resolver=RESOLVERS[args.attribution](),
        companion=companion,
    )
    logger.info("Wrote %s", out_path)

    if isinstance(companion, CartographerReader):
        companion_out = out_path.with_name(out_path.stem + ".companion.png")
        companion.emit_image(companion_out)
        logger.info("Wrote %s", companion_out)


if __name__ == "__main__":
    main()
