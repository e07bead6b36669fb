# pyright: reportUnknownMemberType=false, reportPrivateUsage=false

import struct

import pytest

import file_cartographer.categories as categories
import file_cartographer.reader as reader_mod
from file_cartographer.attribution import scope
from file_cartographer.pixels import PixelBuffer


def _registry(*owner_keys: str) -> categories.CategoryRegistry:
    return categories.CategoryRegistry.from_entries(
        (key, key, "gray", "black") for key in owner_keys
    )


SAMPLE = struct.pack(
    "<bBhHiIqQfd",
    -2, 0xFE, -300, 0xBEEF, -70000, 0xDEADBEEF, -(2**40), 2**63 + 5, 1.5, -2.25,
)


def test_plain_reader_decodes_little_and_big_endian() -> None:
    reader = reader_mod.EndianReader(SAMPLE)

    assert reader.read_int8(0) == -2
    assert reader.read_uint8(1) == 0xFE
    assert reader.read_int16(2) == -300
    assert reader.read_uint16(4) == 0xBEEF
    assert reader.read_int32(6) == -70000
    assert reader.read_uint32(10) == 0xDEADBEEF
    assert reader.read_int64(14) == -(2**40)
    assert reader.read_uint64(22) == 2**63 + 5
    assert reader.read_float32(30) == 1.5
    assert reader.read_float64(34) == -2.25

    reader.push_big_endian(True)
    assert reader.big_endian
    assert reader.read_uint16(4) == 0xEFBE
    reader.pop_endian()
    assert reader.read_uint16(4) == 0xBEEF
    with pytest.raises(RuntimeError):
        reader.pop_endian()


def test_plain_reader_bytes_strings_slices_and_pointers() -> None:
    data = bytearray(b"HEAD") + struct.pack("<I", 0x8000_0010) + bytes(4) + b"name"
    reader = reader_mod.EndianReader(data, image_base=0x8000_0000)

    assert reader.read_bytes(0, 4) == b"HEAD"
    assert reader.read_string(12, "ascii", 4) == "name"
    assert reader.read_pointer(4) == 0x10
    assert reader.read_pointer(8) == 0
    assert reader[1] == ord("E")
    assert len(reader) == 16

    view = reader.slice(12, 4)
    assert bytes(view) == b"name"
    assert view.readonly

    destination = bytearray(8)
    reader.read_bytes_into(0, destination, 2, 4)
    assert destination == bytearray(b"\x00\x00HEAD\x00\x00")


@pytest.mark.parametrize(
    ("address", "length"),
    [(-1, 1), (15, 2), (16, 1), (0, 17)],
)
def test_reads_outside_the_buffer_raise(address: int, length: int) -> None:
    reader = reader_mod.EndianReader(bytes(16))

    with pytest.raises(reader_mod.OutOfBoundsError):
        reader.read_bytes(address, length)


def test_out_of_bounds_error_is_an_index_error() -> None:
    assert issubclass(reader_mod.OutOfBoundsError, IndexError)


def test_instrumented_reads_return_the_same_values() -> None:
    plain = reader_mod.EndianReader(SAMPLE)
    mapped = reader_mod.CartographerReader(SAMPLE, registry=_registry())

    for name, address in [
        ("read_int8", 0), ("read_uint8", 1), ("read_int16", 2), ("read_uint16", 4),
        ("read_int32", 6), ("read_uint32", 10), ("read_int64", 14), ("read_uint64", 22),
        ("read_float32", 30), ("read_float64", 34), ("read_byte", 3),
    ]:
        assert getattr(mapped, name)(address) == getattr(plain, name)(address)
    assert mapped.read_bytes(4, 6) == plain.read_bytes(4, 6)
    assert mapped.read_string(0, "latin-1", 3) == plain.read_string(0, "latin-1", 3)
    assert bytes(mapped.slice(2, 8)) == bytes(plain.slice(2, 8))


def test_scalar_reads_paint_their_fixed_width() -> None:
    registry = _registry("node")
    reader = reader_mod.CartographerReader(bytes(32), bytes_per_pixel=1, registry=registry)

    with scope("node"):
        reader.read_uint16(0)
        reader.read_float64(8)
        reader.read_byte(20)

    values = reader.pixels.values.tolist()
    assert values[0:2] == [1, 1]
    assert values[2] == 0
    assert values[8:16] == [1] * 8
    assert values[16] == 0
    assert values[20] == 1
    assert values[21] == 0


def test_paint_marks_ceil_of_length_pixels_from_address() -> None:
    registry = _registry("mesh")
    reader = reader_mod.CartographerReader(bytes(32), registry=registry)

    with scope("mesh"):
        covered = reader.paint(10, 6)

    assert list(covered) == [2, 3]
    assert reader.pixels.values.tolist() == [0, 0, 1, 1, 0, 0, 0, 0]


def test_two_category_scenario_yields_a_a_b_b() -> None:
    registry = _registry("A", "B")
    reader = reader_mod.CartographerReader(bytes(16), bytes_per_pixel=4, registry=registry)

    with scope("A"):
        reader.read_bytes(0, 8)
    with scope("B"):
        reader.read_uint64(8)

    assert reader.pixels.values.tolist() == [1, 1, 2, 2]


def test_last_read_wins() -> None:
    registry = _registry("chunk", "vertex")
    reader = reader_mod.CartographerReader(bytes(16), registry=registry)

    with scope("chunk"):
        reader.read_bytes(0, 16)
    with scope("vertex"):
        reader.read_uint32(4)
    reader.read_uint32(12)

    assert reader.pixels.values.tolist() == [1, 2, 1, 0]


def test_lowest_read_tracks_the_minimum_address() -> None:
    reader = reader_mod.CartographerReader(bytes(64), registry=_registry())

    assert reader.lowest_read == 64
    for address in (40, 12, 56, 20):
        reader.read_uint32(address)
    assert reader.lowest_read == 12

    reader.lowest_read = len(reader)
    reader.read_uint16(30)
    assert reader.lowest_read == 30


def test_zero_length_reads_move_the_watermark_but_not_the_pixels() -> None:
    registry = _registry("node")
    reader = reader_mod.CartographerReader(bytes(16), registry=registry)

    with scope("node"):
        assert reader.read_bytes(4, 0) == b""
        assert reader.read_string(8, "ascii", 0) == ""
        assert bytes(reader.slice(12, 0)) == b""
        reader.read_bytes_into(2, bytearray(0), 0, 0)

    assert reader.pixels.values.tolist() == [0, 0, 0, 0]
    assert reader.lowest_read == 2


def test_out_of_range_reads_do_not_paint_or_move_the_watermark() -> None:
    registry = _registry("node")
    reader = reader_mod.CartographerReader(bytes(16), registry=registry)

    with scope("node"):
        with pytest.raises(reader_mod.OutOfBoundsError):
            reader.read_uint32(14)
        with pytest.raises(reader_mod.OutOfBoundsError):
            reader.read_bytes(-4, 2)

    assert reader.pixels.values.tolist() == [0, 0, 0, 0]
    assert reader.lowest_read == 16


def test_pixel_buffer_sizing_and_bounds() -> None:
    pixels = PixelBuffer(17, 4)

    assert len(pixels) == 5
    assert list(pixels.pixel_range(16, 1)) == [4]
    with pytest.raises(reader_mod.OutOfBoundsError):
        pixels.mark(16, 8, 1)
    with pytest.raises(ValueError):
        PixelBuffer(16, 0)


def test_pixel_buffer_values_are_read_only() -> None:
    pixels = PixelBuffer(8, 4)

    with pytest.raises(ValueError):
        pixels.values[0] = 3


def test_reader_freezes_its_registry() -> None:
    registry = _registry("node")
    reader_mod.CartographerReader(bytes(4), registry=registry)

    with pytest.raises(RuntimeError):
        registry.register("late", "Late", "red")


def test_duplicate_registration_fails_before_any_reader_exists() -> None:
    with pytest.raises(categories.DuplicateCategoryError):
        reader_mod.CartographerReader(bytes(4), registry=_registry("A", "A"))


def test_pointer_reads_are_attributed() -> None:
    registry = _registry("file.header")
    data = struct.pack(">I", 0x0C00_0008) + bytes(12)
    reader = reader_mod.CartographerReader(
        data, image_base=0x0C00_0000, big_endian=True, registry=registry
    )

    with scope("file.header"):
        assert reader.read_pointer(0) == 8

    assert reader.pixels.values.tolist() == [1, 0, 0, 0]


def test_open_reader_picks_the_reader_class() -> None:
    plain = reader_mod.open_reader(
        bytes(8), instrumented=False, bytes_per_pixel=2, big_endian=True
    )
    mapped = reader_mod.open_reader(
        bytes(8), instrumented=True, bytes_per_pixel=2, registry=_registry()
    )

    assert type(plain) is reader_mod.EndianReader
    assert plain.big_endian
    assert isinstance(mapped, reader_mod.CartographerReader)
    assert len(mapped.pixels) == 4


def test_short_destination_fails_before_painting() -> None:
    registry = _registry("node")
    reader = reader_mod.CartographerReader(bytes(16), registry=registry)

    with scope("node"):
        with pytest.raises(reader_mod.OutOfBoundsError):
            reader.read_bytes_into(4, bytearray(2), 0, 8)

    assert reader.pixels.values.tolist() == [0, 0, 0, 0]
    assert reader.lowest_read == 16


@pytest.mark.parametrize("method", ["read_bytes", "slice"])
def test_negative_lengths_leave_the_watermark_alone(method: str) -> None:
    reader = reader_mod.CartographerReader(bytes(16), registry=_registry())

    with pytest.raises(reader_mod.OutOfBoundsError):
        getattr(reader, method)(2, -1)
    with pytest.raises(reader_mod.OutOfBoundsError):
        reader.read_string(2, "ascii", -1)

    assert reader.lowest_read == 16
