"""
Pointer index: exact membership, boundary cells, discovery order.
"""
import struct

from gaxscan.pointer_index import build_pointer_index, PROGRESS_BYTES
from gaxscan.rom import RomImage, ROM_BASE


def _expected(data: bytes, base: int) -> dict[int, list[int]]:
    expected: dict[int, list[int]] = {}
    for offset in range(0, len(data) - 3, 4):
        value = struct.unpack_from("<I", data, offset)[0]
        if base <= value < base + len(data):
            expected.setdefault(value, []).append(offset)
    return expected


def test_index_matches_brute_force():
    """Every aligned in-range word is indexed, nothing else."""
    size = 0x400
    data = bytearray(size)
    # in range, out of range, exactly at the bounds
    struct.pack_into("<I", data, 0x00, ROM_BASE + 0x10)
    struct.pack_into("<I", data, 0x04, ROM_BASE + size)          # one past the end
    struct.pack_into("<I", data, 0x08, ROM_BASE - 1)
    struct.pack_into("<I", data, 0x0C, ROM_BASE)
    struct.pack_into("<I", data, 0x10, ROM_BASE + size - 1)
    struct.pack_into("<I", data, 0x20, ROM_BASE + 0x10)
    # misaligned pointer is not a cell
    struct.pack_into("<I", data, 0x31, ROM_BASE + 0x40)

    index = build_pointer_index(RomImage(bytes(data)))

    assert sorted(index.targets()) == sorted(_expected(bytes(data), ROM_BASE))
    assert index.sources(ROM_BASE + 0x10) == (0x00, 0x20)
    assert index.is_target(ROM_BASE)
    assert index.is_target(ROM_BASE + size - 1)
    assert not index.is_target(ROM_BASE + size)
    assert not index.is_target(ROM_BASE - 1)
    assert not index.is_target(ROM_BASE + 0x40)
    assert index.source_count == 4


def test_last_cell_boundaries():
    """The cell at length-4 is indexed; a partial word at length-3 is not."""
    # length multiple of 4: last cell at length-4
    data = bytearray(0x100)
    struct.pack_into("<I", data, 0x100 - 4, ROM_BASE + 0x20)
    index = build_pointer_index(RomImage(bytes(data)))
    assert index.sources(ROM_BASE + 0x20) == (0x100 - 4,)

    # length = 4k + 3: offset length-3 is aligned but only 3 bytes remain
    size = 0x103
    data = bytearray(size)
    struct.pack_into("<I", data, 0xFC, ROM_BASE + 0x20)   # aligned, fully inside
    data[0x100:0x103] = (ROM_BASE + 0x24).to_bytes(4, "little")[:3]
    index = build_pointer_index(RomImage(bytes(data)))
    assert index.sources(ROM_BASE + 0x20) == (0xFC,)
    assert not index.is_target(ROM_BASE + 0x24)
    assert dict((t, list(index.sources(t))) for t in index.targets()) == _expected(bytes(data), ROM_BASE)


def test_first_discovery_order():
    data = bytearray(0x100)
    struct.pack_into("<I", data, 0x00, ROM_BASE + 0x80)
    struct.pack_into("<I", data, 0x04, ROM_BASE + 0x40)
    struct.pack_into("<I", data, 0x08, ROM_BASE + 0x80)
    struct.pack_into("<I", data, 0x0C, ROM_BASE + 0x60)

    index = build_pointer_index(RomImage(bytes(data)))

    assert list(index.targets()) == [ROM_BASE + 0x80, ROM_BASE + 0x40, ROM_BASE + 0x60]
    assert index.sources(ROM_BASE + 0x80) == (0x00, 0x08)
    assert len(index) == 3


def test_custom_base():
    base = 0x02000000
    data = bytearray(0x40)
    struct.pack_into("<I", data, 0x10, base + 0x08)
    struct.pack_into("<I", data, 0x14, ROM_BASE + 0x08)
    index = build_pointer_index(RomImage(bytes(data), base=base))
    assert list(index.targets()) == [base + 0x08]


def test_progress_reported_per_64k():
    calls = []
    data = bytes(PROGRESS_BYTES * 3)
    build_pointer_index(RomImage(data), on_progress=lambda done, total: calls.append(done))
    assert calls[:3] == [0, PROGRESS_BYTES, PROGRESS_BYTES * 2]
    assert calls[-1] == len(data)
