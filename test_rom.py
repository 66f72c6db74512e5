"""
Test the ROM image reader: mmap and buffered loading, bounded reads,
pointer arithmetic and alignment helpers.
"""
import os
import struct
import tempfile
import shutil

import pytest

from gaxscan.errors import ImageLoadError, OutOfRangeError, DecodeError
from gaxscan.rom import RomImage, ROM_BASE, align_down, align_up


def _write(tmpdir, name, data):
    path = os.path.join(tmpdir, name)
    with open(path, "wb") as f:
        f.write(data)
    return path


def test_open_mmap_and_buffered():
    """Both load paths see the same bytes."""
    print("── Test: ROM open ──")
    tmpdir = tempfile.mkdtemp(prefix="test_rom_")
    try:
        data = b"A" * 4096 + b"B" * 4096 + struct.pack("<I", ROM_BASE + 0x10)
        path = _write(tmpdir, "game.gba", data)

        for use_mmap in (True, False):
            with RomImage.open(path, use_mmap=use_mmap) as rom:
                assert rom.size == len(data)
                assert rom.name == "game.gba"
                assert rom.read_at(0, 4) == b"AAAA"
                assert rom.read_at(4096, 1) == b"B"
                assert rom.u32(8192) == ROM_BASE + 0x10
                assert rom.end_address == ROM_BASE + len(data)

        print("  ✅ ROM open: PASS")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_open_failures():
    tmpdir = tempfile.mkdtemp(prefix="test_rom_")
    try:
        with pytest.raises(ImageLoadError):
            RomImage.open(os.path.join(tmpdir, "missing.gba"))
        with pytest.raises(ImageLoadError):
            RomImage.open(_write(tmpdir, "tiny.gba", b"\x01\x02"))
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_bounded_reads():
    rom = RomImage(b"\x01\x02\x03\x04\x05\x06")

    assert rom.u8(5) == 6
    assert rom.u16(0) == 0x0201
    assert rom.u32(2) == 0x06050403

    for read in (lambda: rom.u32(3), lambda: rom.u8(6), lambda: rom.read_at(4, 3),
                 lambda: rom.u16(-1)):
        with pytest.raises(OutOfRangeError):
            read()
    assert issubclass(OutOfRangeError, DecodeError)


def test_read_cstring():
    rom = RomImage(b"GAX\x00" + b"x" * 12)
    assert rom.read_cstring(0, 0x100) == b"GAX"
    assert rom.read_cstring(3, 0x100) == b""
    # no terminator before the limit or before the end of the image
    assert rom.read_cstring(4, 4) is None
    assert rom.read_cstring(4, 0x100) is None


def test_address_arithmetic():
    rom = RomImage(bytes(0x100), base=ROM_BASE)
    assert rom.contains_address(ROM_BASE)
    assert rom.contains_address(ROM_BASE + 0xFF)
    assert not rom.contains_address(ROM_BASE + 0x100)
    assert not rom.contains_address(ROM_BASE - 1)
    assert rom.to_offset(ROM_BASE + 0x40) == 0x40
    assert rom.to_address(0x40) == ROM_BASE + 0x40
    with pytest.raises(OutOfRangeError):
        rom.to_offset(0)


def test_iter_words():
    data = struct.pack("<III", 1, 2, 3) + b"\xFF\xFF\xFF"
    rom = RomImage(data)
    assert list(rom.iter_words()) == [(0, 1), (4, 2), (8, 3)]
    assert list(rom.iter_words(5)) == [(8, 3)]
    assert list(RomImage(b"\x00\x00\x00").iter_words()) == []


def test_pointer_alignment():
    """Test pointer alignment functions."""
    print("── Test: pointer alignment ──")

    assert align_down(0) == 0
    assert align_down(3) == 0
    assert align_down(4) == 4
    assert align_down(7) == 4

    assert align_up(0) == 0
    assert align_up(1) == 4
    assert align_up(4) == 4
    assert align_up(5) == 8

    print("  ✅ pointer alignment: PASS")
