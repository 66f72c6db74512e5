"""
Shared test fixtures: a builder for synthetic GBA ROM images.

Filler bytes are drawn from 0x40..0x7E, so filler can never form an
in-range pointer (no 0x08 byte), a NUL terminator or the '" © ' delimiter.
"""

import random
import struct

import pytest

from gaxscan.rom import RomImage, ROM_BASE
from gaxscan.versions import LEGACY_LAYOUT, CURRENT_LAYOUT


class RomBuilder:
    """Write songs, pointers and strings into a filler-initialised image."""

    def __init__(self, size: int = 0x4000, base: int = ROM_BASE, seed: int = 1234):
        rng = random.Random(seed)
        self.base = base
        self.data = bytearray(rng.randint(0x40, 0x7E) for _ in range(size))

    def addr(self, offset: int) -> int:
        return self.base + offset

    def put(self, offset: int, data: bytes):
        self.data[offset:offset + len(data)] = data

    def put_u16(self, offset: int, value: int):
        struct.pack_into("<H", self.data, offset, value)

    def put_u32(self, offset: int, value: int):
        struct.pack_into("<I", self.data, offset, value)

    def put_ptr(self, offset: int, target: int):
        """Aligned cell at `offset` pointing at image offset `target`."""
        self.put_u32(offset, self.addr(target))

    def put_version(self, offset: int, text: str = "GAX Sound Engine v3.05A"):
        self.put(offset, text.encode("latin-1") + b"\x00")

    def put_sample_table(self, offset: int, entries):
        """entries: list of (data offset or None, length)."""
        for i, (data_offset, length) in enumerate(entries):
            cell = offset + 8 * i
            if data_offset is None:
                self.put_u32(cell, 0)
            else:
                self.put_ptr(cell, data_offset)
            self.put_u32(cell + 4, length)

    def put_song(
        self,
        offset: int,
        name: str,
        instrument_set: int,
        link: int,
        channel_data: int,
        legacy: bool = False,
        num_channels: int = 2,
        sample_set=None,
        num_samples: int = 0,
        sample_rate: int = 15769,
    ) -> int:
        """
        Write a song header at `offset`; returns the offset after the name.

        `link` is the sound-handler (legacy) or sequence-data (current)
        target; all targets are image offsets.
        """
        layout = LEGACY_LAYOUT if legacy else CURRENT_LAYOUT
        self.put_u16(offset + 0x00, num_channels)
        self.put_u16(offset + 0x02, 64)        # rows per pattern
        self.put_u16(offset + 0x04, 4)         # patterns per channel
        self.put_u16(offset + 0x06, 0)         # loop point
        self.put_u16(offset + 0x08, 0x100)     # volume
        self.put_u16(offset + 0x0A, num_samples)
        self.put_ptr(offset + 0x0C, link)
        self.put_ptr(offset + 0x10, instrument_set)
        if sample_set is None:
            self.put_u32(offset + 0x14, 0)
        else:
            self.put_ptr(offset + 0x14, sample_set)
        self.put_u16(offset + 0x18, sample_rate)
        self.put_u16(offset + 0x1A, 0)         # fx sample rate (current only)
        if layout.has_fx:
            self.put(offset + 0x1C, b"\x00\x00\x00\x00")
        for i in range(num_channels):
            self.put_ptr(offset + layout.channel_table + 4 * i, channel_data + 0x40 * i)
        name_offset = offset + layout.channel_table + 4 * num_channels
        encoded = name.encode("latin-1") + b"\x00"
        self.put(name_offset, encoded)
        return name_offset + len(encoded)

    def image(self) -> RomImage:
        return RomImage(bytes(self.data), base=self.base, name="test.gba")

    def write(self, path) -> str:
        with open(path, "wb") as f:
            f.write(self.data)
        return str(path)


@pytest.fixture
def builder():
    return RomBuilder()


@pytest.fixture
def make_builder():
    return RomBuilder
