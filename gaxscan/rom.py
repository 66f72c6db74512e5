"""
ROM Image — immutable byte buffer with GBA pointer arithmetic.

APPROACH
────────
1. Memory-mapped I/O (mmap) for zero-copy reads of the whole image.
2. Fallback to a single plain read() if mmap fails.
3. All pointers are 4-byte little-endian absolute addresses; the cartridge
   is mapped at 0x08000000, so offset = address - base.

The image is never written to. Every strict read raises OutOfRangeError
(a DecodeError) so decode trials can treat a bad read like any other
malformed structure.
"""

import os
import mmap
import struct
import logging
from typing import Optional, Iterator

from .errors import ImageLoadError, OutOfRangeError

logger = logging.getLogger(__name__)

# GBA cartridge ROM is mapped here
ROM_BASE = 0x08000000

POINTER_SIZE = 4

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")


def align_down(offset: int, alignment: int = POINTER_SIZE) -> int:
    """Round offset DOWN to the nearest pointer boundary."""
    return (offset // alignment) * alignment


def align_up(offset: int, alignment: int = POINTER_SIZE) -> int:
    """Round offset UP to the nearest pointer boundary."""
    return ((offset + alignment - 1) // alignment) * alignment


class RomImage:
    """
    Read-only ROM image.

    Usage:
        with RomImage.open(path) as rom:
            value = rom.u32(0x100)
            if rom.contains_address(value):
                target = rom.to_offset(value)

    Or, for synthetic images:
        rom = RomImage(data, base=ROM_BASE)
    """

    def __init__(self, data, base: int = ROM_BASE, name: str = ""):
        self._data = data
        self._size = len(data)
        self._base = base
        self._name = name
        self._mmap: Optional[mmap.mmap] = data if isinstance(data, mmap.mmap) else None

    @classmethod
    def open(cls, path: str, base: int = ROM_BASE, use_mmap: bool = True) -> "RomImage":
        """
        Load a ROM image from disk.

        Raises ImageLoadError if the file is missing, unreadable, empty
        or shorter than its reported size.
        """
        try:
            size = os.path.getsize(path)
        except OSError as e:
            raise ImageLoadError(f"Cannot open ROM image {path}: {e}") from e
        if size < POINTER_SIZE:
            raise ImageLoadError(f"ROM image {path} is too small ({size} bytes)")

        name = os.path.basename(path)
        try:
            with open(path, "rb") as fd:
                if use_mmap:
                    try:
                        # ACCESS_READ keeps the mapping valid after fd is closed
                        mapped = mmap.mmap(fd.fileno(), 0, access=mmap.ACCESS_READ)
                        logger.info(
                            "mmap enabled: %d bytes (%.1f MB)",
                            size, size / (1024 ** 2),
                        )
                        return cls(mapped, base=base, name=name)
                    except (OSError, ValueError, OverflowError) as e:
                        logger.info("mmap unavailable (%s), using buffered read", e)
                data = fd.read()
        except OSError as e:
            raise ImageLoadError(f"Cannot read ROM image {path}: {e}") from e

        if len(data) != size:
            raise ImageLoadError(
                f"Short read on {path}: got {len(data)} of {size} bytes"
            )
        return cls(data, base=base, name=name)

    @property
    def base(self) -> int:
        return self._base

    @property
    def size(self) -> int:
        return self._size

    @property
    def name(self) -> str:
        return self._name

    @property
    def end_address(self) -> int:
        return self._base + self._size

    def __len__(self) -> int:
        return self._size

    # ── Address arithmetic ──────────────────────────────────

    def contains_address(self, address: int) -> bool:
        return self._base <= address < self._base + self._size

    def to_offset(self, address: int) -> int:
        if not self.contains_address(address):
            raise OutOfRangeError(f"Address 0x{address:08X} outside image", address)
        return address - self._base

    def to_address(self, offset: int) -> int:
        return self._base + offset

    # ── Reads ───────────────────────────────────────────────

    def _check(self, offset: int, size: int):
        if offset < 0 or size < 0 or offset + size > self._size:
            raise OutOfRangeError(
                f"Read of {size} bytes at 0x{offset:X} outside image "
                f"(size 0x{self._size:X})",
                offset,
            )

    def read_at(self, offset: int, size: int) -> bytes:
        """Read exactly `size` bytes at `offset`."""
        self._check(offset, size)
        return bytes(self._data[offset:offset + size])

    def u8(self, offset: int) -> int:
        self._check(offset, 1)
        return self._data[offset]

    def u16(self, offset: int) -> int:
        self._check(offset, 2)
        return _U16.unpack_from(self._data, offset)[0]

    def u32(self, offset: int) -> int:
        self._check(offset, 4)
        return _U32.unpack_from(self._data, offset)[0]

    def read_cstring(self, offset: int, max_length: int) -> Optional[bytes]:
        """
        Read a NUL-terminated string starting at `offset`.

        Returns None if no terminator occurs within `max_length` bytes
        or before the end of the image.
        """
        self._check(offset, 1)
        end = min(offset + max_length, self._size)
        chunk = bytes(self._data[offset:end])
        nul = chunk.find(b"\x00")
        if nul < 0:
            return None
        return chunk[:nul]

    def iter_words(self, start: int = 0) -> Iterator[tuple[int, int]]:
        """
        Yield (offset, value) for every aligned 4-byte little-endian word
        from `start` to size - 4 inclusive.
        """
        start = align_up(start)
        end = align_down(self._size)
        if end - start < POINTER_SIZE:
            return
        view = memoryview(self._data)[start:end]
        words = _U32.iter_unpack(view)
        try:
            offset = start
            for (value,) in words:
                yield offset, value
                offset += POINTER_SIZE
        finally:
            # the unpack iterator holds a buffer export on the view
            del words
            view.release()

    def close(self):
        """Release mmap resources."""
        if self._mmap is not None:
            self._mmap.close()
            self._mmap = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
