"""
Pointer Index — reverse map from target address to source offsets.

One linear pass over every 4-byte-aligned word of the image. A word whose
little-endian value falls inside [base, base + size) is recorded as a
pointer; anything else is discarded. No decoding happens here, so the
index deliberately overcounts: most "pointers" are coincidental and are
weeded out later by the acceptance predicate.

The index serves two purposes:
  • Prune the brute-force scan to addresses something points at.
  • Walk backwards through structure relationships (orphan search).
"""

import logging
from typing import Optional, Callable, Iterator

from .rom import RomImage

logger = logging.getLogger(__name__)

# Report progress every 64 KB of image advanced
PROGRESS_BYTES = 1 << 16


class PointerIndex:
    """
    Immutable after construction; build it with build_pointer_index().

    Targets iterate in first-discovery order, and each target's sources
    are in ascending offset order; both follow from the single forward
    pass, which makes every scan built on top of it deterministic.
    """

    def __init__(self, base: int, entries: dict[int, list[int]], source_count: int):
        self._base = base
        self._entries = entries
        self._source_count = source_count

    @property
    def base(self) -> int:
        return self._base

    @property
    def source_count(self) -> int:
        """Total number of pointer cells (sum over all targets)."""
        return self._source_count

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: int) -> bool:
        return address in self._entries

    def is_target(self, address: int) -> bool:
        return address in self._entries

    def targets(self) -> Iterator[int]:
        """Distinct target addresses in first-discovery order."""
        return iter(self._entries)

    def sources(self, address: int) -> tuple[int, ...]:
        """Offsets of every aligned cell pointing at `address`."""
        return tuple(self._entries.get(address, ()))


def build_pointer_index(
    image: RomImage,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> PointerIndex:
    """
    Build the PointerIndex for `image`.

    Args:
        image:        ROM image to index.
        on_progress:  Called as (bytes_done, total_bytes) every 64 KB.
    """
    base = image.base
    end = base + image.size
    total = image.size
    entries: dict[int, list[int]] = {}
    source_count = 0

    for offset, value in image.iter_words():
        if base <= value < end:
            bucket = entries.get(value)
            if bucket is None:
                entries[value] = [offset]
            else:
                bucket.append(offset)
            source_count += 1
        if on_progress and offset % PROGRESS_BYTES == 0:
            on_progress(offset, total)

    if on_progress:
        on_progress(total, total)

    logger.info(
        "Pointer index: %d targets from %d pointer cells",
        len(entries), source_count,
    )
    return PointerIndex(base, entries, source_count)
