"""
Orphan Finder — recover songs that nothing points at directly.

WHY
───
The structure scan only tries addresses that some aligned cell points at.
A few songs are never referenced that way: their only reference lives
outside the scanned window or is computed at run time. Such a song still
shares structures with songs we did find, most often the instrument set,
so we can reach it by walking pointers BACKWARDS from that structure.

HOW
───
Starting at an instrument-set address, each hop:
  1. Looks up every cell pointing at the current address (PointerIndex).
  2. Subtracts the hop's fixed distance "pointer field → structure header"
     to get the header of the structure holding that cell.
  3. Intermediate hops keep only headers that are themselves pointer
     targets; the final hop yields song-header candidates.

Final candidates already in the RecordSet, or that are pointer targets
(the direct scan already tried those), are skipped. The rest get a full,
isolated decode trial with the same acceptance predicate as the scan.

GAX 3 needs one hop (instrument-set field → song header). GAX 1/2 need
three, through an instrument table and a sound handler; see versions.py.
"""

import logging
from typing import Optional, Callable

from .attempt import run_trial
from .decoder import Decoder
from .filters import reject_reason
from .pointer_index import PointerIndex
from .rom import RomImage
from .songs import Song
from .versions import VersionInfo, MAX_CHAIN_HOPS

logger = logging.getLogger(__name__)


def walk_chain(
    image: RomImage,
    index: PointerIndex,
    start: int,
    hops: tuple[int, ...],
) -> list[int]:
    """
    Follow `hops` backwards from address `start`.

    Returns the final-hop candidate addresses in first-discovery order,
    without duplicates. Intermediate addresses must be pointer targets.
    """
    if not hops or len(hops) > MAX_CHAIN_HOPS:
        raise ValueError(f"Chain must have 1..{MAX_CHAIN_HOPS} hops, got {len(hops)}")

    frontier = [start]
    last = len(hops) - 1
    for depth, distance in enumerate(hops):
        seen: set[int] = set()
        next_frontier = []
        for address in frontier:
            for source in index.sources(address):
                candidate = image.to_address(source) - distance
                if candidate in seen or not image.contains_address(candidate):
                    continue
                if depth < last and not index.is_target(candidate):
                    continue
                seen.add(candidate)
                next_frontier.append(candidate)
        if not next_frontier:
            return []
        frontier = next_frontier
    return frontier


class OrphanFinder:
    """
    Runs the backward-chain search for one scanning session.

    Usage:
        finder = OrphanFinder(image, index, decoder, version, hops)
        new_songs = finder.find(songs)     # also inserts into `songs`
    """

    def __init__(
        self,
        image: RomImage,
        index: PointerIndex,
        decoder: Decoder,
        version: VersionInfo,
        hops: tuple[int, ...],
        on_progress: Optional[Callable[[int, int], None]] = None,
    ):
        self._image = image
        self._index = index
        self._decoder = decoder
        self._version = version
        self._hops = hops
        self._on_progress = on_progress
        self.candidates_tried = 0
        self._tried: set[int] = set()

    @staticmethod
    def distinct_instrument_sets(songs: dict[int, Song]) -> list[int]:
        """Distinct instrument-set addresses, in RecordSet order."""
        seen: dict[int, None] = {}
        for song in songs.values():
            value = song.instrument_set
            if value is not None:
                seen.setdefault(value, None)
        return list(seen)

    def find(self, songs: dict[int, Song]) -> list[Song]:
        """
        Search from every distinct instrument set of the songs found so far.

        Accepted orphans are inserted into `songs` (keyed by offset) and
        also returned, in discovery order. `on_progress` is called as
        (instrument sets walked, total) after each one.
        """
        found: list[Song] = []
        starts = self.distinct_instrument_sets(songs)
        for n, start in enumerate(starts, 1):
            for candidate in walk_chain(self._image, self._index, start, self._hops):
                song = self._try_candidate(candidate, songs)
                if song is not None:
                    songs[song.offset] = song
                    found.append(song)
                    logger.info("%s (orphan)", song.log_line)
            if self._on_progress:
                self._on_progress(n, len(starts))

        logger.info(
            "Orphan search: %d instrument sets, %d candidates tried, %d songs recovered",
            len(starts), self.candidates_tried, len(found),
        )
        return found

    def _try_candidate(self, address: int, songs: dict[int, Song]) -> Optional[Song]:
        offset = self._image.to_offset(address)
        if offset in songs or offset in self._tried or self._index.is_target(address):
            return None

        self._tried.add(offset)
        self.candidates_tried += 1

        outcome = run_trial(
            offset,
            lambda ctx: self._decoder.decode_song(self._image, offset, self._version, ctx),
            accept=reject_reason,
        )
        if not outcome.accepted:
            logger.debug("Orphan candidate 0x%08X rejected: %s", address, outcome.reason)
            return None
        song = outcome.record
        song.is_orphan = True
        return song
