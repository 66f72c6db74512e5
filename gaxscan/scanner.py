"""
ROM Scanner Engine — brute-force discovery of GAX songs.

HOW THE SCAN WORKS
──────────────────
1.  Build the PointerIndex: every aligned 4-byte word that resolves inside
    the ROM is a potential pointer.
2.  Version probe: try the version-string parser at each distinct pointer
    target until one matches. If none does, fall back to the configured
    default version.
3.  Structure scan: try a full song decode at each distinct pointer target.
    Real songs are always referenced by something, so non-targets are never
    tried. A decoded song is kept only if its name passes the acceptance
    predicate ('"Title" © Artist').
4.  Orphan search: walk backwards from each distinct instrument set to find
    songs no pointer references directly (see orphans.py).

Every decode runs as an isolated trial (attempt.py); a failed or rejected
trial is simply skipped, never logged as an error, never aborts the scan.
Targets are visited in first-discovery order, so repeated scans of the same
image yield the same songs in the same order.
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Optional, Callable

from .attempt import run_trial, Outcome
from .decoder import Decoder, GaxDecoder
from .errors import ConfigError
from .filters import reject_reason
from .orphans import OrphanFinder
from .pointer_index import PointerIndex, build_pointer_index
from .rom import RomImage, ROM_BASE
from .songs import Song
from .versions import (
    VersionInfo,
    OrphanChain,
    DEFAULT_VERSION,
    ORPHAN_CHAINS,
    HEADER_CORRECTIONS,
    chain_for,
    layout_for,
)

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
#  Data Classes
# ─────────────────────────────────────────────────────────────

@dataclass
class ScanConfig:
    """Configuration for one scanning session."""
    base_address: int = ROM_BASE
    default_version: VersionInfo = DEFAULT_VERSION
    forced_version: Optional[VersionInfo] = None     # Skip the version probe
    find_orphans: bool = True
    progress_targets: int = 16                       # Report every N targets
    chains: list[OrphanChain] = field(default_factory=lambda: list(ORPHAN_CHAINS))
    header_corrections: dict = field(default_factory=lambda: dict(HEADER_CORRECTIONS))

    def validate(self):
        if self.progress_targets <= 0:
            raise ConfigError("progress_targets must be positive")
        for version in (self.default_version, self.forced_version):
            if version is not None and layout_for(version.major) is None:
                raise ConfigError(f"Unsupported GAX major version {version.major}")


@dataclass
class ScanProgress:
    phase: str = "idle"              # "index", "version", "scan", "orphans", "done"
    processed: int = 0
    total: int = 0
    songs_found: int = 0
    elapsed_time: float = 0.0
    is_scanning: bool = False
    status_message: str = "Ready"

    @property
    def progress_percent(self) -> float:
        if self.total == 0:
            return 0.0
        return min(100.0, (self.processed / self.total) * 100)


@dataclass
class ScanResult:
    """Everything a scanning session produced."""
    version: VersionInfo
    version_found: bool
    version_forced: bool = False                     # Set by ScanConfig.forced_version
    songs: dict[int, Song] = field(default_factory=dict)
    orphans: list[Song] = field(default_factory=list)
    target_count: int = 0
    pointer_count: int = 0
    elapsed_time: float = 0.0

    @property
    def song_list(self) -> list[Song]:
        return list(self.songs.values())


# ─────────────────────────────────────────────────────────────
#  Scanner
# ─────────────────────────────────────────────────────────────

class RomScanner:
    """
    Scans a ROM image for GAX songs.

    Usage:
        scanner = RomScanner()
        scanner.set_progress_callback(print)
        result = scanner.scan(image)
    """

    def __init__(self, config: Optional[ScanConfig] = None, decoder: Optional[Decoder] = None):
        self.config = config or ScanConfig()
        self.config.validate()
        self.decoder = decoder or GaxDecoder()
        self.progress = ScanProgress()
        self._on_progress: Optional[Callable] = None
        self._on_song_found: Optional[Callable] = None
        self._start_time = 0.0

    def set_progress_callback(self, cb):
        self._on_progress = cb

    def set_song_found_callback(self, cb):
        self._on_song_found = cb

    def _notify_progress(self):
        if self._start_time:
            self.progress.elapsed_time = time.time() - self._start_time
        if self._on_progress:
            self._on_progress(self.progress)

    def _set_phase(self, phase: str, total: int, message: str):
        self.progress.phase = phase
        self.progress.processed = 0
        self.progress.total = total
        self.progress.status_message = message
        self._notify_progress()

    def _song_found(self, song: Song):
        self.progress.songs_found += 1
        if self._on_song_found:
            self._on_song_found(song)

    # ── Step 1: pointer index ────────────────────────────────

    def build_index(self, image: RomImage) -> PointerIndex:
        self._set_phase("index", image.size, "Indexing pointers...")

        def on_bytes(done: int, total: int):
            self.progress.processed = done
            self._notify_progress()

        return build_pointer_index(image, on_progress=on_bytes)

    # ── Step 2: version probe ────────────────────────────────

    def probe_version(self, image: RomImage, index: PointerIndex) -> Optional[VersionInfo]:
        """First version marker found at a pointer target, or None."""
        self._set_phase("version", len(index), "Searching for GAX version string...")
        every = self.config.progress_targets

        for n, address in enumerate(index.targets(), 1):
            offset = address - image.base
            outcome = run_trial(
                offset,
                lambda ctx: self.decoder.probe_version(image, offset, ctx),
            )
            if outcome.accepted:
                version = outcome.record
                logger.info("0x%08X:", address)
                logger.info("%s", version.raw)
                logger.info("Parsed GAX version: %d (%s)", version.major, version.label)
                self.progress.processed = n
                self._notify_progress()
                return version
            if n % every == 0:
                self.progress.processed = n
                self._notify_progress()

        self.progress.processed = len(index)
        self._notify_progress()
        return None

    # ── Step 3: structure scan ───────────────────────────────

    def try_song(self, image: RomImage, offset: int, version: VersionInfo, trace: bool = False) -> Outcome:
        """One isolated decode trial of a song header at `offset`."""
        return run_trial(
            offset,
            lambda ctx: self.decoder.decode_song(image, offset, version, ctx),
            accept=reject_reason,
            trace=trace,
        )

    def scan_songs(
        self, image: RomImage, index: PointerIndex, version: VersionInfo,
    ) -> dict[int, Song]:
        """Decode a song at every distinct pointer target; keep accepted ones."""
        self._set_phase("scan", len(index), "Scanning pointer targets...")
        every = self.config.progress_targets
        songs: dict[int, Song] = {}

        for n, address in enumerate(index.targets(), 1):
            offset = address - image.base
            if offset not in songs:
                outcome = self.try_song(image, offset, version)
                if outcome.accepted:
                    song = outcome.record
                    songs[offset] = song
                    logger.info("%s", song.log_line)
                    self._song_found(song)
            if n % every == 0:
                self.progress.processed = n
                self._notify_progress()

        self.progress.processed = len(index)
        self._notify_progress()
        return songs

    # ── Step 4: orphans ──────────────────────────────────────

    def find_orphans(
        self, image: RomImage, index: PointerIndex, version: VersionInfo,
        songs: dict[int, Song],
    ) -> list[Song]:
        hops = chain_for(version, self.config.chains, self.config.header_corrections)
        if hops is None:
            logger.info("No orphan chain known for GAX %s, skipping", version.label)
            return []

        starts = OrphanFinder.distinct_instrument_sets(songs)
        self._set_phase("orphans", len(starts), "Searching for unreferenced songs...")

        def on_walked(done: int, _total: int):
            self.progress.processed = done
            self._notify_progress()

        finder = OrphanFinder(image, index, self.decoder, version, hops, on_progress=on_walked)
        found = finder.find(songs)
        for song in found:
            self._song_found(song)
        self.progress.processed = len(starts)
        self._notify_progress()
        return found

    # ── Full pipeline ────────────────────────────────────────

    def resolve_version(self, image: RomImage, index: PointerIndex) -> tuple[VersionInfo, bool]:
        """
        (version to use, whether it was found in the ROM).

        A forced version is never "found"; ScanResult.version_forced tells
        it apart from an assumed default.
        """
        if self.config.forced_version is not None:
            logger.info("Using forced GAX version %s", self.config.forced_version.label)
            return self.config.forced_version, False

        version = self.probe_version(image, index)
        if version is None:
            default = self.config.default_version
            logger.info(
                "GAX version string not found. Assuming GAX version %d", default.major,
            )
            return default, False
        if layout_for(version.major) is None:
            default = self.config.default_version
            logger.warning(
                "GAX version %s is not supported. Assuming GAX version %d",
                version.label, default.major,
            )
            return default, True
        return version, True

    def scan(self, image: RomImage) -> ScanResult:
        """Run the whole pipeline over `image`."""
        self._start_time = time.time()
        self.progress = ScanProgress(is_scanning=True)

        index = self.build_index(image)
        version, found = self.resolve_version(image, index)
        songs = self.scan_songs(image, index, version)

        orphans: list[Song] = []
        if self.config.find_orphans and songs:
            orphans = self.find_orphans(image, index, version, songs)

        elapsed = time.time() - self._start_time
        self.progress.is_scanning = False
        self.progress.phase = "done"
        self.progress.status_message = f"Found {len(songs)} song(s)"
        self._notify_progress()
        logger.info(
            "Scan finished in %.1fs: %d songs (%d orphans)",
            elapsed, len(songs), len(orphans),
        )
        return ScanResult(
            version=version,
            version_found=found,
            version_forced=self.config.forced_version is not None,
            songs=songs,
            orphans=orphans,
            target_count=len(index),
            pointer_count=index.source_count,
            elapsed_time=elapsed,
        )

    def decode_at(self, image: RomImage, address: int, version: VersionInfo) -> Optional[Song]:
        """Decode the single song at `address` without scanning."""
        offset = image.to_offset(address)
        outcome = self.try_song(image, offset, version)
        if not outcome.accepted:
            logger.warning("No song at 0x%08X: %s", address, outcome.reason)
            return None
        song = outcome.record
        logger.info("%s", song.log_line)
        return song

    def trace_song(self, image: RomImage, song: Song) -> list[str]:
        """Re-decode an accepted song with tracing on; returns the decode log."""
        outcome = self.try_song(image, song.offset, song.version, trace=True)
        if not outcome.accepted:
            return []
        return list(outcome.trace)
