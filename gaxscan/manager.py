"""
Rip Manager — Orchestrates loading, scanning, renaming and exporting.
"""

import os
import time
import logging
from dataclasses import dataclass, field
from typing import Optional, Callable

from .errors import ConfigError
from .export import export_song, write_decode_log, write_report
from .filters import rename_duplicates
from .rom import RomImage
from .scanner import RomScanner, ScanConfig, ScanResult
from .songs import Song

logger = logging.getLogger(__name__)

REPORT_NAME = "songs.json"


@dataclass
class RipSession:
    """Represents one complete run over a ROM image."""
    session_id: str
    input_path: str
    output_dir: str
    start_time: float = 0.0
    end_time: float = 0.0
    version_label: str = ""
    version_found: bool = False
    version_forced: bool = False
    songs: list[Song] = field(default_factory=list)
    renamed: int = 0
    exported_files: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)      # Song labels
    report_path: str = ""

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def duration_human(self) -> str:
        d = self.duration
        if d < 60:
            return f"{d:.1f}s"
        if d < 3600:
            return f"{d / 60:.1f}m"
        return f"{d / 3600:.1f}h"

    @property
    def orphan_count(self) -> int:
        return sum(1 for s in self.songs if s.is_orphan)


class RipManager:
    """High-level manager: one ROM in, songs and sample files out."""

    def __init__(self, config: Optional[ScanConfig] = None):
        self.config = config or ScanConfig()
        self.scanner = RomScanner(self.config)
        self.current_session: Optional[RipSession] = None
        self._on_export: Optional[Callable] = None

    def set_callbacks(self, on_progress=None, on_song_found=None, on_export=None):
        self.scanner.set_progress_callback(on_progress)
        self.scanner.set_song_found_callback(on_song_found)
        self._on_export = on_export

    def run(
        self,
        input_path: str,
        output_dir: str,
        log_dir: str = "",
        channels: int = 1,
        preview_only: bool = False,
        address: Optional[int] = None,
    ) -> RipSession:
        """
        Scan `input_path` and export what was found.

        Raises ImageLoadError if the ROM cannot be read and ConfigError for
        invalid arguments; nothing else escapes.
        """
        if not input_path:
            raise ConfigError("No input ROM given")
        if not preview_only and not output_dir:
            raise ConfigError("No output directory given")
        if channels not in (1, 2):
            raise ConfigError(f"Channel count must be 1 or 2, got {channels}")

        session = RipSession(
            session_id=f"rip_{int(time.time())}",
            input_path=input_path,
            output_dir=output_dir,
            start_time=time.time(),
        )
        self.current_session = session

        with RomImage.open(input_path, base=self.config.base_address) as image:
            if address is not None:
                result = self._decode_single(image, address)
            else:
                result = self.scanner.scan(image)

            session.version_label = result.version.label
            session.version_found = result.version_found
            session.version_forced = result.version_forced
            session.renamed = rename_duplicates(result.songs)
            session.songs = result.song_list

            if log_dir:
                self.write_decode_logs(image, session.songs, log_dir)

        if not preview_only and session.songs:
            self.export_songs(session, channels)
            session.report_path = write_report(
                os.path.join(output_dir, REPORT_NAME),
                session.songs,
                session.version_label,
                session.version_found,
                version_forced=session.version_forced,
                image_name=os.path.basename(input_path),
                failed=session.failed,
            )

        session.end_time = time.time()
        return session

    def _decode_single(self, image: RomImage, address: int) -> ScanResult:
        if not image.contains_address(address):
            raise ConfigError(
                f"Address 0x{address:08X} outside image "
                f"0x{image.base:08X}-0x{image.end_address:08X}"
            )
        index = self.scanner.build_index(image)
        version, found = self.scanner.resolve_version(image, index)
        result = ScanResult(
            version=version,
            version_found=found,
            version_forced=self.config.forced_version is not None,
        )
        song = self.scanner.decode_at(image, address, version)
        if song is not None:
            result.songs[song.offset] = song
        return result

    def write_decode_logs(self, image: RomImage, songs: list[Song], log_dir: str):
        for song in songs:
            lines = self.scanner.trace_song(image, song)
            try:
                write_decode_log(log_dir, song, lines)
            except OSError as e:
                logger.error("%s: cannot write decode log: %s", song.label, e)

    def export_songs(self, session: RipSession, channels: int):
        """Export every song; one song failing never stops the others."""
        total = len(session.songs)
        for i, song in enumerate(session.songs):
            if self._on_export:
                self._on_export(i, total, song)
            try:
                session.exported_files.extend(
                    export_song(song, session.output_dir, channels=channels)
                )
            except Exception as e:
                session.failed.append(song.label)
                logger.error(
                    "Export failed for %s (%s): %s",
                    song.label, song.display_name, e, exc_info=True,
                )
        if self._on_export:
            self._on_export(total, total, None)
