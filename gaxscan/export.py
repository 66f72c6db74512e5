"""
Export — turn accepted songs into files.

  • One 8-bit PCM WAV per sample with data
  • A JSON report of the whole session
  • Optional per-song decode logs (field-by-field trace of the header)

Callers export song by song; a failure here must only ever cost the song
being exported (see RipManager.export_songs).
"""

import os
import json
import time
import wave
import logging
from typing import Optional

from .filters import safe_filename
from .songs import Song
from .versions import SAMPLE_RATE

logger = logging.getLogger(__name__)

# Legacy GAX stores signed 8-bit PCM; WAV wants unsigned
_SIGNED_TO_UNSIGNED = bytes((i + 128) & 0xFF for i in range(256))


def export_sample(
    directory: str,
    filename: str,
    data: bytes,
    sample_rate: int = SAMPLE_RATE,
    channels: int = 1,
) -> str:
    """Write unsigned 8-bit PCM `data` to <directory>/<filename>.wav."""
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, filename + ".wav")
    with wave.open(path, "wb") as w:
        w.setnchannels(channels)
        w.setsampwidth(1)
        w.setframerate(sample_rate)
        w.writeframes(data)
    return path


def sample_directory(output_dir: str, song: Song) -> str:
    folder = song.display_name
    if song.artist:
        folder = f"{folder} - {song.artist}"
    return os.path.join(output_dir, "samples", safe_filename(folder, song.label))


def export_song(song: Song, output_dir: str, channels: int = 1) -> list[str]:
    """
    Export every sample of `song` that has data.

    Returns the written paths. Null sample pointers are skipped.
    """
    directory = sample_directory(output_dir, song)
    paths = []
    for sample in song.samples:
        if not sample.has_data:
            continue
        data = sample.data
        if song.signed_samples:
            data = data.translate(_SIGNED_TO_UNSIGNED)
        paths.append(export_sample(
            directory,
            f"{sample.index}_{sample.address:08X}",
            data,
            sample_rate=SAMPLE_RATE,
            channels=channels,
        ))
    logger.debug("%s: exported %d samples", song.label, len(paths))
    return paths


def write_decode_log(log_dir: str, song: Song, lines: list[str]) -> str:
    """Write a song's decode trace to <log_dir>/<display name>.txt."""
    os.makedirs(log_dir, exist_ok=True)
    path = os.path.join(log_dir, safe_filename(song.display_name, song.label) + ".txt")
    with open(path, "w", encoding="utf-8") as f:
        f.write(f"{song.log_line}\n")
        for line in lines:
            f.write(line + "\n")
    return path


def write_report(
    path: str,
    songs: list[Song],
    version_label: str,
    version_found: bool,
    version_forced: bool = False,
    image_name: str = "",
    failed: Optional[list[str]] = None,
) -> str:
    """Write the session report as JSON."""
    report = {
        "image": image_name,
        "date": time.strftime("%Y-%m-%d %H:%M:%S"),
        "version": version_label,
        "version_found": version_found,
        "version_forced": version_forced,
        "total_songs": len(songs),
        "orphans": sum(1 for s in songs if s.is_orphan),
        "failed_exports": failed or [],
        "songs": [s.summary() for s in songs],
    }
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, ensure_ascii=False)
    return path
