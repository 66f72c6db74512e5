"""
Song Filters — acceptance predicate, name parsing, dedup/rename.

THE PROBLEM
───────────
Most pointer targets in a ROM are not song headers, and a garbage header
can still decode without tripping any structural check. GAX songs carry
their credits inline as '"Title" © Artist', so the delimiter '" © ' is
a very selective test for a real song.
"""

import logging
from typing import Optional

from .songs import Song

logger = logging.getLogger(__name__)

NAME_DELIMITER = '" © '
MIN_NAME_LENGTH = 5


def is_plausible_name(name: str) -> bool:
    """Longer than 4 characters and contains the '" © ' delimiter."""
    return len(name) >= MIN_NAME_LENGTH and NAME_DELIMITER in name


def reject_reason(song: Song) -> Optional[str]:
    """Acceptance predicate for decode trials: None accepts the song."""
    if is_plausible_name(song.name):
        return None
    return f"implausible name {song.name[:32]!r}"


def parse_name(name: str) -> tuple[str, str]:
    """
    Split '"Title" © Artist' into ("Title", "Artist").

    Names without the delimiter come back whole as the title.
    """
    head, sep, tail = name.partition(NAME_DELIMITER)
    if not sep:
        return name.strip().strip('"'), ""
    return head.strip().lstrip('"'), tail.strip()


_UNSAFE = '<>:"/\\|?*'


def safe_filename(name: str, fallback: str = "untitled") -> str:
    """Strip characters that are not allowed in file names."""
    cleaned = "".join(
        "_" if c in _UNSAFE or ord(c) < 32 else c for c in name
    ).strip(" .")
    return cleaned or fallback


def rename_duplicates(songs: dict[int, Song]) -> int:
    """
    Make every display name unique.

    Songs sharing a display name are each prefixed with their address
    as 8 hex digits and an underscore; unique names are left alone.
    A prefixed name can collide with a name already in use, so grouping
    repeats until every name is unique. Returns the number of renamed songs.
    """
    renamed: set[int] = set()
    while True:
        groups: dict[str, list[Song]] = {}
        for song in songs.values():
            groups.setdefault(song.display_name, []).append(song)

        collisions = [(name, members) for name, members in groups.items() if len(members) > 1]
        if not collisions:
            return len(renamed)

        for name, members in collisions:
            for song in members:
                song.display_name = f"{song.label}_{name}"
                renamed.add(song.offset)
            logger.debug("Renamed %d songs sharing name %r", len(members), name)
