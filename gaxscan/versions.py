"""
GAX Version Database — version markers, song layouts, orphan chains.

DESIGN RATIONALE
────────────────
Everything that differs between GAX Sound Engine releases is kept as data:
  • VERSION_PATTERN     — the engine's embedded version string
  • SONG_LAYOUTS        — header layout per major version (legacy / current)
  • ORPHAN_CHAINS       — backward pointer chains used to reach songs that
                          nothing points at directly
  • HEADER_CORRECTIONS  — per-release tweaks to the first chain hop

The chain offsets and corrections were measured on known ROM revisions.
They are heuristics: add an entry for a new revision rather than bending
an existing one.
"""

import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class VersionInfo:
    """GAX Sound Engine version, e.g. 'GAX Sound Engine v3.05A'."""
    major: int
    minor: int = 0
    variant: str = ""          # build letter(s) after the minor number
    raw: str = ""              # full version string as found in the ROM

    @property
    def label(self) -> str:
        return f"{self.major}.{self.minor:02d}{self.variant}"

    @property
    def key(self) -> tuple[int, int, str]:
        return (self.major, self.minor, self.variant)


# ══════════════════════════════════════════════════════════════
#  V E R S I O N   M A R K E R
# ══════════════════════════════════════════════════════════════

VERSION_PATTERN = re.compile(rb"GAX Sound Engine v?(\d+)\.(\d+)([A-Za-z]*)")
VERSION_MAX_LENGTH = 0x100

# Used when no version string is found in the ROM
DEFAULT_VERSION = VersionInfo(major=3)


def parse_version_string(raw: bytes) -> Optional[VersionInfo]:
    """Parse a version string that must start with the engine banner."""
    m = VERSION_PATTERN.match(raw)
    if not m:
        return None
    return VersionInfo(
        major=int(m.group(1)),
        minor=int(m.group(2)),
        variant=m.group(3).decode("ascii"),
        raw=raw.decode("latin-1"),
    )


# ══════════════════════════════════════════════════════════════
#  S O N G   L A Y O U T S
# ══════════════════════════════════════════════════════════════
#
# Common header (both layouts):
#   0x00 u16 channel count        0x06 u16 loop point
#   0x02 u16 rows per pattern     0x08 u16 volume
#   0x04 u16 patterns per channel 0x0A u16 sample count
#   0x0C ptr (layout specific)    0x10 ptr instrument set
#   0x14 ptr sample set           0x18 u16 sample rate
# followed by the channel pattern-table pointers and the inline name.

@dataclass(frozen=True)
class SongLayout:
    """Describes one song header layout."""
    name: str
    majors: tuple[int, ...]
    pointer_fields: tuple[tuple[str, int], ...]   # (name, header offset)
    channel_table: int                            # first channel pointer
    has_fx: bool = False                          # FX sample rate + channel count
    signed_samples: bool = False                  # 8-bit signed PCM


LEGACY_LAYOUT = SongLayout(
    name="legacy", majors=(1, 2),
    pointer_fields=(
        ("sound_handler", 0x0C),
        ("instrument_set", 0x10),
        ("sample_set", 0x14),
    ),
    channel_table=0x1C,
    has_fx=False, signed_samples=True,
)

CURRENT_LAYOUT = SongLayout(
    name="current", majors=(3,),
    pointer_fields=(
        ("sequence_data", 0x0C),
        ("instrument_set", 0x10),
        ("sample_set", 0x14),
    ),
    channel_table=0x20,
    has_fx=True, signed_samples=False,
)

SONG_LAYOUTS: list[SongLayout] = [LEGACY_LAYOUT, CURRENT_LAYOUT]


def layout_for(major: int) -> Optional[SongLayout]:
    for layout in SONG_LAYOUTS:
        if major in layout.majors:
            return layout
    return None


def layout_named(name: str) -> Optional[SongLayout]:
    for layout in SONG_LAYOUTS:
        if layout.name == name:
            return layout
    return None


# ══════════════════════════════════════════════════════════════
#  O R P H A N   C H A I N S
# ══════════════════════════════════════════════════════════════
#
# Each hop is "distance from the pointer field to the header of the
# structure holding it". Walking starts at a song's instrument-set address.
#
# current: song.instrument_set ◄── song header                       (1 hop)
# legacy:  instrument set ◄── instrument table (+0x08)
#                          ◄── sound handler (+0x04)
#                          ◄── song header (+0x0C)                    (3 hops)

MAX_CHAIN_HOPS = 3


@dataclass(frozen=True)
class OrphanChain:
    name: str
    majors: tuple[int, ...]
    hops: tuple[int, ...]


ORPHAN_CHAINS: list[OrphanChain] = [
    OrphanChain(name="sound-handler", majors=(1, 2), hops=(0x08, 0x04, 0x0C)),
    OrphanChain(name="instrument-set", majors=(3,), hops=(0x10,)),
]

# (major, minor, variant) → bytes added to the first hop
HEADER_CORRECTIONS: dict[tuple[int, int, str], int] = {
    (2, 2, "A"): 4,
}


def chain_for(
    version: VersionInfo,
    chains: Optional[list[OrphanChain]] = None,
    corrections: Optional[dict[tuple[int, int, str], int]] = None,
) -> Optional[tuple[int, ...]]:
    """
    Hop offsets to use for `version`, with any header correction applied
    to the first hop. None if no chain is known for this major version.
    """
    if chains is None:
        chains = ORPHAN_CHAINS
    if corrections is None:
        corrections = HEADER_CORRECTIONS
    for chain in chains:
        if version.major in chain.majors:
            hops = list(chain.hops[:MAX_CHAIN_HOPS])
            if not hops:
                return None
            hops[0] += corrections.get(version.key, 0)
            return tuple(hops)
    return None


# ══════════════════════════════════════════════════════════════
#  Audio constants
# ══════════════════════════════════════════════════════════════

SAMPLE_RATE = 15769
