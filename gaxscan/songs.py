"""
Song records produced by decoders and consumed by the scanner, the orphan
finder and the export pipeline.
"""

from dataclasses import dataclass, field
from typing import Optional

from .versions import VersionInfo, layout_named


@dataclass
class SampleEntry:
    """One entry of a song's sample set."""
    index: int
    address: Optional[int]          # None for a null data pointer
    data: bytes = b""

    @property
    def has_data(self) -> bool:
        return self.address is not None and len(self.data) > 0


@dataclass
class Song:
    """A GAX song header found in the ROM."""
    offset: int                     # Image offset (RecordSet key)
    address: int                    # Absolute address (base + offset)
    layout: str                     # "legacy" or "current"
    version: VersionInfo
    name: str                       # Raw name string, e.g. '"Title" © Artist'
    display_name: str = ""          # User-facing name, unique after rename
    title: str = ""
    artist: str = ""
    num_channels: int = 0
    num_rows_per_pattern: int = 0
    num_patterns_per_channel: int = 0
    loop_point: int = 0
    volume: int = 0
    sample_rate: int = 0
    fx_sample_rate: int = 0
    num_fx_channels: int = 0
    channels: list[int] = field(default_factory=list)      # Pattern-table addresses
    samples: list[SampleEntry] = field(default_factory=list)
    sub_pointers: dict[str, Optional[int]] = field(default_factory=dict)
    is_orphan: bool = False         # Found through a backward chain

    @property
    def instrument_set(self) -> Optional[int]:
        return self.sub_pointers.get("instrument_set")

    @property
    def signed_samples(self) -> bool:
        layout = layout_named(self.layout)
        return layout is not None and layout.signed_samples

    @property
    def label(self) -> str:
        return f"{self.address:08X}"

    @property
    def sample_count(self) -> int:
        return sum(1 for s in self.samples if s.has_data)

    def summary(self) -> dict:
        return {
            "offset": f"0x{self.offset:X}",
            "address": f"0x{self.address:08X}",
            "layout": self.layout,
            "version": self.version.label,
            "name": self.name,
            "display_name": self.display_name,
            "title": self.title,
            "artist": self.artist,
            "channels": self.num_channels,
            "rows_per_pattern": self.num_rows_per_pattern,
            "patterns_per_channel": self.num_patterns_per_channel,
            "sample_rate": self.sample_rate,
            "samples": self.sample_count,
            "orphan": self.is_orphan,
            "sub_pointers": {
                k: (f"0x{v:08X}" if v is not None else None)
                for k, v in self.sub_pointers.items()
            },
        }

    @property
    def log_line(self) -> str:
        return f"{self.label}: {self.title} - {self.artist}"
