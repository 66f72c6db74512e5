"""
GAX Decoder — interprets bytes at an offset as a version marker or a song.

The scanner only talks to the Decoder interface; GaxDecoder knows the GAX
header layouts from versions.py. Decoders must keep all per-trial state in
the AttemptContext they are handed, and signal malformed input by raising
DecodeError (low-level struct/index errors are tolerated too).
"""

import logging
from typing import Optional

from .attempt import AttemptContext
from .errors import DecodeError
from .filters import parse_name
from .rom import RomImage
from .songs import Song, SampleEntry
from .versions import (
    VersionInfo,
    VERSION_MAX_LENGTH,
    parse_version_string,
    layout_for,
)

logger = logging.getLogger(__name__)


class Decoder:
    """Interface consumed by the scanner and the orphan finder."""

    def probe_version(
        self, image: RomImage, offset: int, ctx: AttemptContext,
    ) -> Optional[VersionInfo]:
        """Recognise a version marker at `offset`, or return None."""
        raise NotImplementedError

    def decode_song(
        self, image: RomImage, offset: int, version: VersionInfo, ctx: AttemptContext,
    ) -> Song:
        """Decode a full song header at `offset`; raise DecodeError if malformed."""
        raise NotImplementedError


class GaxDecoder(Decoder):
    """Decoder for GAX Sound Engine v1/v2 (legacy) and v3 (current) songs."""

    MAX_CHANNELS = 32
    MAX_ROWS = 256
    MAX_PATTERNS = 256
    MAX_SAMPLES = 256
    MAX_NAME_LENGTH = 0x100
    MAX_SAMPLE_LENGTH = 0x100000       # 1 MB of 8-bit PCM
    SAMPLE_ENTRY_SIZE = 8              # ptr data + u32 length

    # ── Version marker ───────────────────────────────────────

    def probe_version(self, image, offset, ctx):
        raw = image.read_cstring(offset, VERSION_MAX_LENGTH)
        if not raw:
            return None
        version = parse_version_string(raw)
        if version is not None:
            ctx.log(image.to_address(offset), "version", version.raw)
        return version

    # ── Song header ──────────────────────────────────────────

    def decode_song(self, image, offset, version, ctx):
        layout = layout_for(version.major)
        if layout is None:
            raise DecodeError(f"Unsupported GAX major version {version.major}", offset)

        num_channels = self._u16(image, ctx, offset, 0x00, "num_channels")
        if not 1 <= num_channels <= self.MAX_CHANNELS:
            raise DecodeError(f"Bad channel count {num_channels}", offset)
        num_rows = self._u16(image, ctx, offset, 0x02, "num_rows_per_pattern")
        if not 1 <= num_rows <= self.MAX_ROWS:
            raise DecodeError(f"Bad row count {num_rows}", offset)
        num_patterns = self._u16(image, ctx, offset, 0x04, "num_patterns_per_channel")
        if not 1 <= num_patterns <= self.MAX_PATTERNS:
            raise DecodeError(f"Bad pattern count {num_patterns}", offset)
        loop_point = self._u16(image, ctx, offset, 0x06, "loop_point")
        if loop_point > num_patterns:
            raise DecodeError(f"Loop point {loop_point} past end", offset)
        volume = self._u16(image, ctx, offset, 0x08, "volume")
        num_samples = self._u16(image, ctx, offset, 0x0A, "num_samples")
        if num_samples > self.MAX_SAMPLES:
            raise DecodeError(f"Bad sample count {num_samples}", offset)

        sub_pointers: dict[str, Optional[int]] = {}
        for name, field_offset in layout.pointer_fields:
            required = name != "sample_set" or num_samples > 0
            sub_pointers[name] = self._pointer(
                image, ctx, offset + field_offset, name, required=required,
            )

        sample_rate = self._u16(image, ctx, offset, 0x18, "sample_rate")
        fx_sample_rate = 0
        num_fx_channels = 0
        if layout.has_fx:
            fx_sample_rate = self._u16(image, ctx, offset, 0x1A, "fx_sample_rate")
            num_fx_channels = image.u8(offset + 0x1C)
            ctx.log(image.to_address(offset + 0x1C), "num_fx_channels", num_fx_channels)

        channels = []
        for i in range(num_channels):
            field_offset = offset + layout.channel_table + 4 * i
            channels.append(
                self._pointer(image, ctx, field_offset, f"channel[{i}]", required=True)
            )

        name = self._read_name(image, ctx, offset + layout.channel_table + 4 * num_channels)
        samples = self._read_samples(
            image, ctx, sub_pointers.get("sample_set"), num_samples,
        )

        title, artist = parse_name(name)
        return Song(
            offset=offset,
            address=image.to_address(offset),
            layout=layout.name,
            version=version,
            name=name,
            display_name=title,
            title=title,
            artist=artist,
            num_channels=num_channels,
            num_rows_per_pattern=num_rows,
            num_patterns_per_channel=num_patterns,
            loop_point=loop_point,
            volume=volume,
            sample_rate=sample_rate,
            fx_sample_rate=fx_sample_rate,
            num_fx_channels=num_fx_channels,
            channels=channels,
            samples=samples,
            sub_pointers=sub_pointers,
        )

    # ── Field readers ────────────────────────────────────────

    @staticmethod
    def _u16(image: RomImage, ctx: AttemptContext, offset: int, rel: int, label: str) -> int:
        value = image.u16(offset + rel)
        ctx.log(image.to_address(offset + rel), label, value)
        return value

    @staticmethod
    def _pointer(
        image: RomImage, ctx: AttemptContext, field_offset: int, label: str,
        required: bool,
    ) -> Optional[int]:
        value = image.u32(field_offset)
        if image.contains_address(value):
            ctx.relocate(field_offset, value)
            ctx.log(image.to_address(field_offset), label, f"0x{value:08X}")
            return value
        if required:
            raise DecodeError(f"{label}: invalid pointer 0x{value:08X}", field_offset)
        ctx.log(image.to_address(field_offset), label, "null")
        return None

    def _read_name(self, image: RomImage, ctx: AttemptContext, offset: int) -> str:
        raw = image.read_cstring(offset, self.MAX_NAME_LENGTH)
        if raw is None:
            raise DecodeError("Unterminated song name", offset)
        name = raw.decode("latin-1")
        ctx.log(image.to_address(offset), "name", repr(name))
        return name

    def _read_samples(
        self, image: RomImage, ctx: AttemptContext, sample_set: Optional[int],
        count: int,
    ) -> list[SampleEntry]:
        if sample_set is None or count == 0:
            return []
        table = image.to_offset(sample_set)
        samples = []
        for i in range(count):
            entry = table + i * self.SAMPLE_ENTRY_SIZE
            address = self._pointer(image, ctx, entry, f"sample[{i}]", required=False)
            length = image.u32(entry + 4)
            if address is None:
                samples.append(SampleEntry(index=i, address=None))
                continue
            if length > self.MAX_SAMPLE_LENGTH:
                raise DecodeError(f"sample[{i}]: bad length {length}", entry + 4)
            data_offset = image.to_offset(address)
            data = ctx.cached(
                ("sample", address, length),
                lambda: image.read_at(data_offset, length),
            )
            ctx.log(image.to_address(entry + 4), f"sample[{i}].length", length)
            samples.append(SampleEntry(index=i, address=address, data=data))
        return samples
