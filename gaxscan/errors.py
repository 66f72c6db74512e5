"""
Exception hierarchy.

Only ImageLoadError and ConfigError are meant to reach the top level.
DecodeError never escapes a single trial: the scanner turns it into a
Rejected outcome.
"""


class GaxScanError(Exception):
    """Base class for all gaxscan errors."""


class DecodeError(GaxScanError):
    """Bytes at an offset do not form the structure being decoded."""

    def __init__(self, message: str, offset: int = -1):
        super().__init__(message)
        self.offset = offset


class OutOfRangeError(DecodeError):
    """A read or pointer fell outside the image."""


class ImageLoadError(GaxScanError):
    """The ROM image could not be opened or read completely."""


class ConfigError(GaxScanError):
    """Invalid or incomplete configuration."""
