"""
errors.py - Exception taxonomy for media transforms.

Compression and scrubbing catch these internally and fall back to the
original bytes. Conversion and merge let them propagate to the caller.
"""


class MediaError(Exception):
    """Base class for all transform failures."""


class DecodeError(MediaError):
    """Input is not a well-formed instance of its declared format."""


class EncodeError(MediaError):
    """Target format cannot represent the given buffer or content."""


class UnsupportedConversionError(MediaError):
    """Format pair is not in the conversion table."""


class MergeError(MediaError):
    """An input document could not be merged."""


class UnsupportedFormatError(MediaError, ValueError):
    """Format name outside PDF, JPG, PNG, WEBP, DOCX, SVG."""
