"""
Media Engine - client-side media transforms.

Size-targeted compression, color-based background removal, metadata
scrubbing, format conversion and PDF merging. Every transform takes bytes
in and hands bytes back; nothing is kept between calls.
"""

__version__ = "1.0.0"
__author__ = "Media Engine"

from .assets import AssetFormat, EncodedAsset
from .compression import CompressionMode, CompressionOptions, MaxBytes, Percentage, compress
from .conversion import convert
from .errors import (
    DecodeError,
    EncodeError,
    MediaError,
    MergeError,
    UnsupportedConversionError,
    UnsupportedFormatError,
)
from .merger import merge_documents
from .pipeline import process_batch
from .scrubber import scrub_metadata
from .segmentation import remove_background

__all__ = [
    "AssetFormat",
    "EncodedAsset",
    "CompressionMode",
    "CompressionOptions",
    "MaxBytes",
    "Percentage",
    "compress",
    "convert",
    "merge_documents",
    "process_batch",
    "remove_background",
    "scrub_metadata",
    "DecodeError",
    "EncodeError",
    "MediaError",
    "MergeError",
    "UnsupportedConversionError",
    "UnsupportedFormatError",
]
