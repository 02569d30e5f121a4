"""
scrubber.py - Strip identifying metadata while keeping visible content.

Images are rebuilt from decoded pixels, which drops every auxiliary chunk.
PDFs have their document info slots overwritten. A failed scrub returns the
original bytes instead of raising.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import List

import pikepdf

from .assets import AssetFormat, EncodedAsset, derive_name
from .codec import decode, encode
from .errors import MediaError

logger = logging.getLogger(__name__)

# Quality for the re-encoded image
SCRUB_QUALITY = 0.95

# PDF epoch date written into the date slots
PDF_EPOCH = "D:19700101000000Z"

IMAGE_FIELDS = [
    "EXIF data",
    "GPS coordinates",
    "Camera info",
    "Timestamps",
    "Author info",
    "Software info",
]

# (docinfo key, reported name, cleared value)
PDF_SLOTS = [
    ("/Title", "Title", ""),
    ("/Author", "Author", ""),
    ("/Subject", "Subject", ""),
    ("/Keywords", "Keywords", ""),
    ("/Producer", "Producer", ""),
    ("/Creator", "Creator", ""),
    ("/CreationDate", "Creation date", PDF_EPOCH),
    ("/ModDate", "Modification date", PDF_EPOCH),
]

DEGRADED_FIELDS = ["Metadata (partial)"]
GENERIC_FIELDS = ["File metadata"]


@dataclass
class ScrubResult:
    """Scrubbed asset and the metadata categories removed."""
    asset: EncodedAsset
    file_name: str
    removed_fields: List[str] = field(default_factory=list)
    degraded: bool = False  # True when the original bytes were returned


def scrub_image(asset: EncodedAsset, file_name: str) -> EncodedAsset:
    """Decode and re-encode from pixel data only."""
    buffer = decode(asset)
    return encode(buffer, asset.format, quality=SCRUB_QUALITY, name=file_name)


def scrub_pdf(asset: EncodedAsset, file_name: str) -> EncodedAsset:
    """Overwrite every document info slot and re-save."""
    with pikepdf.open(io.BytesIO(asset.data)) as pdf:
        docinfo = pdf.docinfo
        for key, _, value in PDF_SLOTS:
            docinfo[key] = pikepdf.String(value)
        out = io.BytesIO()
        pdf.save(out)
    return EncodedAsset(name=file_name, data=out.getvalue(), format=AssetFormat.PDF)


def scrub_metadata(asset: EncodedAsset) -> ScrubResult:
    """
    Remove identifying metadata from an asset.

    Never raises for malformed input: the original bytes come back with a
    degraded field list.
    """
    file_name = derive_name(asset, "_clean", asset.format)

    if asset.format.is_raster:
        try:
            output = scrub_image(asset, file_name)
        except MediaError as e:
            logger.warning(f"{asset.name}: image scrub failed, keeping original ({e})")
            return _degraded(asset, file_name)
        logger.info(f"{asset.name}: rebuilt from pixels, {asset.size:,} -> {output.size:,} bytes")
        return ScrubResult(asset=output, file_name=file_name, removed_fields=list(IMAGE_FIELDS))

    if asset.format is AssetFormat.PDF:
        try:
            output = scrub_pdf(asset, file_name)
        except Exception as e:
            logger.warning(f"{asset.name}: PDF metadata clearing failed, keeping original ({e})")
            return _degraded(asset, file_name)
        logger.info(f"{asset.name}: cleared {len(PDF_SLOTS)} document info slots")
        return ScrubResult(
            asset=output,
            file_name=file_name,
            removed_fields=[label for _, label, _ in PDF_SLOTS]
        )

    logger.info(f"{asset.name}: {asset.format.value} passed through unchanged")
    return ScrubResult(
        asset=EncodedAsset(name=file_name, data=asset.data, format=asset.format),
        file_name=file_name,
        removed_fields=list(GENERIC_FIELDS)
    )


def _degraded(asset: EncodedAsset, file_name: str) -> ScrubResult:
    return ScrubResult(
        asset=EncodedAsset(name=file_name, data=asset.data, format=asset.format),
        file_name=file_name,
        removed_fields=list(DEGRADED_FIELDS),
        degraded=True
    )
