"""
merger.py - Concatenate PDF pages in caller order.

All-or-nothing: one unreadable input fails the whole merge.
"""

import io
import logging
from typing import Optional, Sequence

import pikepdf

from .assets import AssetFormat, EncodedAsset
from .errors import MergeError
from .pdf_writer import PDFWriter

logger = logging.getLogger(__name__)

MERGED_FILE_NAME = "merged.pdf"


def apply_order(assets: Sequence[EncodedAsset], order: Optional[Sequence[int]]) -> list:
    """Reorder assets by a permutation of their indices."""
    if order is None:
        return list(assets)
    if sorted(order) != list(range(len(assets))):
        raise MergeError(
            f"Order {list(order)} is not a permutation of 0..{len(assets) - 1}"
        )
    return [assets[i] for i in order]


def merge_documents(
    assets: Sequence[EncodedAsset],
    order: Optional[Sequence[int]] = None
) -> EncodedAsset:
    """
    Merge every page of every document into one PDF.

    Args:
        assets: PDF assets
        order: Optional permutation of indices into `assets`

    Returns:
        merged.pdf

    Raises:
        MergeError: no inputs, bad order, or an input isn't a readable PDF
    """
    if not assets:
        raise MergeError("No documents to merge")

    ordered = apply_order(assets, order)
    writer = PDFWriter()

    try:
        for asset in ordered:
            if asset.format is not AssetFormat.PDF:
                raise MergeError(f"{asset.name}: {asset.format.value} is not a PDF")
            try:
                source = pikepdf.open(io.BytesIO(asset.data))
            except pikepdf.PdfError as e:
                raise MergeError(f"{asset.name}: could not be read as a PDF ({e})") from e
            source_pages = len(source.pages)
            writer.append_document(source)
            logger.debug(f"Appended {asset.name}: {source_pages} pages")
        page_count = writer.page_count
        data = writer.to_bytes()
    except MergeError:
        raise
    except Exception as e:
        raise MergeError(f"Merge failed: {e}") from e
    finally:
        writer.close()

    logger.info(f"Merged {len(ordered)} documents into {page_count} pages ({len(data):,} bytes)")
    return EncodedAsset(name=MERGED_FILE_NAME, data=data, format=AssetFormat.PDF)
