"""
rasterize.py - PDF and SVG to image conversion using PyMuPDF.

Fast in-memory rendering, no external dependencies.
"""

import logging
import xml.etree.ElementTree as ET
from typing import Iterator, Tuple

import numpy as np
try:
    import fitz  # pip install pymupdf
except ImportError:
    import pymupdf as fitz  # apt install python3-pymupdf

from .codec import RasterBuffer
from .errors import DecodeError

logger = logging.getLogger(__name__)

# Zoom applied to every PDF page (72 DPI -> 144 DPI)
PDF_RENDER_SCALE = 2.0

# Canvas for SVGs that don't declare width/height
DEFAULT_SVG_SIZE = (800, 600)


def _pixmap_to_buffer(pixmap) -> RasterBuffer:
    """Copy pixmap samples into an owned RGBA buffer."""
    image = np.frombuffer(pixmap.samples, dtype=np.uint8).reshape(
        pixmap.height, pixmap.width, pixmap.n
    ).copy()  # Copy to own the memory
    return RasterBuffer.from_array(image)


def _open(data: bytes, filetype: str):
    try:
        return fitz.open(stream=data, filetype=filetype)
    except (RuntimeError, ValueError) as e:
        raise DecodeError(f"Not a valid {filetype.upper()} document: {e}") from e


def render_pdf_pages(data: bytes, scale: float = PDF_RENDER_SCALE) -> Iterator[RasterBuffer]:
    """
    Render each PDF page to an RGBA buffer over white.

    Pages are yielded one at a time so only one page buffer is alive at once.

    Raises:
        DecodeError: bytes are not a PDF or a page fails to render
    """
    with _open(data, "pdf") as doc:
        if len(doc) == 0:
            raise DecodeError("PDF has no pages")
        matrix = fitz.Matrix(scale, scale)
        for page_num, page in enumerate(doc):
            try:
                pixmap = page.get_pixmap(matrix=matrix, alpha=False)
            except RuntimeError as e:
                raise DecodeError(f"Page {page_num + 1} failed to render: {e}") from e
            logger.debug(f"Rendered page {page_num + 1}: {pixmap.width}x{pixmap.height} @ {scale}x")
            yield _pixmap_to_buffer(pixmap)


def svg_declares_size(data: bytes) -> bool:
    """True if the root <svg> element carries both width and height."""
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise DecodeError(f"Not a valid SVG document: {e}") from e
    return root.get("width") is not None and root.get("height") is not None


def svg_target_size(data: bytes, intrinsic: Tuple[float, float]) -> Tuple[int, int]:
    """Canvas size for an SVG: its own size, or the default when undeclared."""
    width, height = intrinsic
    if not svg_declares_size(data) or width < 1 or height < 1:
        return DEFAULT_SVG_SIZE
    return max(1, round(width)), max(1, round(height))


def render_svg(data: bytes) -> RasterBuffer:
    """
    Rasterize an SVG onto a white canvas at its intrinsic size.

    Raises:
        DecodeError: bytes are not a parseable SVG
    """
    with _open(data, "svg") as doc:
        page = doc[0]
        rect = page.rect
        if rect.width <= 0 or rect.height <= 0:
            raise DecodeError(f"SVG has an empty canvas ({rect.width}x{rect.height})")
        width, height = svg_target_size(data, (rect.width, rect.height))
        matrix = fitz.Matrix(width / rect.width, height / rect.height)
        try:
            pixmap = page.get_pixmap(matrix=matrix, alpha=False)
        except RuntimeError as e:
            raise DecodeError(f"SVG failed to render: {e}") from e

    logger.debug(f"Rasterized SVG: {pixmap.width}x{pixmap.height}")
    return _pixmap_to_buffer(pixmap)
