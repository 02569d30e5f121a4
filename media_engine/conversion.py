"""
conversion.py - Format conversion through a closed dispatch table.

Every supported (source, target) pair maps to one strategy:

    RASTER_TO_RASTER    JPG/PNG/WEBP -> JPG/PNG/WEBP/SVG
    VECTOR_TO_RASTER    SVG -> JPG/PNG/WEBP
    IMAGE_TO_DOCUMENT   JPG/PNG/WEBP/SVG -> PDF
    DOCUMENT_TO_RASTER  PDF -> one image per page
    OFFICE_TO_DOCUMENT  DOCX -> placeholder PDF

New pairs are added to CONVERSIONS; anything not listed is rejected.
"""

import logging
from enum import Enum
from itertools import product
from typing import Callable, Dict, List, Optional, Tuple, Union

import img2pdf

from .assets import AssetFormat, EncodedAsset, derive_name
from .codec import RasterBuffer, composite_over_white, decode, encode, to_data_url
from .errors import EncodeError, UnsupportedConversionError
from .pdf_writer import PDFWriter, PageImage
from .rasterize import render_pdf_pages, render_svg

logger = logging.getLogger(__name__)

# Encoder quality for every converted raster
CONVERSION_QUALITY = 0.92

RASTER_FORMATS = (AssetFormat.JPG, AssetFormat.PNG, AssetFormat.WEBP)

DOCX_NOTICE = [
    "Converted from: {name}",
    "",
    "Note: Full DOCX conversion requires server-side processing.",
    "This is a placeholder PDF.",
]


class ConversionStrategy(Enum):
    RASTER_TO_RASTER = "raster_to_raster"
    VECTOR_TO_RASTER = "vector_to_raster"
    IMAGE_TO_DOCUMENT = "image_to_document"
    DOCUMENT_TO_RASTER = "document_to_raster"
    OFFICE_TO_DOCUMENT = "office_to_document"


def _build_table() -> Dict[Tuple[AssetFormat, AssetFormat], ConversionStrategy]:
    table = {}
    for source, target in product(RASTER_FORMATS, RASTER_FORMATS + (AssetFormat.SVG,)):
        table[(source, target)] = ConversionStrategy.RASTER_TO_RASTER
    for target in RASTER_FORMATS:
        table[(AssetFormat.SVG, target)] = ConversionStrategy.VECTOR_TO_RASTER
        table[(AssetFormat.PDF, target)] = ConversionStrategy.DOCUMENT_TO_RASTER
    for source in RASTER_FORMATS + (AssetFormat.SVG,):
        table[(source, AssetFormat.PDF)] = ConversionStrategy.IMAGE_TO_DOCUMENT
    table[(AssetFormat.DOCX, AssetFormat.PDF)] = ConversionStrategy.OFFICE_TO_DOCUMENT
    return table


CONVERSIONS = _build_table()


def supported_targets(source: AssetFormat) -> List[AssetFormat]:
    """Formats reachable from `source`, in enum order."""
    return [target for target in AssetFormat if (source, target) in CONVERSIONS]


def _flatten_for(buffer: RasterBuffer, target: AssetFormat) -> RasterBuffer:
    """Composite over white unless the target keeps transparency."""
    if target.supports_alpha:
        return buffer
    return composite_over_white(buffer)


def wrap_in_svg(buffer: RasterBuffer, name: str) -> EncodedAsset:
    """Minimal SVG document embedding the raster as a PNG data URL."""
    png = encode(buffer, AssetFormat.PNG)
    svg = (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{buffer.width}" height="{buffer.height}">\n'
        f'  <image href="{to_data_url(png)}" width="{buffer.width}" height="{buffer.height}"/>\n'
        f'</svg>'
    )
    return EncodedAsset(name=name, data=svg.encode("utf-8"), format=AssetFormat.SVG)


def raster_to_raster(asset: EncodedAsset, target: AssetFormat) -> List[EncodedAsset]:
    buffer = _flatten_for(decode(asset), target)
    name = derive_name(asset, "", target)
    if target is AssetFormat.SVG:
        return [wrap_in_svg(buffer, name)]
    return [encode(buffer, target, quality=CONVERSION_QUALITY, name=name)]


def vector_to_raster(asset: EncodedAsset, target: AssetFormat) -> List[EncodedAsset]:
    buffer = render_svg(asset.data)
    name = derive_name(asset, "", target)
    return [encode(buffer, target, quality=CONVERSION_QUALITY, name=name)]


def _jpeg_to_pdf(data: bytes) -> Optional[bytes]:
    """
    Embed JPEG bytes untouched, one pixel per point.

    Returns None when img2pdf can't express the EXIF orientation (mirrored
    modes 2, 4, 5 and 7); the caller then embeds the decoded pixels instead.
    """
    layout = img2pdf.get_fixed_dpi_layout_fun((72, 72))
    try:
        return img2pdf.convert(data, layout_fun=layout)
    except img2pdf.ExifOrientationError as e:
        logger.debug(f"JPEG pass-through skipped: {e}")
        return None
    except Exception as e:
        raise EncodeError(f"Could not embed JPEG in PDF: {e}") from e


def image_to_document(asset: EncodedAsset, target: AssetFormat) -> List[EncodedAsset]:
    name = derive_name(asset, "", AssetFormat.PDF)

    if asset.format is AssetFormat.SVG:
        buffer = render_svg(asset.data)
    else:
        buffer = decode(asset)

    data = None
    if asset.format is AssetFormat.JPG:
        data = _jpeg_to_pdf(asset.data)
    if data is None:
        with PDFWriter() as writer:
            writer.add_image_page(PageImage.from_buffer(buffer))
            data = writer.to_bytes()

    logger.debug(f"{asset.name}: embedded {buffer.width}x{buffer.height} on one page")
    return [EncodedAsset(name=name, data=data, format=AssetFormat.PDF)]


def document_to_raster(asset: EncodedAsset, target: AssetFormat) -> List[EncodedAsset]:
    results = []
    for page_num, buffer in enumerate(render_pdf_pages(asset.data), start=1):
        name = derive_name(asset, f"_page{page_num}", target)
        results.append(encode(buffer, target, quality=CONVERSION_QUALITY, name=name))
    return results


def office_to_document(asset: EncodedAsset, target: AssetFormat) -> List[EncodedAsset]:
    """Reduced-fidelity path: a single page noting the source file."""
    with PDFWriter() as writer:
        writer.add_text_page([line.format(name=asset.name) for line in DOCX_NOTICE])
        data = writer.to_bytes()
    name = derive_name(asset, "", AssetFormat.PDF)
    return [EncodedAsset(name=name, data=data, format=AssetFormat.PDF)]


_HANDLERS: Dict[ConversionStrategy, Callable[[EncodedAsset, AssetFormat], List[EncodedAsset]]] = {
    ConversionStrategy.RASTER_TO_RASTER: raster_to_raster,
    ConversionStrategy.VECTOR_TO_RASTER: vector_to_raster,
    ConversionStrategy.IMAGE_TO_DOCUMENT: image_to_document,
    ConversionStrategy.DOCUMENT_TO_RASTER: document_to_raster,
    ConversionStrategy.OFFICE_TO_DOCUMENT: office_to_document,
}


def convert(
    asset: EncodedAsset,
    from_format: Union[AssetFormat, str],
    to_format: Union[AssetFormat, str]
) -> List[EncodedAsset]:
    """
    Convert an asset between formats.

    Args:
        asset: Input file
        from_format: Declared source format (overrides asset.format)
        to_format: Target format

    Returns:
        List of output assets - one per page for PDF sources, else one

    Raises:
        UnsupportedConversionError: pair not in CONVERSIONS
        DecodeError: input is not valid for from_format
        EncodeError: output could not be produced
    """
    if isinstance(from_format, str):
        from_format = AssetFormat.from_name(from_format)
    if isinstance(to_format, str):
        to_format = AssetFormat.from_name(to_format)

    strategy = CONVERSIONS.get((from_format, to_format))
    if strategy is None:
        raise UnsupportedConversionError(
            f"Conversion from {from_format.value} to {to_format.value} is not supported"
        )

    if asset.format is not from_format:
        asset = EncodedAsset(name=asset.name, data=asset.data, format=from_format)

    results = _HANDLERS[strategy](asset, to_format)
    logger.info(
        f"{asset.name}: {from_format.value} -> {to_format.value} "
        f"({strategy.value}), {len(results)} output(s)"
    )
    return results
