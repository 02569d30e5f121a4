"""
pdf_writer.py - PDF assembly with pikepdf.

Supports:
- Raster pages (FlateDecode RGB, SMask for transparency)
- Plain text pages in built-in Helvetica
- Appending every page of an existing document
"""

import io
import logging
import textwrap
import zlib
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import numpy as np
import pikepdf
from pikepdf import Pdf, Stream, Dictionary, Name

from .codec import RasterBuffer

logger = logging.getLogger(__name__)

# A4 in points, the size used for text-only pages
A4_SIZE = (595.28, 841.89)

TEXT_FONT_SIZE = 12
TEXT_LINE_HEIGHT = 20
TEXT_MARGIN = 50
TEXT_TOP_OFFSET = 100
TEXT_WRAP_CHARS = 80


def escape_pdf_text(text: str) -> str:
    """Escape a PDF string literal; characters outside Latin-1 become spaces."""
    text = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
    return "".join(c if ord(c) < 256 else " " for c in text)


@dataclass
class PageImage:
    """Raster data ready for PDF embedding."""
    width: int
    height: int
    rgb_data: bytes
    alpha_data: Optional[bytes]   # None if fully opaque
    page_width_pts: float
    page_height_pts: float

    @classmethod
    def from_buffer(cls, buffer: RasterBuffer) -> "PageImage":
        """One image pixel per PDF point."""
        alpha = None
        if not buffer.is_opaque:
            alpha = np.ascontiguousarray(buffer.alpha).tobytes()
        return cls(
            width=buffer.width,
            height=buffer.height,
            rgb_data=np.ascontiguousarray(buffer.rgb).tobytes(),
            alpha_data=alpha,
            page_width_pts=float(buffer.width),
            page_height_pts=float(buffer.height),
        )


class PDFWriter:
    """
    Assembles pages into a new PDF held in memory.
    """

    def __init__(self):
        self.pdf = Pdf.new()
        # Source documents whose pages were appended; must stay open until saved
        self._sources = []

    @property
    def page_count(self) -> int:
        return len(self.pdf.pages)

    def add_image_page(self, image: PageImage):
        """Add a page showing one image stretched over the whole page."""
        self.pdf.add_blank_page(page_size=(image.page_width_pts, image.page_height_pts))
        page = self.pdf.pages[-1]

        image_dict = Dictionary({
            '/Type': Name.XObject,
            '/Subtype': Name.Image,
            '/Width': image.width,
            '/Height': image.height,
            '/ColorSpace': Name.DeviceRGB,
            '/BitsPerComponent': 8,
            '/Filter': Name.FlateDecode,
        })

        if image.alpha_data is not None:
            smask = Stream(self.pdf, zlib.compress(image.alpha_data, level=9), Dictionary({
                '/Type': Name.XObject,
                '/Subtype': Name.Image,
                '/Width': image.width,
                '/Height': image.height,
                '/ColorSpace': Name.DeviceGray,
                '/BitsPerComponent': 8,
                '/Filter': Name.FlateDecode,
            }))
            image_dict['/SMask'] = self.pdf.make_indirect(smask)

        img_stream = Stream(self.pdf, zlib.compress(image.rgb_data, level=9), image_dict)

        xobjects = Dictionary({})
        xobjects['/Im0'] = self.pdf.make_indirect(img_stream)
        page.Resources = Dictionary({'/XObject': xobjects})

        content = f"""
q
{image.page_width_pts:.4f} 0 0 {image.page_height_pts:.4f} 0 0 cm
/Im0 Do
Q
"""
        page.Contents = self.pdf.make_indirect(Stream(self.pdf, content.strip().encode("latin-1")))

        mode = "rgba" if image.alpha_data is not None else "rgb"
        logger.debug(f"Added image page {self.page_count}: {image.width}x{image.height} ({mode})")

    def add_text_page(self, lines: Iterable[str], page_size: Tuple[float, float] = A4_SIZE):
        """Add a page with lines of Helvetica text from the top-left margin."""
        width, height = page_size
        self.pdf.add_blank_page(page_size=page_size)
        page = self.pdf.pages[-1]

        # Use built-in Helvetica (no embedding needed)
        page.Resources = Dictionary({
            '/Font': Dictionary({
                '/F1': Dictionary({
                    '/Type': Name.Font,
                    '/Subtype': Name.Type1,
                    '/BaseFont': Name.Helvetica,
                    '/Encoding': Name.WinAnsiEncoding,
                })
            })
        })

        wrapped = []
        for line in lines:
            wrapped.extend(textwrap.wrap(line, TEXT_WRAP_CHARS) or [""])

        content_parts = [
            "BT",
            f"/F1 {TEXT_FONT_SIZE} Tf",
            f"{TEXT_LINE_HEIGHT} TL",
            f"{TEXT_MARGIN} {height - TEXT_TOP_OFFSET:.2f} Td",
        ]
        for i, line in enumerate(wrapped):
            if i > 0:
                content_parts.append("T*")
            content_parts.append(f"({escape_pdf_text(line)}) Tj")
        content_parts.append("ET")

        page.Contents = self.pdf.make_indirect(
            Stream(self.pdf, "\n".join(content_parts).encode("latin-1", errors="replace"))
        )
        logger.debug(f"Added text page {self.page_count}: {len(wrapped)} lines, {width:.0f}x{height:.0f} pts")

    def append_document(self, source: Pdf):
        """Append every page of an open document, in order."""
        self._sources.append(source)
        self.pdf.pages.extend(source.pages)

    def to_bytes(self) -> bytes:
        """Serialize the PDF."""
        out = io.BytesIO()
        self.pdf.save(
            out,
            compress_streams=True,
            object_stream_mode=pikepdf.ObjectStreamMode.generate
        )

        data = out.getvalue()
        logger.debug(f"Saved {self.page_count} pages, {len(data):,} bytes")
        return data

    def close(self):
        """Release the output document and any appended sources."""
        for source in self._sources:
            source.close()
        self._sources = []
        self.pdf.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
