from __future__ import annotations

import io

import numpy as np
import pikepdf
from PIL import Image
from PIL.PngImagePlugin import PngInfo

from media_engine.assets import AssetFormat, EncodedAsset
from media_engine.scrubber import (
    DEGRADED_FIELDS,
    GENERIC_FIELDS,
    IMAGE_FIELDS,
    PDF_EPOCH,
    scrub_metadata,
)

from conftest import image_asset, noisy_pixels, page_texts, pdf_asset

PDF_FIELDS = [
    "Title",
    "Author",
    "Subject",
    "Keywords",
    "Producer",
    "Creator",
    "Creation date",
    "Modification date",
]


def test_jpeg_exif_removed():
    exif = Image.Exif()
    exif[0x010F] = "Canon"          # Make
    exif[0x0131] = "PhotoEditor 9"  # Software
    asset = image_asset(noisy_pixels(32, 24), AssetFormat.JPG, "holiday.jpg", exif=exif.tobytes())

    result = scrub_metadata(asset)

    assert not result.degraded
    assert result.file_name == "holiday_clean.jpg"
    assert result.asset.format is AssetFormat.JPG
    assert result.removed_fields == IMAGE_FIELDS
    with Image.open(io.BytesIO(result.asset.data)) as img:
        assert len(img.getexif()) == 0
        assert img.size == (32, 24)


def test_png_text_chunks_removed():
    info = PngInfo()
    info.add_text("Author", "Jane Doe")
    asset = image_asset(noisy_pixels(16, 16), AssetFormat.PNG, "scan.png", pnginfo=info)

    result = scrub_metadata(asset)

    with Image.open(io.BytesIO(result.asset.data)) as img:
        assert "Author" not in img.info
    assert result.file_name == "scan_clean.png"


def test_pdf_info_slots_cleared():
    asset = pdf_asset(
        ["page"],
        name="report.pdf",
        title="Quarterly",
        author="Jane Doe",
        subject="Numbers",
        keywords="secret",
        creator="Writer",
        producer="Exporter",
    )

    result = scrub_metadata(asset)

    assert result.removed_fields == PDF_FIELDS
    assert result.file_name == "report_clean.pdf"
    with pikepdf.open(io.BytesIO(result.asset.data)) as pdf:
        assert str(pdf.docinfo["/Title"]) == ""
        assert str(pdf.docinfo["/Author"]) == ""
        assert str(pdf.docinfo["/Keywords"]) == ""
        assert str(pdf.docinfo["/CreationDate"]) == PDF_EPOCH
        assert str(pdf.docinfo["/ModDate"]) == PDF_EPOCH
    assert page_texts(result.asset.data) == ["page"]


def test_pdf_scrub_is_idempotent(two_page_pdf):
    first = scrub_metadata(two_page_pdf)
    second = scrub_metadata(first.asset)

    assert not second.degraded
    assert second.removed_fields == first.removed_fields == PDF_FIELDS


def test_broken_pdf_returns_original_bytes():
    asset = EncodedAsset(name="broken.pdf", data=b"not a pdf at all", format=AssetFormat.PDF)
    result = scrub_metadata(asset)

    assert result.degraded
    assert result.asset.data == asset.data
    assert result.removed_fields == DEGRADED_FIELDS


def test_broken_image_returns_original_bytes():
    asset = EncodedAsset(name="broken.jpg", data=b"\xff\xd8\xff nope", format=AssetFormat.JPG)
    result = scrub_metadata(asset)

    assert result.degraded
    assert result.asset.data == asset.data


def test_other_formats_pass_through():
    asset = EncodedAsset(name="notes.docx", data=b"PK\x03\x04 docx", format=AssetFormat.DOCX)
    result = scrub_metadata(asset)

    assert result.removed_fields == GENERIC_FIELDS
    assert result.asset.data == asset.data
    assert result.file_name == "notes_clean.docx"
    assert not result.degraded


def test_visible_content_preserved():
    pixels = np.zeros((10, 10, 3), dtype=np.uint8)
    pixels[:, 5:] = (255, 0, 0)
    asset = image_asset(pixels, AssetFormat.PNG, "flag.png")

    result = scrub_metadata(asset)
    with Image.open(io.BytesIO(result.asset.data)) as img:
        out = np.asarray(img.convert("RGB"))
    assert np.array_equal(out, pixels)


def test_oversized_image_returns_original_bytes(monkeypatch, photo_jpg):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    result = scrub_metadata(photo_jpg)

    assert result.degraded
    assert result.asset.data == photo_jpg.data
    assert result.removed_fields == DEGRADED_FIELDS


def test_mislabelled_image_returns_original_bytes(photo_png):
    asset = EncodedAsset(name="photo.jpg", data=photo_png.data, format=AssetFormat.JPG)
    result = scrub_metadata(asset)

    assert result.degraded
    assert result.asset.data == photo_png.data
