# tests/conftest.py
from __future__ import annotations

import io
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import fitz  # noqa: E402

from media_engine.assets import AssetFormat, EncodedAsset  # noqa: E402

_PIL_NAMES = {AssetFormat.JPG: "JPEG", AssetFormat.PNG: "PNG", AssetFormat.WEBP: "WEBP"}


def noisy_pixels(width: int, height: int, seed: int = 0) -> np.ndarray:
    """Gradient plus noise: compresses like a photo, not like a flat fill."""
    rng = np.random.default_rng(seed)
    y, x = np.mgrid[0:height, 0:width]
    base = np.stack([x * 255 // max(width - 1, 1), y * 255 // max(height - 1, 1), (x + y) % 256], axis=2)
    noise = rng.integers(-40, 40, size=(height, width, 3))
    return np.clip(base + noise, 0, 255).astype(np.uint8)


def image_asset(pixels: np.ndarray, fmt: AssetFormat, name: str = "", **save_kwargs) -> EncodedAsset:
    out = io.BytesIO()
    img = Image.fromarray(pixels)
    if fmt is AssetFormat.JPG and img.mode == "RGBA":
        img = img.convert("RGB")
    img.save(out, format=_PIL_NAMES[fmt], **save_kwargs)
    return EncodedAsset(name=name or f"image.{fmt.extension}", data=out.getvalue(), format=fmt)


def pdf_asset(page_labels, name: str = "doc.pdf", **metadata) -> EncodedAsset:
    """One page per label, each page showing its label as text."""
    doc = fitz.open()
    for label in page_labels:
        page = doc.new_page(width=200, height=100)
        page.insert_text((20, 50), label, fontsize=18)
    if metadata:
        doc.set_metadata(metadata)
    data = doc.tobytes()
    doc.close()
    return EncodedAsset(name=name, data=data, format=AssetFormat.PDF)


def page_texts(data: bytes) -> list:
    with fitz.open(stream=data, filetype="pdf") as doc:
        return [page.get_text().strip() for page in doc]


def image_size(asset: EncodedAsset) -> tuple:
    with Image.open(io.BytesIO(asset.data)) as img:
        return img.size


@pytest.fixture()
def photo_jpg() -> EncodedAsset:
    return image_asset(noisy_pixels(160, 120), AssetFormat.JPG, "photo.jpg", quality=95)


@pytest.fixture()
def photo_png() -> EncodedAsset:
    return image_asset(noisy_pixels(160, 120), AssetFormat.PNG, "photo.png")


@pytest.fixture()
def photo_webp() -> EncodedAsset:
    return image_asset(noisy_pixels(160, 120), AssetFormat.WEBP, "photo.webp", quality=95)


@pytest.fixture()
def bordered_png() -> EncodedAsset:
    """40x30 white image with a solid red 20x10 block in the middle."""
    pixels = np.full((30, 40, 3), 255, dtype=np.uint8)
    pixels[10:20, 10:30] = (200, 0, 0)
    return image_asset(pixels, AssetFormat.PNG, "product.png")


@pytest.fixture()
def two_page_pdf() -> EncodedAsset:
    return pdf_asset(["A1", "A2"], name="a.pdf")


@pytest.fixture()
def three_page_pdf() -> EncodedAsset:
    return pdf_asset(["B1", "B2", "B3"], name="b.pdf")
