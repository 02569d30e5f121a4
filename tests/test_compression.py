from __future__ import annotations

import math

import pytest

from media_engine.assets import AssetFormat, EncodedAsset
from media_engine.codec import decode, encode
from media_engine.compression import (
    CompressionMode,
    CompressionOptions,
    MaxBytes,
    Percentage,
    compress,
    estimate_compressed_size,
    format_bytes,
    output_format,
    search_quality,
)
from media_engine.errors import DecodeError

from conftest import image_size, page_texts


def lossy(target):
    return CompressionOptions(mode=CompressionMode.LOSSY, target=target)


def lossless(target):
    return CompressionOptions(mode=CompressionMode.LOSSLESS, target=target)


def test_lossy_percentage_hits_target(photo_jpg):
    result = compress(photo_jpg, lossy(Percentage(50)))

    assert not result.unchanged
    assert result.original_size == photo_jpg.size
    assert result.compressed_size <= photo_jpg.size * 0.5
    assert result.file_name == "photo_compressed.jpg"
    assert result.asset.format is AssetFormat.JPG
    assert image_size(result.asset) == (160, 120)


def test_lossy_webp_stays_webp(photo_webp):
    result = compress(photo_webp, lossy(Percentage(40)))
    assert result.asset.format is AssetFormat.WEBP
    assert result.file_name == "photo_compressed.webp"


def test_unreachable_percentage_returns_lowest_quality(photo_png):
    # PNG ignores quality, so every step encodes the same size
    result = compress(photo_png, lossy(Percentage(90)))
    reencoded = encode(decode(photo_png), AssetFormat.PNG)

    assert not result.unchanged
    assert result.compressed_size == reencoded.size
    assert result.compressed_size > photo_png.size * 0.1


def test_search_returns_none_when_nothing_fits(photo_jpg):
    best, lowest = search_quality(decode(photo_jpg), AssetFormat.JPG, 10, 8)
    assert best is None
    assert lowest is not None


def test_lossy_max_bytes_hits_target(photo_jpg):
    target = photo_jpg.size // 3
    result = compress(photo_jpg, lossy(MaxBytes(target)))
    assert result.compressed_size <= target
    assert image_size(result.asset) == (160, 120)


def test_unreachable_max_bytes_falls_back_to_downscale(photo_jpg):
    result = compress(photo_jpg, lossy(MaxBytes(200)))

    scale = max(0.05, min(math.sqrt(200 / photo_jpg.size), 1))
    assert image_size(result.asset) == (max(1, round(160 * scale)), max(1, round(120 * scale)))
    assert result.compressed_size == result.asset.size


def test_lossless_percentage_scales_dimensions(photo_png):
    result = compress(photo_png, lossless(Percentage(75)))
    assert result.asset.format is AssetFormat.PNG
    assert image_size(result.asset) == (80, 60)


def test_percentage_is_clamped(photo_png):
    # 99% clamps to 90% -> scale sqrt(0.1)
    result = compress(photo_png, lossless(Percentage(99)))
    assert image_size(result.asset) == (51, 38)

    result = compress(photo_png, lossless(Percentage(0)))
    scale = math.sqrt(0.9)
    assert image_size(result.asset) == (round(160 * scale), round(120 * scale))


def test_lossless_max_bytes_second_pass(photo_png):
    first = encode(decode(photo_png), AssetFormat.PNG)
    target = first.size // 2

    result = compress(photo_png, lossless(MaxBytes(target)))

    width, height = image_size(result.asset)
    assert width < 160 and height < 120
    assert result.compressed_size <= target


def test_lossless_max_bytes_under_target_keeps_size(photo_png):
    result = compress(photo_png, lossless(MaxBytes(10 * 1024 * 1024)))
    assert image_size(result.asset) == (160, 120)


def test_lossless_on_jpeg_uses_quality_search(photo_jpg):
    result = compress(photo_jpg, lossless(Percentage(50)))
    assert result.asset.format is AssetFormat.JPG
    assert image_size(result.asset) == (160, 120)


def test_options_from_dict(photo_png):
    result = compress(photo_png, {"mode": "lossless", "targetType": "percentage", "percentage": 75})
    assert image_size(result.asset) == (80, 60)

    options = CompressionOptions.from_dict({"mode": "lossy", "targetType": "maxKB", "maxKB": 2})
    assert options.target == MaxBytes(2048)

    with pytest.raises(ValueError):
        CompressionOptions.from_dict({"targetType": "pixels"})


def test_max_bytes_must_be_positive():
    with pytest.raises(ValueError):
        MaxBytes(0)


def test_malformed_raster_raises_decode_error():
    asset = EncodedAsset(name="bad.jpg", data=b"\xff\xd8garbage", format=AssetFormat.JPG)
    with pytest.raises(DecodeError):
        compress(asset, lossy(Percentage(50)))


@pytest.mark.parametrize("mode", [CompressionMode.LOSSY, CompressionMode.LOSSLESS])
def test_pdf_is_resaved(two_page_pdf, mode):
    result = compress(two_page_pdf, CompressionOptions(mode=mode, target=Percentage(50)))

    assert not result.unchanged
    assert result.file_name == "a_compressed.pdf"
    assert page_texts(result.asset.data) == ["A1", "A2"]


def test_broken_pdf_returns_original():
    asset = EncodedAsset(name="broken.pdf", data=b"%PDF-1.7 nonsense", format=AssetFormat.PDF)
    result = compress(asset, lossy(Percentage(50)))

    assert result.unchanged
    assert result.asset.data == asset.data
    assert result.file_name == "broken.pdf"
    assert result.compressed_size == result.original_size


def test_svg_passes_through():
    asset = EncodedAsset(name="logo.svg", data=b"<svg/>", format=AssetFormat.SVG)
    result = compress(asset, lossy(Percentage(50)))
    assert result.unchanged
    assert result.asset is asset


def test_output_format():
    assert output_format(AssetFormat.PNG) is AssetFormat.PNG
    assert output_format(AssetFormat.WEBP) is AssetFormat.WEBP
    assert output_format(AssetFormat.JPG) is AssetFormat.JPG


def test_estimate_compressed_size():
    assert estimate_compressed_size(1000, lossy(Percentage(40))) == 600
    assert estimate_compressed_size(1000, lossy(MaxBytes(300))) == 300
    assert estimate_compressed_size(1000, lossy(MaxBytes(5000))) == 1000


@pytest.mark.parametrize(
    "size, expected",
    [(0, "0 B"), (512, "512 B"), (1536, "1.5 KB"), (2 * 1024 * 1024, "2.00 MB")],
)
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


def test_summary_mentions_reduction(photo_jpg):
    result = compress(photo_jpg, lossy(Percentage(50)))
    assert result.reduction_pct >= 50
    assert "photo_compressed.jpg" in result.summary()
