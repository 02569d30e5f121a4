"""
compression.py - Size-targeted compression.

Supports:
- Lossy rasters (JPG/WEBP): binary search over encoder quality
- Lossless PNG: geometric downscale instead of a quality knob
- PDF: re-save with pikepdf (object streams for lossy)

Compression is best-effort. If re-encoding fails the original bytes come
back unchanged; the target size is a goal, not a guarantee.
"""

import io
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

import pikepdf

from .assets import AssetFormat, EncodedAsset, derive_name
from .codec import RasterBuffer, decode, encode
from .errors import EncodeError

logger = logging.getLogger(__name__)

# Quality search bounds (0.0-1.0 encoder quality)
QUALITY_LOW = 0.05
QUALITY_HIGH = 0.95

# Fixed iteration budgets
PERCENTAGE_ITERATIONS = 8
MAX_BYTES_ITERATIONS = 10

# Percentage targets are clamped here to avoid degenerate searches
MIN_PERCENTAGE = 10
MAX_PERCENTAGE = 90

# Fallback for an unreachable MaxBytes target
FALLBACK_QUALITY = 0.3
MIN_FALLBACK_SCALE = 0.05

# Lossless percentage -> scale floor
MIN_LOSSLESS_SCALE = 0.1


class CompressionMode(Enum):
    LOSSY = "lossy"
    LOSSLESS = "lossless"


@dataclass(frozen=True)
class Percentage:
    """Reduce size by `value` percent."""
    value: float

    def clamped(self) -> float:
        return max(MIN_PERCENTAGE, min(self.value, MAX_PERCENTAGE))

    def target_bytes(self, original_size: int) -> float:
        return original_size * (1 - self.clamped() / 100)


@dataclass(frozen=True)
class MaxBytes:
    """Do not exceed `value` bytes."""
    value: int

    def __post_init__(self):
        if self.value <= 0:
            raise ValueError(f"MaxBytes target must be positive, got {self.value}")

    @classmethod
    def from_kb(cls, kb: float) -> "MaxBytes":
        return cls(int(kb * 1024))


CompressionTarget = Union[Percentage, MaxBytes]


@dataclass(frozen=True)
class CompressionOptions:
    mode: CompressionMode
    target: CompressionTarget

    @classmethod
    def from_dict(cls, options: dict) -> "CompressionOptions":
        """
        Build from {"mode", "targetType", "percentage", "maxKB"}.

        targetType is "percentage" or "maxKB"; only the matching value is read.
        """
        mode = CompressionMode(options.get("mode", "lossy"))
        target_type = options.get("targetType", "percentage")
        if target_type == "percentage":
            target = Percentage(float(options.get("percentage", 50)))
        elif target_type == "maxKB":
            target = MaxBytes.from_kb(float(options.get("maxKB", 500)))
        else:
            raise ValueError(f"Unknown targetType '{target_type}' (expected 'percentage' or 'maxKB')")
        return cls(mode=mode, target=target)


@dataclass
class CompressionResult:
    """Compressed asset plus before/after sizes."""
    asset: EncodedAsset
    original_size: int
    compressed_size: int
    file_name: str
    unchanged: bool = False  # True when the original bytes were returned

    @property
    def reduction_pct(self) -> float:
        if self.original_size == 0:
            return 0
        return (1 - self.compressed_size / self.original_size) * 100

    def summary(self) -> str:
        return (
            f"{self.file_name}: {format_bytes(self.original_size)} -> "
            f"{format_bytes(self.compressed_size)} ({self.reduction_pct:.1f}%)"
        )


def format_bytes(size: int) -> str:
    """Human readable byte count."""
    if size == 0:
        return "0 B"
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


def estimate_compressed_size(original_size: int, options: CompressionOptions) -> int:
    """Size the caller can expect before running the search."""
    if isinstance(options.target, Percentage):
        return round(options.target.target_bytes(original_size))
    return min(original_size, options.target.value)


def output_format(fmt: AssetFormat) -> AssetFormat:
    """PNG and WEBP keep their format, everything else becomes JPG."""
    if fmt in (AssetFormat.PNG, AssetFormat.WEBP):
        return fmt
    return AssetFormat.JPG


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def search_quality(
    buffer: RasterBuffer,
    fmt: AssetFormat,
    target_bytes: float,
    iterations: int,
    name: str = ""
) -> Tuple[Optional[EncodedAsset], EncodedAsset]:
    """
    Binary search encoder quality for the best encode at or under target.

    `lo` only ever moves up onto a quality that fit, so the last success is
    the highest quality found under the target.

    Returns:
        (best, lowest) - best is None if no quality tried met the target,
        lowest is the encode at the lowest quality tried
    """
    lo, hi = QUALITY_LOW, QUALITY_HIGH
    best = None
    lowest = None
    lowest_quality = QUALITY_HIGH
    for i in range(iterations):
        mid = (lo + hi) / 2
        candidate = encode(buffer, fmt, quality=mid, name=name)
        fits = candidate.size <= target_bytes
        logger.debug(
            f"Search step {i + 1}/{iterations}: q={mid:.3f} -> "
            f"{candidate.size:,} bytes (target {target_bytes:,.0f}) {'ok' if fits else 'over'}"
        )
        if mid <= lowest_quality:
            lowest, lowest_quality = candidate, mid
        if fits:
            lo = mid
            best = candidate
        else:
            hi = mid
    return best, lowest


def compress_lossy(
    buffer: RasterBuffer,
    fmt: AssetFormat,
    original_size: int,
    target: CompressionTarget,
    name: str = ""
) -> EncodedAsset:
    """Quality search with the fallback each target type defines."""
    if isinstance(target, Percentage):
        target_bytes = target.target_bytes(original_size)
        best, lowest = search_quality(buffer, fmt, target_bytes, PERCENTAGE_ITERATIONS, name)
        if best is None:
            logger.info(
                f"{name}: {target.clamped():.0f}% reduction unreachable, "
                f"using lowest quality tried ({lowest.size:,} bytes)"
            )
            best = lowest
        return best

    target_bytes = target.value
    best, _ = search_quality(buffer, fmt, target_bytes, MAX_BYTES_ITERATIONS, name)
    if best is None:
        scale = _clamp(math.sqrt(target_bytes / original_size), MIN_FALLBACK_SCALE, 1)
        logger.info(
            f"{name}: {target_bytes:,} bytes unreachable by quality alone, "
            f"using q={FALLBACK_QUALITY} scale={scale:.3f}"
        )
        best = encode(buffer, fmt, quality=FALLBACK_QUALITY, scale=scale, name=name)
    return best


def compress_lossless(
    buffer: RasterBuffer,
    target: CompressionTarget,
    name: str = ""
) -> EncodedAsset:
    """
    PNG has no quality axis, so shrink the image instead.

    Percentage maps to scale sqrt(1 - p/100), assuming size tracks pixel
    count. A MaxBytes target gets one corrective pass if the first encode
    is still too big.
    """
    if isinstance(target, Percentage):
        scale = _clamp(math.sqrt(1 - target.clamped() / 100), MIN_LOSSLESS_SCALE, 1)
        return encode(buffer, AssetFormat.PNG, scale=scale, name=name)

    first = encode(buffer, AssetFormat.PNG, scale=1.0, name=name)
    if first.size <= target.value:
        return first

    scale = _clamp(math.sqrt(target.value / first.size), MIN_FALLBACK_SCALE, 1)
    logger.debug(f"{name}: first pass {first.size:,} bytes over {target.value:,}, rescaling to {scale:.3f}")
    return encode(buffer, AssetFormat.PNG, scale=scale, name=name)


def compress_pdf(asset: EncodedAsset, mode: CompressionMode) -> CompressionResult:
    """
    Re-save a PDF. Lossy generates object streams, lossless preserves them.

    Any failure returns the original bytes.
    """
    file_name = derive_name(asset, "_compressed", AssetFormat.PDF)
    stream_mode = (
        pikepdf.ObjectStreamMode.generate if mode is CompressionMode.LOSSY
        else pikepdf.ObjectStreamMode.preserve
    )
    try:
        with pikepdf.open(io.BytesIO(asset.data)) as pdf:
            out = io.BytesIO()
            pdf.save(out, compress_streams=True, object_stream_mode=stream_mode)
        data = out.getvalue()
    except Exception as e:
        logger.warning(f"{asset.name}: PDF re-save failed, keeping original ({e})")
        return _unchanged(asset)

    result = EncodedAsset(name=file_name, data=data, format=AssetFormat.PDF)
    return CompressionResult(
        asset=result,
        original_size=asset.size,
        compressed_size=result.size,
        file_name=file_name
    )


def _unchanged(asset: EncodedAsset) -> CompressionResult:
    return CompressionResult(
        asset=asset,
        original_size=asset.size,
        compressed_size=asset.size,
        file_name=asset.name,
        unchanged=True
    )


def compress(asset: EncodedAsset, options: Union[CompressionOptions, dict]) -> CompressionResult:
    """
    Compress an asset toward a size target.

    Args:
        asset: Input file
        options: CompressionOptions or the equivalent options dict

    Returns:
        CompressionResult with sizes before and after

    Raises:
        DecodeError: raster input is malformed
    """
    if isinstance(options, dict):
        options = CompressionOptions.from_dict(options)

    if asset.format is AssetFormat.PDF:
        result = compress_pdf(asset, options.mode)
        logger.info(result.summary())
        return result

    if not asset.format.is_raster:
        logger.info(f"{asset.name}: {asset.format.value} has no compressor, passing through")
        return _unchanged(asset)

    buffer = decode(asset)
    fmt = output_format(asset.format)
    file_name = derive_name(asset, "_compressed", fmt)

    try:
        if options.mode is CompressionMode.LOSSLESS and not fmt.has_quality_axis:
            output = compress_lossless(buffer, options.target, file_name)
        else:
            output = compress_lossy(buffer, fmt, asset.size, options.target, file_name)
    except EncodeError as e:
        logger.warning(f"{asset.name}: re-encode failed, keeping original ({e})")
        return _unchanged(asset)

    result = CompressionResult(
        asset=output,
        original_size=asset.size,
        compressed_size=output.size,
        file_name=file_name
    )
    logger.info(result.summary())
    return result
