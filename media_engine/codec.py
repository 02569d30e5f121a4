"""
codec.py - Pixel buffer decode/encode.

Decodes JPG/PNG/WEBP into an RGBA numpy buffer and encodes a buffer back
into one of those formats at a given quality and scale.

Encoding always starts from the raw pixel array, so nothing from the
source file (EXIF, ICC profile, text chunks) is carried over.
"""

import base64
import io
import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError
import cv2

from .assets import AssetFormat, EncodedAsset
from .errors import DecodeError, EncodeError

logger = logging.getLogger(__name__)

# Quality used when the caller doesn't ask for one
DEFAULT_QUALITY = 0.92

# Pillow format names
_PIL_FORMATS = {
    AssetFormat.JPG: "JPEG",
    AssetFormat.PNG: "PNG",
    AssetFormat.WEBP: "WEBP",
}

# Pillow formats accepted when decoding each declared format
# (JPEGs with multi-picture EXIF open as MPO)
_DECODED_AS = {
    AssetFormat.JPG: ("JPEG", "MPO"),
    AssetFormat.PNG: ("PNG",),
    AssetFormat.WEBP: ("WEBP",),
}


@dataclass
class RasterBuffer:
    """Decoded RGBA pixel grid."""
    width: int
    height: int
    pixels: np.ndarray  # (height, width, 4) uint8

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise DecodeError(f"Invalid dimensions {self.width}x{self.height}")
        if self.pixels.dtype != np.uint8 or self.pixels.shape != (self.height, self.width, 4):
            raise DecodeError(
                f"Pixel array {self.pixels.shape} does not match {self.width}x{self.height} RGBA"
            )

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "RasterBuffer":
        """Wrap an (h, w, 3|4) array, adding an opaque alpha channel if missing."""
        if pixels.ndim == 2:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_GRAY2RGBA)
        elif pixels.shape[2] == 3:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_RGB2RGBA)
        pixels = np.ascontiguousarray(pixels, dtype=np.uint8)
        height, width = pixels.shape[:2]
        return cls(width=width, height=height, pixels=pixels)

    @property
    def nbytes(self) -> int:
        return self.pixels.nbytes

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[:, :, 3]

    @property
    def is_opaque(self) -> bool:
        return bool(np.all(self.alpha == 255))

    def copy(self) -> "RasterBuffer":
        return RasterBuffer(self.width, self.height, self.pixels.copy())


def decode(asset: EncodedAsset) -> RasterBuffer:
    """
    Decode a raster asset into an RGBA buffer.

    EXIF orientation is applied so the buffer matches what a viewer shows.

    Raises:
        DecodeError: asset is not a raster format, the bytes are malformed,
            or they hold a different format than declared
    """
    if not asset.format.is_raster:
        raise DecodeError(f"{asset.name or 'input'}: {asset.format.value} is not a raster image")

    expected = _DECODED_AS[asset.format]
    try:
        with Image.open(io.BytesIO(asset.data)) as img:
            if img.format not in expected:
                raise DecodeError(
                    f"{asset.name or 'input'}: declared {asset.format.value} "
                    f"but the bytes are {img.format or 'unknown'}"
                )
            img.load()
            img = ImageOps.exif_transpose(img)
            pixels = np.asarray(img.convert("RGBA"), dtype=np.uint8).copy()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
        raise DecodeError(
            f"{asset.name or 'input'}: not a valid {asset.format.value} image ({e})"
        ) from e

    buffer = RasterBuffer.from_array(pixels)
    logger.debug(f"Decoded {asset.name}: {buffer.width}x{buffer.height} from {asset.size:,} bytes")
    return buffer


def resample(
    buffer: RasterBuffer,
    scale: float,
    interpolation: int = cv2.INTER_AREA
) -> RasterBuffer:
    """Scale width and height by `scale`, never below 1 pixel."""
    if scale == 1:
        return buffer
    new_width = max(1, round(buffer.width * scale))
    new_height = max(1, round(buffer.height * scale))
    resized = cv2.resize(buffer.pixels, (new_width, new_height), interpolation=interpolation)
    return RasterBuffer(new_width, new_height, np.ascontiguousarray(resized))


def composite_over_white(buffer: RasterBuffer) -> RasterBuffer:
    """Flatten transparency onto a solid white background."""
    if buffer.is_opaque:
        return buffer
    alpha = buffer.alpha.astype(np.float32)[:, :, None] / 255.0
    rgb = buffer.rgb.astype(np.float32) * alpha + 255.0 * (1.0 - alpha)
    pixels = np.empty_like(buffer.pixels)
    pixels[:, :, :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    pixels[:, :, 3] = 255
    return RasterBuffer(buffer.width, buffer.height, pixels)


def _pil_quality(quality: float) -> int:
    """Map a 0.0-1.0 quality scalar onto Pillow's 1-100."""
    return max(1, min(100, round(quality * 100)))


def encode(
    buffer: RasterBuffer,
    fmt: AssetFormat,
    quality: float = DEFAULT_QUALITY,
    scale: float = 1.0,
    interpolation: int = cv2.INTER_AREA,
    name: str = ""
) -> EncodedAsset:
    """
    Encode a buffer into a raster format.

    Args:
        buffer: RGBA buffer
        fmt: JPG, PNG or WEBP
        quality: 0.0-1.0, ignored for PNG
        scale: 0 < scale <= 1, resample before encoding
        interpolation: OpenCV interpolation flag used for resampling
        name: File name for the resulting asset

    Raises:
        EncodeError: target can't hold a raster or the encoder failed
    """
    if fmt not in _PIL_FORMATS:
        raise EncodeError(f"Cannot encode a raster buffer as {fmt.value}")
    if not 0 < scale <= 1:
        raise EncodeError(f"Scale must be in (0, 1], got {scale}")

    buffer = resample(buffer, scale, interpolation)

    if fmt is AssetFormat.JPG:
        # JPEG has no alpha channel
        img = Image.fromarray(np.ascontiguousarray(buffer.rgb))
    else:
        img = Image.fromarray(buffer.pixels)

    options = {}
    if fmt is AssetFormat.JPG:
        options = {"quality": _pil_quality(quality), "optimize": True}
    elif fmt is AssetFormat.WEBP:
        options = {"quality": _pil_quality(quality)}

    out = io.BytesIO()
    try:
        img.save(out, format=_PIL_FORMATS[fmt], **options)
    except (OSError, ValueError) as e:
        raise EncodeError(f"{fmt.value} encoder failed for {buffer.width}x{buffer.height}: {e}") from e

    data = out.getvalue()
    logger.debug(
        f"Encoded {fmt.value} {buffer.width}x{buffer.height} "
        f"q={quality:.3f} scale={scale:.3f}: {len(data):,} bytes"
    )
    return EncodedAsset(name=name, data=data, format=fmt)


def to_data_url(asset: EncodedAsset) -> str:
    """Inline an asset as a base64 data URL."""
    payload = base64.b64encode(asset.data).decode("ascii")
    return f"data:{asset.format.mime_type};base64,{payload}"
