"""
segmentation.py - Color-based background removal.

REQUIREMENTS:
- Seed from the four image corners
- Flood fill with 4-connectivity, explicit stack (no recursion)
- A pixel joins a region if its RGB distance to THAT seed's color is within
  tolerance; regions from all seeds are unioned
- Background pixels get alpha 0
- Remaining pixels touching a transparent pixel get alpha 128

Output:
- Alpha mask: TRANSPARENT / EDGE / OPAQUE per pixel
- PNG with the background cut out, plus the same bytes as a preview
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Tuple

import numpy as np
import cv2

from .assets import AssetFormat, EncodedAsset, derive_name
from .codec import RasterBuffer, decode, encode, to_data_url

logger = logging.getLogger(__name__)

# Tolerance range (Euclidean RGB distance)
DEFAULT_TOLERANCE = 40
MIN_TOLERANCE = 5
MAX_TOLERANCE = 100

# Alpha given to foreground pixels on the cutout boundary
EDGE_ALPHA = 128


class AlphaClass(IntEnum):
    OPAQUE = 0
    TRANSPARENT = 1
    EDGE = 2


@dataclass
class SegmentationResult:
    """Per-pixel classification of one buffer."""
    mask: np.ndarray                # (h, w) uint8 of AlphaClass values
    background: np.ndarray          # (h, w) bool, pixels reached from a corner
    background_coverage: float      # Fraction of pixels in background
    seeds: List[Tuple[int, int]]    # (x, y) corners used


@dataclass
class BackgroundRemovalResult:
    """Cutout PNG and a preview of it."""
    asset: EncodedAsset
    preview: EncodedAsset
    segmentation: SegmentationResult

    @property
    def data_url(self) -> str:
        return to_data_url(self.preview)


def corner_seeds(width: int, height: int) -> List[Tuple[int, int]]:
    """Four corners as (x, y), duplicates dropped for 1-pixel images."""
    corners = [(0, 0), (width - 1, 0), (0, height - 1), (width - 1, height - 1)]
    return list(dict.fromkeys(corners))


def flood_fill(rgb: np.ndarray, seed_x: int, seed_y: int, tolerance: float) -> np.ndarray:
    """
    Region reachable from the seed through pixels close to the seed's color.

    Args:
        rgb: (h, w, 3) uint8 array
        seed_x, seed_y: Seed pixel
        tolerance: Max Euclidean RGB distance to the seed color

    Returns:
        (h, w) bool mask of the filled region
    """
    height, width = rgb.shape[:2]
    total = height * width

    # Distance is always measured against the seed, not a running average
    seed_color = rgb[seed_y, seed_x].astype(np.float64)
    diff = rgb.astype(np.float64) - seed_color
    within = (np.sqrt(np.sum(diff * diff, axis=2)) <= tolerance).ravel()

    visited = np.zeros(total, dtype=bool)
    stack = [seed_y * width + seed_x]
    while stack:
        index = stack.pop()
        if visited[index] or not within[index]:
            continue
        visited[index] = True

        x = index % width
        if x + 1 < width:
            stack.append(index + 1)
        if x > 0:
            stack.append(index - 1)
        if index + width < total:
            stack.append(index + width)
        if index >= width:
            stack.append(index - width)

    return visited.reshape(height, width)


def compute_alpha_mask(buffer: RasterBuffer, tolerance: float = DEFAULT_TOLERANCE) -> SegmentationResult:
    """
    Classify every pixel of an untouched buffer.

    Pixels that were already fully transparent count as TRANSPARENT too, so
    their neighbours become EDGE just like background neighbours.
    """
    rgb = np.ascontiguousarray(buffer.rgb)
    seeds = corner_seeds(buffer.width, buffer.height)

    background = np.zeros((buffer.height, buffer.width), dtype=bool)
    for x, y in seeds:
        region = flood_fill(rgb, x, y, tolerance)
        logger.debug(
            f"Seed ({x},{y}) color={tuple(int(c) for c in rgb[y, x])}: "
            f"{int(region.sum()):,} pixels"
        )
        background |= region

    transparent = background | (buffer.alpha == 0)

    # 4-neighbour dilation: cross kernel, out-of-image pixels don't count
    kernel = cv2.getStructuringElement(cv2.MORPH_CROSS, (3, 3))
    near_transparent = cv2.dilate(transparent.astype(np.uint8), kernel, iterations=1).astype(bool)
    edge = near_transparent & ~transparent

    mask = np.full(background.shape, AlphaClass.OPAQUE, dtype=np.uint8)
    mask[transparent] = AlphaClass.TRANSPARENT
    mask[edge] = AlphaClass.EDGE

    coverage = float(background.sum()) / (buffer.width * buffer.height)
    return SegmentationResult(
        mask=mask,
        background=background,
        background_coverage=coverage,
        seeds=seeds
    )


def apply_alpha_mask(buffer: RasterBuffer, segmentation: SegmentationResult) -> RasterBuffer:
    """Return a copy with background zeroed and edges softened."""
    result = buffer.copy()
    alpha = result.pixels[:, :, 3]
    alpha[segmentation.background] = 0
    alpha[segmentation.mask == AlphaClass.EDGE] = EDGE_ALPHA
    return result


def remove_background(asset: EncodedAsset, tolerance: float = DEFAULT_TOLERANCE) -> BackgroundRemovalResult:
    """
    Cut the corner-connected background out of an image.

    Args:
        asset: JPG, PNG or WEBP
        tolerance: RGB distance, clamped to 5-100

    Returns:
        BackgroundRemovalResult with a transparent PNG

    Raises:
        DecodeError: asset is not a raster image
    """
    tolerance = max(MIN_TOLERANCE, min(tolerance, MAX_TOLERANCE))

    buffer = decode(asset)
    segmentation = compute_alpha_mask(buffer, tolerance)
    cutout = apply_alpha_mask(buffer, segmentation)

    file_name = derive_name(asset, "_nobg", AssetFormat.PNG)
    output = encode(cutout, AssetFormat.PNG, name=file_name)
    preview = EncodedAsset(name=file_name, data=output.data, format=AssetFormat.PNG)

    edge_count = int(np.sum(segmentation.mask == AlphaClass.EDGE))
    logger.info(
        f"{asset.name}: background={segmentation.background_coverage * 100:.1f}%, "
        f"edge pixels={edge_count:,}, tolerance={tolerance}"
    )

    return BackgroundRemovalResult(asset=output, preview=preview, segmentation=segmentation)
