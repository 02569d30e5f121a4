"""
pipeline.py - Sequential batch processing.

Items run strictly one after another: a transform finishes (decode, search,
encode) before the next one starts, so at most one decoded buffer is alive.
A failing item is recorded and the batch moves on.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from .assets import EncodedAsset

logger = logging.getLogger(__name__)


@dataclass
class ItemStats:
    """Outcome of one item in a batch."""
    index: int
    name: str
    success: bool
    error: Optional[str] = None
    process_time: float = 0.0
    input_size: int = 0
    output: Any = None


@dataclass
class BatchResult:
    """Result of running a transform over several assets."""
    items: List[ItemStats] = field(default_factory=list)
    total_time: float = 0.0

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def items_ok(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def items_failed(self) -> int:
        return self.item_count - self.items_ok

    @property
    def success(self) -> bool:
        return self.items_failed == 0

    @property
    def outputs(self) -> list:
        return [item.output for item in self.items if item.success]

    @property
    def input_size(self) -> int:
        return sum(item.input_size for item in self.items)

    def summary(self) -> str:
        lines = [
            f"Items: {self.items_ok}/{self.item_count} ok",
            f"Input: {self.input_size:,} bytes",
            f"Time: {self.total_time:.1f}s",
        ]
        for item in self.items:
            if not item.success:
                lines.append(f"  FAILED {item.name}: {item.error}")
        return "\n".join(lines)


def process_item(
    index: int,
    asset: EncodedAsset,
    transform: Callable[[EncodedAsset], Any]
) -> ItemStats:
    """Run one transform, capturing any failure as the item's error."""
    stats = ItemStats(index=index, name=asset.name, success=False, input_size=asset.size)

    try:
        start = time.time()
        stats.output = transform(asset)
        stats.process_time = time.time() - start
        stats.success = True
    except Exception as e:
        logger.error(f"{asset.name} failed: {e}")
        stats.error = str(e)

    return stats


def process_batch(
    assets: Sequence[EncodedAsset],
    transform: Callable[[EncodedAsset], Any],
    progress_callback: Optional[Callable[[int, int], None]] = None
) -> BatchResult:
    """
    Apply a transform to each asset in order.

    Args:
        assets: Inputs, processed in the given order
        transform: Callable taking one asset
        progress_callback: Optional callback(current, total) after each item

    Returns:
        BatchResult with per-item stats
    """
    result = BatchResult()
    start_time = time.time()
    total = len(assets)

    logger.info(f"Processing batch of {total} item(s)")

    for index, asset in enumerate(assets):
        result.items.append(process_item(index, asset, transform))
        if progress_callback:
            progress_callback(index + 1, total)

    result.total_time = time.time() - start_time
    logger.info(f"\n{result.summary()}")
    return result
