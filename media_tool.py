#!/usr/bin/env python3
"""
media_tool.py - Command-line front end for media_engine.

Usage:
    python media_tool.py compress photo.jpg scan.pdf --percentage 60
    python media_tool.py compress logo.png --mode lossless --max-kb 200
    python media_tool.py remove-bg product.png --tolerance 30
    python media_tool.py scrub *.jpg report.pdf --output-dir ./clean/
    python media_tool.py convert slides.pdf --to png
    python media_tool.py merge a.pdf b.pdf c.pdf -o combined.pdf
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent to path when running as script
if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent))

from media_engine import (
    AssetFormat,
    CompressionMode,
    CompressionOptions,
    EncodedAsset,
    MaxBytes,
    MediaError,
    Percentage,
    compress,
    convert,
    merge_documents,
    process_batch,
    remove_background,
    scrub_metadata,
)
from media_engine.compression import format_bytes


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Compress, clean, convert and merge images and PDFs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Supported formats: PDF, JPG, PNG, WEBP, DOCX, SVG

Multiple inputs are processed one at a time; a failing file is reported
and the rest of the batch continues.
"""
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Output directory (default: current directory)"
    )
    common.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    p = commands.add_parser("compress", parents=[common], help="Compress toward a size target")
    p.add_argument("input", nargs="+", type=Path, help="Input file(s)")
    p.add_argument(
        "-m", "--mode",
        choices=[m.value for m in CompressionMode],
        default="lossy",
        help="Compression mode (default: lossy)"
    )
    target = p.add_mutually_exclusive_group()
    target.add_argument(
        "-p", "--percentage",
        type=float,
        default=50,
        help="Reduce size by this percent, 10-90 (default: 50)"
    )
    target.add_argument(
        "-k", "--max-kb",
        type=float,
        help="Do not exceed this many KB"
    )

    p = commands.add_parser("remove-bg", parents=[common], help="Cut out the background")
    p.add_argument("input", nargs="+", type=Path, help="Input image(s)")
    p.add_argument(
        "-t", "--tolerance",
        type=int,
        default=40,
        help="Color distance 5-100 (default: 40)"
    )

    p = commands.add_parser("scrub", parents=[common], help="Strip metadata")
    p.add_argument("input", nargs="+", type=Path, help="Input file(s)")

    p = commands.add_parser("convert", parents=[common], help="Convert between formats")
    p.add_argument("input", nargs="+", type=Path, help="Input file(s)")
    p.add_argument("--to", required=True, help="Target format")
    p.add_argument("--from", dest="from_format", help="Source format (default: from extension)")

    p = commands.add_parser("merge", parents=[common], help="Merge PDFs in the given order")
    p.add_argument("input", nargs="+", type=Path, help="Input PDFs, in merge order")
    p.add_argument("-o", "--output", type=Path, help="Output file (default: merged.pdf)")

    return parser.parse_args(argv)


def print_progress(current: int, total: int):
    """Print progress bar."""
    width = 40
    filled = int(width * current / total)
    bar = "=" * filled + "-" * (width - filled)
    pct = current / total * 100
    print(f"\r[{bar}] {current}/{total} ({pct:.0f}%)", end="", file=sys.stderr)
    if current == total:
        print(file=sys.stderr)


def load_inputs(paths, from_format=None):
    """Read input files, skipping missing or unrecognised ones."""
    assets = []
    for p in paths:
        if not p.exists():
            print(f"Error: File not found: {p}", file=sys.stderr)
            continue
        try:
            fmt = AssetFormat.from_name(from_format) if from_format else AssetFormat.from_filename(p)
        except ValueError as e:
            print(f"Warning: Skipping {p}: {e}", file=sys.stderr)
            continue
        assets.append(EncodedAsset(name=p.name, data=p.read_bytes(), format=fmt))
    return assets


def write_asset(asset: EncodedAsset, output_dir: Path, name: str = None) -> Path:
    path = output_dir / (name or asset.name)
    path.write_bytes(asset.data)
    return path


def build_transform(args):
    """Map the parsed command to a transform and a way to save its result."""
    if args.command == "compress":
        if args.max_kb is not None:
            target = MaxBytes.from_kb(args.max_kb)
        else:
            target = Percentage(args.percentage)
        options = CompressionOptions(mode=CompressionMode(args.mode), target=target)

        def save(result):
            write_asset(result.asset, args.output_dir, result.file_name)
            print(result.summary())
        return (lambda asset: compress(asset, options)), save

    if args.command == "remove-bg":
        def save(result):
            path = write_asset(result.asset, args.output_dir)
            print(f"{path.name}: {result.segmentation.background_coverage * 100:.1f}% background removed")
        return (lambda asset: remove_background(asset, args.tolerance)), save

    if args.command == "scrub":
        def save(result):
            write_asset(result.asset, args.output_dir, result.file_name)
            print(f"{result.file_name}: removed {', '.join(result.removed_fields)}")
        return scrub_metadata, save

    to_format = AssetFormat.from_name(args.to)

    def save(results):
        for asset in results:
            path = write_asset(asset, args.output_dir)
            print(f"{path.name}: {format_bytes(asset.size)}")
    return (lambda asset: convert(asset, asset.format, to_format)), save


def run_merge(args) -> int:
    assets = load_inputs(args.input)
    if len(assets) != len(args.input):
        return 1
    try:
        merged = merge_documents(assets)
    except MediaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    output = args.output or args.output_dir / merged.name
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(merged.data)
    print(f"{output.name}: {len(assets)} documents, {format_bytes(merged.size)}")
    return 0


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)
    args.output_dir.mkdir(parents=True, exist_ok=True)

    if args.command == "merge":
        sys.exit(run_merge(args))

    try:
        transform, save = build_transform(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    assets = load_inputs(args.input, getattr(args, "from_format", None))
    if not assets:
        print("Error: No valid input files", file=sys.stderr)
        sys.exit(1)

    result = process_batch(assets, transform, progress_callback=print_progress)

    for item in result.items:
        if item.success:
            save(item.output)
        else:
            print(f"Error: {item.name}: {item.error}", file=sys.stderr)

    print(f"\nBatch complete: {result.items_ok}/{result.item_count} files")
    sys.exit(0 if result.success and len(assets) == len(args.input) else 1)


if __name__ == "__main__":
    main()
