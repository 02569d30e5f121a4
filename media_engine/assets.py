"""
assets.py - Formats and encoded assets.

An EncodedAsset is one file: a name, its bytes and the declared format.
Assets are immutable; every transform returns new ones.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union

from .errors import UnsupportedFormatError


class AssetFormat(Enum):
    """Closed set of supported formats."""
    PDF = "PDF"
    JPG = "JPG"
    PNG = "PNG"
    WEBP = "WEBP"
    DOCX = "DOCX"
    SVG = "SVG"

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]

    @property
    def extension(self) -> str:
        return self.value.lower()

    @property
    def is_raster(self) -> bool:
        return self in (AssetFormat.JPG, AssetFormat.PNG, AssetFormat.WEBP)

    @property
    def has_quality_axis(self) -> bool:
        """True for encoders with a continuous quality setting."""
        return self in (AssetFormat.JPG, AssetFormat.WEBP)

    @property
    def supports_alpha(self) -> bool:
        return self in (AssetFormat.PNG, AssetFormat.WEBP)

    @classmethod
    def from_name(cls, name: str) -> "AssetFormat":
        """Parse 'jpg', '.JPEG', 'Png', ... into a format."""
        key = name.strip().lstrip(".").upper()
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise UnsupportedFormatError(
                f"Unsupported format '{name}' (expected one of "
                f"{', '.join(f.value for f in cls)})"
            ) from None

    @classmethod
    def from_filename(cls, filename: Union[str, Path]) -> "AssetFormat":
        suffix = Path(filename).suffix
        if not suffix:
            raise UnsupportedFormatError(f"Cannot infer format of '{filename}': no extension")
        return cls.from_name(suffix)


_MIME_TYPES = {
    AssetFormat.PDF: "application/pdf",
    AssetFormat.JPG: "image/jpeg",
    AssetFormat.PNG: "image/png",
    AssetFormat.WEBP: "image/webp",
    AssetFormat.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    AssetFormat.SVG: "image/svg+xml",
}

_ALIASES = {"JPEG": "JPG"}


@dataclass(frozen=True)
class EncodedAsset:
    """One file's bytes tagged with its format."""
    name: str
    data: bytes
    format: AssetFormat

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def base_name(self) -> str:
        """File name without its last extension."""
        stem = Path(self.name).stem if self.name else ""
        return stem or "file"


def derive_name(base: Union[str, EncodedAsset], suffix: str, fmt: AssetFormat) -> str:
    """Build '{base}{suffix}.{ext}' for an output file."""
    if isinstance(base, EncodedAsset):
        base = base.base_name
    return f"{base}{suffix}.{fmt.extension}"
