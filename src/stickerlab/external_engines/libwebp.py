"""Command builders for the libwebp command-line tools.

cwebp (still encoder):
- ``-q Q`` lossy quality 0–100, ``-m 6`` slowest / smallest method
- reads PNG, JPEG, TIFF and WebP input
- ``-metadata none`` drops EXIF/XMP

gif2webp (GIF → animated WebP):
- ``-lossy`` encodes frames lossily, ``-mixed`` lets it pick per frame
- cannot rescale or drop frames; callers pre-scale the GIF

dwebp (decoder):
- writes PNG by default; only the first frame of animated files is supported
  by older releases, so animated stickers go through ImageMagick instead.
"""

from __future__ import annotations

from pathlib import Path

from ..tool_interfaces import EncodeParams

__all__ = [
    "cwebp_command",
    "dwebp_command",
    "gif2webp_command",
]


def cwebp_command(binary: str, input_path: Path, output_path: Path, params: EncodeParams) -> list[str]:
    """Encode a still image (already scaled) into a lossy WebP."""
    return [
        binary,
        "-quiet",
        "-q",
        str(params.quality),
        "-m",
        "6",
        "-metadata",
        "none",
        str(input_path),
        "-o",
        str(output_path),
    ]


def gif2webp_command(binary: str, input_path: Path, output_path: Path, params: EncodeParams) -> list[str]:
    """Encode a (pre-scaled) GIF into an animated WebP."""
    return [
        binary,
        "-quiet",
        "-q",
        str(params.quality),
        "-m",
        "6",
        "-lossy",
        "-mixed",
        str(input_path),
        "-o",
        str(output_path),
    ]


def dwebp_command(binary: str, input_path: Path, output_path: Path, params: EncodeParams) -> list[str]:
    """Decode a WebP into PNG.  *params* are accepted for a uniform signature."""
    return [binary, "-quiet", str(input_path), "-o", str(output_path)]
