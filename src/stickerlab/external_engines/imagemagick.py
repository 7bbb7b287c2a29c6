from __future__ import annotations

from pathlib import Path

from ..tool_interfaces import EncodeParams

__all__ = [
    "still_webp_command",
    "first_frame_png_command",
]


def still_webp_command(
    binary: str, input_path: Path, output_path: Path, params: EncodeParams
) -> list[str]:
    """Encode the first frame of *input_path* as a lossy WebP via ImageMagick.

    ``-resize DxD>`` only ever shrinks, so pre-scaled input passes unchanged.
    """
    d = params.dimension
    return [
        binary,
        f"{input_path}[0]",
        "-resize",
        f"{d}x{d}>",
        "-strip",
        "-quality",
        str(params.quality),
        "-define",
        "webp:method=6",
        str(output_path),
    ]


def first_frame_png_command(
    binary: str, input_path: Path, output_path: Path, params: EncodeParams
) -> list[str]:
    """Write the first frame of any ImageMagick-readable input as PNG."""
    return [binary, f"{input_path}[0]", str(output_path)]
