from __future__ import annotations

from pathlib import Path

from ..tool_interfaces import EncodeParams

__all__ = [
    "animated_webp_command",
    "extract_frame_command",
]


def _scale_filter(params: EncodeParams) -> str:
    d = params.dimension
    return f"scale={d}:{d}:force_original_aspect_ratio=decrease:flags=lanczos"


def animated_webp_command(
    binary: str, input_path: Path, output_path: Path, params: EncodeParams
) -> list[str]:
    """Transcode a GIF or video clip into a looping animated WebP.

    The clip is cut to ``params.max_seconds``, resampled to at most
    ``params.fps`` and scaled so the longer side equals ``params.dimension``.
    FFmpeg's ``-q:v`` for libwebp is the quality factor (0–100).
    """
    return [
        binary,
        "-y",
        "-v",
        "error",
        "-t",
        str(params.max_seconds),
        "-i",
        str(input_path),
        "-vf",
        f"fps={params.fps},{_scale_filter(params)}",
        "-c:v",
        "libwebp",
        "-lossless",
        "0",
        "-q:v",
        str(params.quality),
        "-compression_level",
        "6",
        "-loop",
        "0",
        "-an",
        "-vsync",
        "0",
        str(output_path),
    ]


def extract_frame_command(
    binary: str, input_path: Path, output_path: Path, params: EncodeParams
) -> list[str]:
    """Grab the first decodable frame of a clip as PNG."""
    return [
        binary,
        "-y",
        "-v",
        "error",
        "-i",
        str(input_path),
        "-frames:v",
        "1",
        str(output_path),
    ]
