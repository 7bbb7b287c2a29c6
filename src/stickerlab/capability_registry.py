from __future__ import annotations

"""Capability registry – maps conversion kinds to ordered tool candidates.

The order of each list is the fallback order.  Adding, removing or reordering
a converter is an edit to ``DEFAULT_REGISTRY``; the runner never special-cases
a tool by name.
"""

from collections.abc import Mapping, Sequence

from .external_engines import (
    cwebp_command,
    dwebp_command,
    ffmpeg_animated_webp_command,
    ffmpeg_extract_frame_command,
    gif2webp_command,
    imagemagick_first_frame_png_command,
    imagemagick_still_webp_command,
)
from .tool_interfaces import ConversionKind, ToolDescriptor

Registry = Mapping[ConversionKind, Sequence[ToolDescriptor]]

# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------

CWEBP = ToolDescriptor(
    name="cwebp",
    tool_key="cwebp",
    build_command=cwebp_command,
    output_suffix=".webp",
    input_suffix=".png",
)

IMAGEMAGICK_WEBP = ToolDescriptor(
    name="imagemagick",
    tool_key="imagemagick",
    build_command=imagemagick_still_webp_command,
    output_suffix=".webp",
    input_suffix=".png",
)

GIF2WEBP = ToolDescriptor(
    name="gif2webp",
    tool_key="gif2webp",
    build_command=gif2webp_command,
    output_suffix=".webp",
    input_suffix=".gif",
)

FFMPEG_GIF_WEBP = ToolDescriptor(
    name="ffmpeg",
    tool_key="ffmpeg",
    build_command=ffmpeg_animated_webp_command,
    output_suffix=".webp",
    input_suffix=".gif",
)

FFMPEG_VIDEO_WEBP = ToolDescriptor(
    name="ffmpeg",
    tool_key="ffmpeg",
    build_command=ffmpeg_animated_webp_command,
    output_suffix=".webp",
    input_suffix=".mp4",
)

FFMPEG_FRAME = ToolDescriptor(
    name="ffmpeg",
    tool_key="ffmpeg",
    build_command=ffmpeg_extract_frame_command,
    output_suffix=".png",
    input_suffix=".mp4",
)

IMAGEMAGICK_FRAME = ToolDescriptor(
    name="imagemagick",
    tool_key="imagemagick",
    build_command=imagemagick_first_frame_png_command,
    output_suffix=".png",
    input_suffix=".mp4",
)

DWEBP = ToolDescriptor(
    name="dwebp",
    tool_key="dwebp",
    build_command=dwebp_command,
    output_suffix=".png",
    input_suffix=".webp",
)

IMAGEMAGICK_PNG = ToolDescriptor(
    name="imagemagick",
    tool_key="imagemagick",
    build_command=imagemagick_first_frame_png_command,
    output_suffix=".png",
    input_suffix=".webp",
)

CWEBP_OPTIMIZE = ToolDescriptor(
    name="cwebp",
    tool_key="cwebp",
    build_command=cwebp_command,
    output_suffix=".webp",
    input_suffix=".webp",
)

DEFAULT_REGISTRY: dict[ConversionKind, list[ToolDescriptor]] = {
    ConversionKind.STILL_TO_WEBP: [CWEBP, IMAGEMAGICK_WEBP],
    ConversionKind.GIF_TO_WEBP: [GIF2WEBP, FFMPEG_GIF_WEBP],
    ConversionKind.VIDEO_TO_WEBP: [FFMPEG_VIDEO_WEBP],
    ConversionKind.FRAME_TO_PNG: [FFMPEG_FRAME, IMAGEMAGICK_FRAME],
    ConversionKind.WEBP_TO_PNG: [DWEBP, IMAGEMAGICK_PNG],
    ConversionKind.WEBP_OPTIMIZE: [CWEBP_OPTIMIZE],
}


def tools_for(kind: ConversionKind, registry: Registry | None = None) -> list[ToolDescriptor]:
    """Return every registered descriptor for *kind* in fallback order.

    Availability is not checked here; see :meth:`ToolchainRunner.candidates`.
    """
    source = DEFAULT_REGISTRY if registry is None else registry
    return list(source.get(kind, ()))

