from __future__ import annotations

"""Interfaces shared by the tool registry, the runner and the engines.

A conversion *kind* (e.g. GIF → animated WebP) maps to an ordered list of
``ToolDescriptor`` entries.  A descriptor is plain data: the tool key used for
discovery, an optional probe override and a command builder.  Adding or
removing a tool is a change to the registry, never to the runner.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

CommandBuilder = Callable[[str, Path, Path, "EncodeParams"], list[str]]
Probe = Callable[[], "str | None"]


class ConversionKind(Enum):
    """Conversions the external toolchain can perform."""

    STILL_TO_WEBP = "still_to_webp"
    GIF_TO_WEBP = "gif_to_webp"
    VIDEO_TO_WEBP = "video_to_webp"
    FRAME_TO_PNG = "frame_to_png"
    WEBP_TO_PNG = "webp_to_png"
    WEBP_OPTIMIZE = "webp_optimize"


@dataclass(frozen=True, slots=True)
class EncodeParams:
    """One parameter tier handed to a tool invocation."""

    quality: int
    dimension: int
    fps: int
    max_seconds: int

    def describe(self) -> str:
        return f"q{self.quality}/{self.dimension}px/{self.fps}fps"


@dataclass(frozen=True)
class ToolDescriptor:
    """Registry entry for one external converter.

    Attributes:
        name: Identifier reported in results and logs, e.g. ``"cwebp"``.
        tool_key: Key understood by :func:`stickerlab.system_tools.discover_tool`.
        build_command: ``(binary, input_path, output_path, params) -> argv``.
        output_suffix: Extension of the file the tool writes.
        input_suffix: Extension given to the temporary input file; some tools
            pick their decoder from it.
        probe: Optional override returning the binary path or ``None``.  The
            default probe resolves ``tool_key`` through the engine config and
            ``$PATH``.
    """

    name: str
    tool_key: str
    build_command: CommandBuilder
    output_suffix: str
    input_suffix: str = ".bin"
    probe: Probe | None = None

    def resolve_binary(self, engine_config=None) -> str | None:
        """Return the binary to execute, or ``None`` when the tool is missing."""
        if self.probe is not None:
            return self.probe()

        from .system_tools import discover_tool

        info = discover_tool(self.tool_key, engine_config)
        return info.name if info.available else None
