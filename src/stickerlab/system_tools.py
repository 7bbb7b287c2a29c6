from __future__ import annotations

"""Utility helpers for discovering external conversion binaries.

These lightweight checks tell the toolchain which of cwebp, dwebp, gif2webp,
FFmpeg and ImageMagick are installed.  Discovery never raises for a missing
tool: the runner simply skips candidates that are not available.
"""

import re
import subprocess
from dataclasses import dataclass
from shutil import which


@dataclass(frozen=True, slots=True)
class ToolInfo:
    """Metadata for an external binary discovered on the system."""

    name: str
    available: bool
    version: str | None = None


# ---------------------------------------------------------------------------
# Low-level helpers
# ---------------------------------------------------------------------------


def _which(cmd: str) -> str | None:
    """Return full path if *cmd* is executable in $PATH, else *None*."""
    return which(cmd)


def _extract_version(output: str, pattern: str) -> str | None:
    match = re.search(pattern, output)
    if match:
        return match.group(1)
    return None


def _run_version_cmd(cmd: list[str], regex: str) -> str | None:
    try:
        completed = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.SubprocessError):
        return None

    version = _extract_version(completed.stdout, regex) or _extract_version(
        completed.stderr, regex
    )
    if version:
        return version
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

_FALLBACK_TOOLS: dict[str, list[str]] = {
    "cwebp": ["cwebp"],
    "dwebp": ["dwebp"],
    "gif2webp": ["gif2webp"],
    "ffmpeg": ["ffmpeg"],
    "imagemagick": ["magick", "convert"],  # try "magick" first (newer) then fallback
}

_VERSION_FLAGS: dict[str, str] = {
    "cwebp": "-version",
    "dwebp": "-version",
    "gif2webp": "-version",
    "ffmpeg": "-version",
    "imagemagick": "-version",
}

_VERSION_PATTERNS: dict[str, str] = {
    "cwebp": r"(\d+\.\d+\.\d+)",
    "dwebp": r"(\d+\.\d+\.\d+)",
    "gif2webp": r"(\d+\.\d+\.\d+)",
    "ffmpeg": r"ffmpeg version (\S+)",
    "imagemagick": r"ImageMagick (\S+)",
}

# Map tool keys to configuration attributes
_CONFIG_MAPPING: dict[str, str] = {
    "cwebp": "CWEBP_PATH",
    "dwebp": "DWEBP_PATH",
    "gif2webp": "GIF2WEBP_PATH",
    "ffmpeg": "FFMPEG_PATH",
    "imagemagick": "IMAGEMAGICK_PATH",
}


def known_tools() -> list[str]:
    return list(_CONFIG_MAPPING)


def discover_tool(tool_key: str, engine_config=None, with_version: bool = False) -> ToolInfo:
    """Return *ToolInfo* for *tool_key* using configuration and fallback discovery.

    Args:
        tool_key: Tool identifier (cwebp, dwebp, gif2webp, ffmpeg, imagemagick)
        engine_config: EngineConfig instance (uses DEFAULT_ENGINE_CONFIG if None)
        with_version: Also run the binary to read its version string

    Returns:
        ToolInfo with availability (and optionally version) information
    """
    if tool_key not in _FALLBACK_TOOLS and tool_key not in _CONFIG_MAPPING:
        raise ValueError(f"Unknown tool: {tool_key}")

    if engine_config is None:
        from .config import DEFAULT_ENGINE_CONFIG

        engine_config = DEFAULT_ENGINE_CONFIG

    version_regex = _VERSION_PATTERNS.get(tool_key, r"(\d+\.\d+\.\d+)")
    version_flag = _VERSION_FLAGS.get(tool_key, "-version")

    def _info(binary: str) -> ToolInfo:
        version = None
        if with_version:
            version = _run_version_cmd([binary, version_flag], version_regex)
        return ToolInfo(name=binary, available=True, version=version)

    # Configured path first
    configured_path = getattr(engine_config, _CONFIG_MAPPING[tool_key], None)
    if configured_path and _which(configured_path):
        return _info(configured_path)

    # PATH discovery
    for candidate in _FALLBACK_TOOLS.get(tool_key, []):
        if candidate == configured_path:
            continue
        if _which(candidate):
            return _info(candidate)

    fallback_name = _FALLBACK_TOOLS.get(tool_key, [tool_key])[0]
    return ToolInfo(name=fallback_name, available=False, version=None)


def get_available_tools(engine_config=None, with_version: bool = False) -> dict[str, ToolInfo]:
    """Get availability status for all supported tools without requiring them.

    Returns:
        Mapping of tool keys to ToolInfo instances (available=False if not found)
    """
    results: dict[str, ToolInfo] = {}
    for key in known_tools():
        results[key] = discover_tool(key, engine_config, with_version=with_version)
    return results
