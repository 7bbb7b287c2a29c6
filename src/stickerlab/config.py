"""Configuration settings for StickerLab."""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .error_handling import ConfigurationError
from .models import Constraints
from .tool_interfaces import EncodeParams


@dataclass
class EngineConfig:
    """Configuration for conversion tool paths with environment variable overrides."""

    # Path to the cwebp executable (libwebp still-image encoder).
    # Override with: STICKERLAB_CWEBP_PATH
    CWEBP_PATH: str = "cwebp"

    # Path to the dwebp executable (libwebp decoder).
    # Override with: STICKERLAB_DWEBP_PATH
    DWEBP_PATH: str = "dwebp"

    # Path to gif2webp (libwebp GIF to animated WebP encoder).
    # Override with: STICKERLAB_GIF2WEBP_PATH
    GIF2WEBP_PATH: str = "gif2webp"

    # Path to FFmpeg executable; must be built with libwebp for animated stickers.
    # Override with: STICKERLAB_FFMPEG_PATH
    FFMPEG_PATH: str = "ffmpeg"

    # Path to ImageMagick executable (magick or convert).
    # On ImageMagick 6 installs this may need to be "convert".
    # Override with: STICKERLAB_IMAGEMAGICK_PATH
    IMAGEMAGICK_PATH: str = "magick"

    def __post_init__(self) -> None:
        """Apply environment variable overrides after initialization."""
        env_overrides = {
            "CWEBP_PATH": "STICKERLAB_CWEBP_PATH",
            "DWEBP_PATH": "STICKERLAB_DWEBP_PATH",
            "GIF2WEBP_PATH": "STICKERLAB_GIF2WEBP_PATH",
            "FFMPEG_PATH": "STICKERLAB_FFMPEG_PATH",
            "IMAGEMAGICK_PATH": "STICKERLAB_IMAGEMAGICK_PATH",
        }

        for attr_name, env_var_name in env_overrides.items():
            env_value = os.getenv(env_var_name)
            if env_value:
                setattr(self, attr_name, env_value)


@dataclass
class StickerConfig:
    """Output constraints and encoding parameter tiers for conversions."""

    # Sticker bounding box (pixels, square)
    MAX_DIMENSION: int = 512

    # Upload size ceiling in bytes
    MAX_BYTES: int = 500 * 1024

    # First-attempt parameters
    DEFAULT_QUALITY: int = 75
    MAX_FPS: int = 15

    # Degraded retry tier, used when the first attempt is over MAX_BYTES
    DEGRADED_QUALITY: int = 50
    DEGRADED_DIMENSION: int = 480
    DEGRADED_FPS: int = 12

    # Video sources are cut to this many seconds
    MAX_VIDEO_SECONDS: int = 10

    # Additional (quality, dimension, fps) tiers tried after the degraded one
    EXTRA_TIERS: list[tuple[int, int, int]] | None = None

    # Hard limit for one external tool process
    TOOL_TIMEOUT_SECONDS: float = 30.0

    # Deadline for a whole conversion (all candidates and tiers)
    CONVERSION_TIMEOUT_SECONDS: float = 120.0

    def __post_init__(self) -> None:
        if self.EXTRA_TIERS is None:
            self.EXTRA_TIERS = []
        self.EXTRA_TIERS = [tuple(int(v) for v in tier) for tier in self.EXTRA_TIERS]

        if self.MAX_DIMENSION <= 0:
            raise ValueError(f"MAX_DIMENSION must be positive, got {self.MAX_DIMENSION}")
        if self.MAX_BYTES <= 0:
            raise ValueError(f"MAX_BYTES must be positive, got {self.MAX_BYTES}")

        for name in ("DEFAULT_QUALITY", "DEGRADED_QUALITY"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be in 0–100 range, got {value}")

        if self.DEGRADED_DIMENSION <= 0 or self.DEGRADED_DIMENSION > self.MAX_DIMENSION:
            raise ValueError(
                f"DEGRADED_DIMENSION must be in 1..MAX_DIMENSION, got {self.DEGRADED_DIMENSION}"
            )
        if self.MAX_FPS <= 0 or self.DEGRADED_FPS <= 0:
            raise ValueError("MAX_FPS and DEGRADED_FPS must be positive")
        if self.MAX_VIDEO_SECONDS <= 0:
            raise ValueError(f"MAX_VIDEO_SECONDS must be positive, got {self.MAX_VIDEO_SECONDS}")
        if self.TOOL_TIMEOUT_SECONDS <= 0 or self.CONVERSION_TIMEOUT_SECONDS <= 0:
            raise ValueError("Timeouts must be positive")

        for tier in self.EXTRA_TIERS:
            if len(tier) != 3:
                raise ValueError(f"EXTRA_TIERS entries must be (quality, dimension, fps), got {tier}")
            quality, dimension, fps = tier
            if not 0 <= quality <= 100 or dimension <= 0 or fps <= 0:
                raise ValueError(f"Invalid EXTRA_TIERS entry: {tier}")

    def default_params(self) -> EncodeParams:
        return EncodeParams(
            quality=self.DEFAULT_QUALITY,
            dimension=self.MAX_DIMENSION,
            fps=self.MAX_FPS,
            max_seconds=self.MAX_VIDEO_SECONDS,
        )

    def encode_tiers(self) -> list[EncodeParams]:
        """Return the ordered parameter tiers: default first, then degraded ones."""
        tiers = [
            self.default_params(),
            EncodeParams(
                quality=self.DEGRADED_QUALITY,
                dimension=self.DEGRADED_DIMENSION,
                fps=self.DEGRADED_FPS,
                max_seconds=self.MAX_VIDEO_SECONDS,
            ),
        ]
        for quality, dimension, fps in self.EXTRA_TIERS or []:
            tiers.append(
                EncodeParams(
                    quality=quality,
                    dimension=min(dimension, self.MAX_DIMENSION),
                    fps=fps,
                    max_seconds=self.MAX_VIDEO_SECONDS,
                )
            )
        return tiers

    def constraints(self) -> Constraints:
        return Constraints(max_dimension=self.MAX_DIMENSION, max_bytes=self.MAX_BYTES)


@dataclass
class DispatcherConfig:
    """Configuration for the chat event dispatcher."""

    # Maximum number of tasks running their handler at the same time
    MAX_IN_FLIGHT: int = 20

    # None waits for in-flight tasks indefinitely on shutdown
    SHUTDOWN_TIMEOUT_SECONDS: float | None = None

    def __post_init__(self) -> None:
        if self.MAX_IN_FLIGHT < 1:
            raise ValueError(f"MAX_IN_FLIGHT must be at least 1, got {self.MAX_IN_FLIGHT}")
        if self.SHUTDOWN_TIMEOUT_SECONDS is not None and self.SHUTDOWN_TIMEOUT_SECONDS < 0:
            raise ValueError(
                f"SHUTDOWN_TIMEOUT_SECONDS must be non-negative, got {self.SHUTDOWN_TIMEOUT_SECONDS}"
            )


@dataclass
class LoadedConfig:
    """Configs produced by :func:`load_config_yaml`."""

    engine: EngineConfig
    sticker: StickerConfig
    dispatcher: DispatcherConfig


_SECTIONS: dict[str, type] = {
    "engine": EngineConfig,
    "sticker": StickerConfig,
    "dispatcher": DispatcherConfig,
}


def _build_section(cls: type, values: Any, section: str) -> Any:
    if values is None:
        return cls()
    if not isinstance(values, dict):
        raise ConfigurationError(f"Section '{section}' must be a mapping")

    known = {f.name for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in values.items():
        attr = str(key).upper()
        if attr not in known:
            raise ConfigurationError(f"Unknown key '{key}' in section '{section}'")
        kwargs[attr] = value

    try:
        return cls(**kwargs)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid '{section}' configuration: {e}", cause=e) from e


def load_config_yaml(path: Path) -> LoadedConfig:
    """Load engine, sticker and dispatcher configuration from a YAML file.

    The file holds up to three top-level mappings (``engine``, ``sticker``,
    ``dispatcher``); keys are matched case-insensitively against the dataclass
    fields.  Missing sections fall back to defaults.
    """
    import yaml

    try:
        data = yaml.safe_load(Path(path).read_text())
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}", cause=e) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}", cause=e) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("Config file must contain a mapping at top level")

    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ConfigurationError(f"Unknown config sections: {', '.join(sorted(unknown))}")

    return LoadedConfig(
        engine=_build_section(EngineConfig, data.get("engine"), "engine"),
        sticker=_build_section(StickerConfig, data.get("sticker"), "sticker"),
        dispatcher=_build_section(DispatcherConfig, data.get("dispatcher"), "dispatcher"),
    )


# Default configuration instances
DEFAULT_ENGINE_CONFIG = EngineConfig()
DEFAULT_STICKER_CONFIG = StickerConfig()
DEFAULT_DISPATCHER_CONFIG = DispatcherConfig()
