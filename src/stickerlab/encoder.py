"""Sticker encoding: one encoder, behaviour driven by the registered tools.

Routing for a ``ConversionRequest``::

    IDLE → SNIFFING → PASSTHROUGH   WebP source already within limits (still WebP only
                                    for a static target)
                    → ANIMATED      animated target, GIF or video source
                    → STATIC        every other sticker request
                    → TO_IMAGE      image target
            → DONE | FAILED

The animated path degrades to the static one when no animated encoder
succeeds, and the static path degrades to Pillow's bundled libwebp when no
external encoder succeeds.  Only undecodable or unsupported input, a byte
ceiling the built-in encoder cannot meet, or an expired deadline fail the
request.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum

from PIL import Image

from . import imaging
from .config import DEFAULT_STICKER_CONFIG, EngineConfig, StickerConfig
from .error_handling import (
    SizeConstraintExceededError,
    StickerLabError,
    ToolExecutionError,
    ToolUnavailableError,
    UnsupportedFormatError,
    log_info_with_context,
    log_warning_with_context,
)
from .formats import (
    MediaBlob,
    MediaFormat,
    is_animated_format,
    is_animated_webp,
    mimetype_for,
    sniff_format,
)
from .models import Constraints, ConversionRequest, ConversionResult, TargetKind
from .size_constraints import SizeConstraintEnforcer
from .tool_interfaces import ConversionKind, EncodeParams
from .toolchain import Deadline, ToolchainRunner

logger = logging.getLogger(__name__)

BUILT_IN_TOOL = "built-in"
PASSTHROUGH_TOOL = "passthrough"

# Failures that send a path to its next fallback rather than failing the request
_TOOL_FAILURES = (ToolUnavailableError, ToolExecutionError, SizeConstraintExceededError)


class EncoderState(Enum):
    IDLE = "idle"
    SNIFFING = "sniffing"
    STATIC = "static"
    ANIMATED = "animated"
    PASSTHROUGH = "passthrough"
    TO_IMAGE = "to_image"
    DONE = "done"
    FAILED = "failed"


class StickerEncoder:
    """Convert media blobs into stickers or plain images.

    Args:
        runner: Toolchain runner; its registry decides which external tools
            are tried.  Defaults to the full registry.
        config: Quality tiers, limits and timeouts.
        engine_config: Tool paths for the default runner; ignored when
            *runner* is given.
    """

    def __init__(
        self,
        runner: ToolchainRunner | None = None,
        config: StickerConfig | None = None,
        engine_config: EngineConfig | None = None,
    ):
        self.config = config or DEFAULT_STICKER_CONFIG
        self.runner = runner or ToolchainRunner(
            tool_timeout=self.config.TOOL_TIMEOUT_SECONDS,
            default_params=self.config.default_params(),
            engine_config=engine_config,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def convert(
        self, request: ConversionRequest, deadline: Deadline | None = None
    ) -> ConversionResult:
        """Run *request* through the matching path and validate the result."""
        if deadline is None:
            deadline = Deadline(self.config.CONVERSION_TIMEOUT_SECONDS)

        state = EncoderState.IDLE
        try:
            state = self._enter(EncoderState.SNIFFING, request)
            fmt = request.source.format
            if fmt is MediaFormat.UNKNOWN:
                raise UnsupportedFormatError(
                    "Unrecognized media signature", context={"bytes": request.source.size}
                )

            state = self._enter(self._route(request), request)
            if state is EncoderState.PASSTHROUGH:
                result = self._passthrough(request, deadline)
            elif state is EncoderState.ANIMATED:
                result = self._animated(request, deadline)
            elif state is EncoderState.TO_IMAGE:
                result = self._to_image(request, deadline)
            else:
                result = self._static(request, deadline)

            self._validate(result, request.constraints)
        except Exception as e:
            logger.debug(f"Encoder {state.value} → {EncoderState.FAILED.value}: {e}")
            raise

        self._enter(EncoderState.DONE, request)
        log_info_with_context(
            "Conversion finished",
            {
                "target": request.target.value,
                "tool": result.tool,
                "bytes": result.size,
                "size": f"{result.width}x{result.height}",
                "animated": result.is_animated,
            },
            logger=logger,
        )
        return result

    def _enter(self, state: EncoderState, request: ConversionRequest) -> EncoderState:
        logger.debug(
            f"Encoder → {state.value} ({request.source.format.value} → {request.target.value})"
        )
        return state

    def _route(self, request: ConversionRequest) -> EncoderState:
        source = request.source
        if request.target is TargetKind.IMAGE:
            return EncoderState.TO_IMAGE
        if source.format is MediaFormat.WEBP and self._within_limits(source, request.constraints):
            # a still target never passes animation through
            if request.target is TargetKind.STATIC_STICKER and is_animated_webp(source.data):
                return EncoderState.STATIC
            return EncoderState.PASSTHROUGH
        if request.target is TargetKind.ANIMATED_STICKER and is_animated_format(source.format):
            return EncoderState.ANIMATED
        return EncoderState.STATIC

    @staticmethod
    def _within_limits(source: MediaBlob, constraints: Constraints) -> bool:
        if source.width is None or source.height is None:
            return False
        return (
            source.width <= constraints.max_dimension
            and source.height <= constraints.max_dimension
            and source.size <= constraints.max_bytes
        )

    def _tiers(self, constraints: Constraints) -> list[EncodeParams]:
        tiers: list[EncodeParams] = []
        for tier in self.config.encode_tiers():
            tier = replace(tier, dimension=min(tier.dimension, constraints.max_dimension))
            if tier not in tiers:
                tiers.append(tier)
        return tiers

    def _enforcer(self, constraints: Constraints) -> SizeConstraintEnforcer:
        return SizeConstraintEnforcer(self._tiers(constraints), constraints.max_bytes)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _passthrough(self, request: ConversionRequest, deadline: Deadline) -> ConversionResult:
        source = request.source
        animated = is_animated_webp(source.data)
        result = ConversionResult(
            data=source.data,
            mimetype=mimetype_for(MediaFormat.WEBP),
            is_animated=animated,
            tool=PASSTHROUGH_TOOL,
            width=source.width,
            height=source.height,
        )

        params = replace(self._tiers(request.constraints)[0], dimension=max(source.width, source.height))
        try:
            optimized = self.runner.run(
                ConversionKind.WEBP_OPTIMIZE, source.data, params, deadline=deadline
            )
        except StickerLabError as e:
            logger.debug(f"WebP optimisation skipped, keeping original bytes: {e}")
            return result

        dims = imaging.probe_dimensions(optimized.data)
        if (
            len(optimized.data) < source.size
            and dims == (source.width, source.height)
            and is_animated_webp(optimized.data) == animated
        ):
            logger.debug(f"Optimised WebP {source.size} → {len(optimized.data)} bytes")
            return replace(result, data=optimized.data, tool=optimized.tool)
        return result

    def _animated(self, request: ConversionRequest, deadline: Deadline) -> ConversionResult:
        source = request.source
        enforcer = self._enforcer(request.constraints)

        try:
            if source.format is MediaFormat.GIF:
                output = self.runner.run(
                    ConversionKind.GIF_TO_WEBP,
                    lambda p: imaging.resize_animation(source.data, p.dimension, p.fps),
                    enforcer=enforcer,
                    deadline=deadline,
                )
            else:
                output = self.runner.run(
                    ConversionKind.VIDEO_TO_WEBP, source.data, enforcer=enforcer, deadline=deadline
                )
        except _TOOL_FAILURES as e:
            log_warning_with_context(
                "Animated encoding failed, falling back to a static sticker",
                {"format": source.format.value, "error": e},
                logger=logger,
            )
            self._enter(EncoderState.STATIC, request)
            return self._static(request, deadline)

        width, height = self._dimensions(output.data, output.tool)
        return ConversionResult(
            data=output.data,
            mimetype=mimetype_for(MediaFormat.WEBP),
            is_animated=is_animated_webp(output.data),
            tool=output.tool,
            width=width,
            height=height,
        )

    def _static(self, request: ConversionRequest, deadline: Deadline) -> ConversionResult:
        image = self._still_image(request.source, deadline)
        constraints = request.constraints
        enforcer = self._enforcer(constraints)

        try:
            output = self.runner.run(
                ConversionKind.STILL_TO_WEBP,
                lambda p: imaging.encode_png(imaging.resize_to_fit(image, p.dimension)),
                enforcer=enforcer,
                deadline=deadline,
            )
            data, tool = output.data, output.tool
        except _TOOL_FAILURES as e:
            logger.info(f"🔧 No external still encoder succeeded ({e}); using built-in encoder")
            data, tool = self._built_in_webp(image, enforcer), BUILT_IN_TOOL

        width, height = self._dimensions(data, tool)
        return ConversionResult(
            data=data,
            mimetype=mimetype_for(MediaFormat.WEBP),
            is_animated=False,
            tool=tool,
            width=width,
            height=height,
        )

    def _built_in_webp(self, image: Image.Image, enforcer: SizeConstraintEnforcer) -> bytes:
        """Lossless WebP at the first tier, then lossy WebP over every tier."""
        lossless = imaging.encode_webp(
            imaging.resize_to_fit(image, enforcer.tiers[0].dimension), lossless=True
        )
        if len(lossless) <= enforcer.max_bytes:
            return lossless
        logger.debug(f"Lossless WebP is {len(lossless)} bytes, switching to lossy tiers")
        return enforcer.enforce(
            lambda p: imaging.encode_webp(imaging.resize_to_fit(image, p.dimension), quality=p.quality)
        ).data

    def _to_image(self, request: ConversionRequest, deadline: Deadline) -> ConversionResult:
        source = request.source
        constraints = request.constraints

        if source.format is MediaFormat.WEBP:
            try:
                output = self.runner.run(ConversionKind.WEBP_TO_PNG, source.data, deadline=deadline)
            except _TOOL_FAILURES as e:
                logger.debug(f"No external WebP decoder succeeded ({e}); decoding in-process")
            else:
                dims = imaging.probe_dimensions(output.data)
                if (
                    dims is not None
                    and max(dims) <= constraints.max_dimension
                    and len(output.data) <= constraints.max_bytes
                ):
                    return ConversionResult(
                        data=output.data,
                        mimetype=mimetype_for(MediaFormat.PNG),
                        is_animated=False,
                        tool=output.tool,
                        width=dims[0],
                        height=dims[1],
                    )
                logger.debug(f"{output.tool} PNG exceeds limits, re-encoding in-process")

        image = self._still_image(source, deadline)
        enforcer = self._enforcer(constraints)
        data = enforcer.enforce(lambda p: self._png_attempt(image, p, constraints.max_bytes)).data
        width, height = self._dimensions(data, BUILT_IN_TOOL)
        return ConversionResult(
            data=data,
            mimetype=mimetype_for(MediaFormat.PNG),
            is_animated=False,
            tool=BUILT_IN_TOOL,
            width=width,
            height=height,
        )

    @staticmethod
    def _png_attempt(image: Image.Image, params: EncodeParams, max_bytes: int) -> bytes:
        resized = imaging.resize_to_fit(image, params.dimension)
        data = imaging.encode_png(resized)
        if len(data) <= max_bytes:
            return data
        return imaging.encode_png(resized, palette=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _still_image(self, source: MediaBlob, deadline: Deadline) -> Image.Image:
        """First decodable frame of *source*; video frames come from FRAME_TO_PNG."""
        if source.format is MediaFormat.VIDEO:
            frame = self.runner.run(ConversionKind.FRAME_TO_PNG, source.data, deadline=deadline)
            return imaging.decode_image(frame.data, MediaFormat.PNG)
        return imaging.first_frame(source.data, source.format)

    @staticmethod
    def _dimensions(data: bytes, tool: str) -> tuple[int, int]:
        dims = imaging.probe_dimensions(data)
        if dims is None:
            raise ToolExecutionError(f"{tool} produced output whose dimensions cannot be read")
        return dims

    @staticmethod
    def _validate(result: ConversionResult, constraints: Constraints) -> None:
        """Enforce the invariants every returned result must satisfy."""
        actual = sniff_format(result.data)
        if mimetype_for(actual) != result.mimetype:
            raise ToolExecutionError(
                f"{result.tool} output is {actual.value}, expected {result.mimetype}"
            )
        if result.width > constraints.max_dimension or result.height > constraints.max_dimension:
            raise ToolExecutionError(
                f"{result.tool} output is {result.width}x{result.height}, "
                f"exceeds {constraints.max_dimension}px"
            )
        if result.size > constraints.max_bytes:
            raise SizeConstraintExceededError(
                f"{result.tool} output is {result.size} bytes, exceeds {constraints.max_bytes}",
                smallest_size=result.size,
                max_bytes=constraints.max_bytes,
            )
