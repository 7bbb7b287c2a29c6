"""Ordered external-tool fallback with scoped temp files and per-task deadlines.

A ``ToolchainRunner`` owns nothing but a registry and a per-process timeout.
For a conversion kind it walks the registered candidates in order, skips the
ones whose binary cannot be found and stops at the first attempt that yields
valid output.  Tool failures (``ToolExecutionError``) and outputs that stay
over the byte ceiling (``SizeConstraintExceededError``) move the chain on to
the next candidate; everything else propagates.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from .capability_registry import DEFAULT_REGISTRY, Registry, tools_for
from .config import DEFAULT_STICKER_CONFIG, EngineConfig
from .error_handling import (
    ConversionTimeoutError,
    SizeConstraintExceededError,
    ToolExecutionError,
    ToolUnavailableError,
    log_warning_with_context,
)
from .external_engines.common import run_command
from .formats import MediaFormat, sniff_format
from .io import scoped_workdir
from .size_constraints import SizeConstraintEnforcer
from .tool_interfaces import ConversionKind, EncodeParams, ToolDescriptor

logger = logging.getLogger(__name__)

# Tier-dependent input: the same source is rescaled differently per tier
InputSource = bytes | Callable[[EncodeParams], bytes]

_OUTPUT_FORMATS: dict[ConversionKind, MediaFormat] = {
    ConversionKind.STILL_TO_WEBP: MediaFormat.WEBP,
    ConversionKind.GIF_TO_WEBP: MediaFormat.WEBP,
    ConversionKind.VIDEO_TO_WEBP: MediaFormat.WEBP,
    ConversionKind.WEBP_OPTIMIZE: MediaFormat.WEBP,
    ConversionKind.FRAME_TO_PNG: MediaFormat.PNG,
    ConversionKind.WEBP_TO_PNG: MediaFormat.PNG,
}


def expected_output_format(kind: ConversionKind) -> MediaFormat:
    return _OUTPUT_FORMATS[kind]


class Deadline:
    """Wall-clock budget for one task; ``seconds=None`` never expires."""

    def __init__(self, seconds: float | None):
        self.seconds = seconds
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, operation: str) -> None:
        """Raise ``ConversionTimeoutError`` if the budget is spent."""
        if self.expired:
            raise ConversionTimeoutError(
                f"Deadline of {self.seconds}s expired before {operation}",
                context={"operation": operation},
            )


@dataclass(frozen=True)
class ToolOutput:
    """Bytes produced by one successful tool attempt."""

    data: bytes
    tool: str
    params: EncodeParams


class ToolchainRunner:
    """Run a conversion kind through its ordered tool candidates."""

    def __init__(
        self,
        registry: Registry | None = None,
        tool_timeout: float = 30.0,
        default_params: EncodeParams | None = None,
        engine_config: EngineConfig | None = None,
    ):
        self.registry = DEFAULT_REGISTRY if registry is None else registry
        self.tool_timeout = tool_timeout
        self.engine_config = engine_config
        if default_params is None:
            default_params = DEFAULT_STICKER_CONFIG.default_params()
        self.default_params = default_params

    def _resolved(self, kind: ConversionKind) -> list[tuple[ToolDescriptor, str]]:
        resolved = []
        for descriptor in tools_for(kind, self.registry):
            binary = descriptor.resolve_binary(self.engine_config)
            if binary is None:
                logger.debug(f"Skipping {descriptor.name} for {kind.value}: not installed")
                continue
            resolved.append((descriptor, binary))
        return resolved

    def candidates(self, kind: ConversionKind) -> list[ToolDescriptor]:
        """Registered descriptors for *kind* whose binary can be found, in order."""
        return [descriptor for descriptor, _ in self._resolved(kind)]

    def attempt(
        self,
        descriptor: ToolDescriptor,
        data: bytes,
        params: EncodeParams,
        kind: ConversionKind,
        deadline: Deadline | None = None,
        binary: str | None = None,
    ) -> bytes:
        """Run *descriptor* once on *data* and return the validated output bytes.

        Input and output live in a temporary directory that is removed on every
        exit path.

        Raises:
            ToolExecutionError: tool missing, failed, timed out, or wrote output
                whose signature does not match *kind*'s output format
            ConversionTimeoutError: *deadline* already expired
        """
        deadline = deadline or Deadline(None)
        deadline.check(f"running {descriptor.name}")

        if binary is None:
            binary = descriptor.resolve_binary(self.engine_config)
            if binary is None:
                raise ToolExecutionError(f"{descriptor.name} is not installed")

        timeout = self.tool_timeout
        remaining = deadline.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)

        with scoped_workdir(f"stickerlab_{descriptor.name}_") as workdir:
            input_path = workdir / f"input{descriptor.input_suffix}"
            output_path = workdir / f"output{descriptor.output_suffix}"
            input_path.write_bytes(data)

            cmd = descriptor.build_command(binary, input_path, output_path, params)
            meta = run_command(cmd, engine=descriptor.name, output_path=output_path, timeout=timeout)
            output = output_path.read_bytes()

        expected = expected_output_format(kind)
        actual = sniff_format(output)
        if actual is not expected:
            raise ToolExecutionError(
                f"{descriptor.name} wrote {actual.value} output, expected {expected.value}",
                context={"command": meta["command"]},
            )

        logger.debug(
            f"{descriptor.name} {params.describe()}: {len(data)} → {len(output)} bytes "
            f"in {meta['render_ms']}ms"
        )
        return output

    def run(
        self,
        kind: ConversionKind,
        data: InputSource,
        params: EncodeParams | None = None,
        *,
        enforcer: SizeConstraintEnforcer | None = None,
        deadline: Deadline | None = None,
    ) -> ToolOutput:
        """Try every available candidate for *kind* until one succeeds.

        With an *enforcer* each candidate is run over the enforcer's tiers;
        otherwise a single attempt with *params* (or the runner defaults) is made.
        *data* may be a callable producing the input bytes for a given tier.

        Raises:
            ToolUnavailableError: no candidate for *kind* is installed
            ToolExecutionError / SizeConstraintExceededError: every candidate
                failed; the last failure is re-raised
            ConversionTimeoutError: the deadline expired
        """
        deadline = deadline or Deadline(None)
        prepared: dict[EncodeParams, bytes] = {}

        def source_for(tier: EncodeParams) -> bytes:
            if isinstance(data, bytes):
                return data
            if tier not in prepared:
                prepared[tier] = data(tier)
            return prepared[tier]

        last_error: Exception | None = None
        for descriptor, binary in self._resolved(kind):
            deadline.check(f"trying {descriptor.name} for {kind.value}")

            def attempt(tier: EncodeParams) -> bytes:
                return self.attempt(descriptor, source_for(tier), tier, kind, deadline, binary)

            try:
                if enforcer is not None:
                    enforced = enforcer.enforce(attempt)
                    return ToolOutput(data=enforced.data, tool=descriptor.name, params=enforced.params)
                tier = params or self.default_params
                return ToolOutput(data=attempt(tier), tool=descriptor.name, params=tier)
            except (ToolExecutionError, SizeConstraintExceededError) as e:
                last_error = e
                log_warning_with_context(
                    f"{descriptor.name} failed for {kind.value}, trying next candidate",
                    {"error": e},
                    logger=logger,
                )

        if last_error is None:
            raise ToolUnavailableError(
                f"No tool available for {kind.value}",
                context={"registered": [d.name for d in tools_for(kind, self.registry)]},
            )
        raise last_error
