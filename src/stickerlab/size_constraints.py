"""Deterministic byte-ceiling enforcement over a fixed list of parameter tiers."""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .error_handling import SizeConstraintExceededError
from .tool_interfaces import EncodeParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnforcedOutput:
    """Accepted output plus the tier that produced it."""

    data: bytes
    params: EncodeParams
    attempts: int


class SizeConstraintEnforcer:
    """Re-run an encode attempt with progressively degraded parameters.

    ``attempt(params)`` is called once per tier, default tier first.  The first
    output at or below ``max_bytes`` wins.  Exceptions raised by ``attempt``
    are not caught here; callers decide whether a failing tool means "try the
    next tool" or "give up".
    """

    def __init__(self, tiers: Sequence[EncodeParams], max_bytes: int):
        if not tiers:
            raise ValueError("SizeConstraintEnforcer needs at least one tier")
        if max_bytes <= 0:
            raise ValueError(f"max_bytes must be positive, got {max_bytes}")
        self.tiers = list(tiers)
        self.max_bytes = max_bytes

    def enforce(self, attempt: Callable[[EncodeParams], bytes]) -> EnforcedOutput:
        smallest: int | None = None
        for index, params in enumerate(self.tiers, start=1):
            data = attempt(params)
            size = len(data)
            if size <= self.max_bytes:
                if index > 1:
                    logger.info(
                        f"📉 Accepted degraded tier {params.describe()} "
                        f"({size} ≤ {self.max_bytes} bytes)"
                    )
                return EnforcedOutput(data=data, params=params, attempts=index)

            logger.debug(
                f"Tier {params.describe()} produced {size} bytes (> {self.max_bytes})"
            )
            smallest = size if smallest is None else min(smallest, size)

        raise SizeConstraintExceededError(
            f"Output exceeds {self.max_bytes} bytes after {len(self.tiers)} tiers "
            f"(smallest {smallest} bytes)",
            smallest_size=smallest,
            max_bytes=self.max_bytes,
        )
