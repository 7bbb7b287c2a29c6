"""Tests for stickerlab.size_constraints."""

import pytest

from stickerlab.config import StickerConfig
from stickerlab.error_handling import SizeConstraintExceededError, ToolExecutionError
from stickerlab.size_constraints import SizeConstraintEnforcer
from stickerlab.tool_interfaces import EncodeParams

KIB = 1024
TIERS = StickerConfig().encode_tiers()


class FakeEncoder:
    """Returns pre-set payload sizes per call and records the tiers it saw."""

    def __init__(self, *sizes):
        self.sizes = list(sizes)
        self.calls: list[EncodeParams] = []

    def __call__(self, params: EncodeParams) -> bytes:
        self.calls.append(params)
        return b"\x00" * self.sizes[len(self.calls) - 1]


def test_degraded_tier_accepted_after_oversized_first_attempt():
    encoder = FakeEncoder(600 * KIB, 400 * KIB)
    enforcer = SizeConstraintEnforcer(TIERS, max_bytes=500 * KIB)

    out = enforcer.enforce(encoder)

    assert len(out.data) == 400 * KIB
    assert out.attempts == 2
    assert out.params == EncodeParams(quality=50, dimension=480, fps=12, max_seconds=10)
    assert [p.quality for p in encoder.calls] == [75, 50]


def test_first_tier_within_limit_stops_immediately():
    encoder = FakeEncoder(100 * KIB, 50 * KIB)
    out = SizeConstraintEnforcer(TIERS, max_bytes=500 * KIB).enforce(encoder)

    assert out.attempts == 1
    assert out.params == TIERS[0]
    assert len(encoder.calls) == 1


def test_exactly_at_limit_is_accepted():
    out = SizeConstraintEnforcer(TIERS, max_bytes=500 * KIB).enforce(FakeEncoder(500 * KIB))
    assert out.attempts == 1


def test_all_tiers_oversized_raises_with_smallest_size():
    enforcer = SizeConstraintEnforcer(TIERS, max_bytes=500 * KIB)

    with pytest.raises(SizeConstraintExceededError) as exc:
        enforcer.enforce(FakeEncoder(900 * KIB, 700 * KIB))

    assert exc.value.smallest_size == 700 * KIB
    assert exc.value.max_bytes == 500 * KIB


def test_extra_tiers_are_tried_in_order():
    config = StickerConfig(EXTRA_TIERS=[(30, 384, 10), (20, 256, 8)])
    encoder = FakeEncoder(900 * KIB, 800 * KIB, 700 * KIB, 100 * KIB)

    out = SizeConstraintEnforcer(config.encode_tiers(), 500 * KIB).enforce(encoder)

    assert out.attempts == 4
    assert [p.dimension for p in encoder.calls] == [512, 480, 384, 256]


def test_attempt_errors_propagate_unchanged():
    def failing(params):
        raise ToolExecutionError("cwebp exploded")

    with pytest.raises(ToolExecutionError, match="cwebp exploded"):
        SizeConstraintEnforcer(TIERS, 500 * KIB).enforce(failing)


def test_deterministic_for_same_input():
    results = []
    for _ in range(3):
        out = SizeConstraintEnforcer(TIERS, 500 * KIB).enforce(FakeEncoder(600 * KIB, 400 * KIB))
        results.append((out.params, out.attempts, len(out.data)))
    assert len(set(results)) == 1


def test_invalid_construction():
    with pytest.raises(ValueError):
        SizeConstraintEnforcer([], 100)
    with pytest.raises(ValueError):
        SizeConstraintEnforcer(TIERS, 0)
