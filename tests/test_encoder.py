"""Tests for stickerlab.encoder."""

import io

import pytest
from PIL import Image

from stickerlab.config import StickerConfig
from stickerlab.encoder import BUILT_IN_TOOL, PASSTHROUGH_TOOL, StickerEncoder
from stickerlab.error_handling import (
    ConversionTimeoutError,
    DecodeError,
    SizeConstraintExceededError,
    ToolUnavailableError,
    UnsupportedFormatError,
)
from stickerlab.formats import MediaBlob, MediaFormat, is_animated_webp, sniff_format
from stickerlab.models import Constraints, ConversionRequest, ConversionResult, TargetKind
from stickerlab.tool_interfaces import ConversionKind
from stickerlab.toolchain import Deadline, ToolchainRunner

from conftest import (
    FAIL,
    PILLOW_TO_ANIMATED_WEBP,
    PILLOW_TO_PNG,
    PILLOW_TO_WEBP,
    PILLOW_WEBP_LOW_QUALITY,
    make_gif,
    make_jpeg,
    make_png,
    make_webp,
    script_descriptor,
)


def _request(data, target=TargetKind.ANIMATED_STICKER, mimetype=None, constraints=None):
    return ConversionRequest(
        source=MediaBlob.from_bytes(data, mimetype),
        target=target,
        constraints=constraints or Constraints(),
    )


def assert_result_invariants(result: ConversionResult, constraints=Constraints()):
    actual = sniff_format(result.data)
    expected = MediaFormat.WEBP if result.mimetype == "image/webp" else MediaFormat.PNG
    assert actual is expected
    assert result.width <= constraints.max_dimension
    assert result.height <= constraints.max_dimension
    assert result.size <= constraints.max_bytes
    with Image.open(io.BytesIO(result.data)) as img:
        assert img.size == (result.width, result.height)


@pytest.fixture
def encoder(empty_runner):
    return StickerEncoder(runner=empty_runner)


class TestStaticPath:
    def test_jpeg_becomes_512_webp_with_built_in_encoder(self, encoder):
        result = encoder.convert(_request(make_jpeg(size=(1024, 768)), TargetKind.STATIC_STICKER))

        assert result.mimetype == "image/webp"
        assert result.tool == BUILT_IN_TOOL
        assert result.is_animated is False
        assert (result.width, result.height) == (512, 384)
        assert_result_invariants(result)

    def test_small_png_is_scaled_up(self, encoder):
        result = encoder.convert(_request(make_png(size=(100, 50))))
        assert (result.width, result.height) == (512, 256)
        assert_result_invariants(result)

    def test_external_still_encoder_is_preferred(self):
        runner = ToolchainRunner(
            registry={ConversionKind.STILL_TO_WEBP: [script_descriptor("fake-cwebp", PILLOW_TO_WEBP)]}
        )
        result = StickerEncoder(runner=runner).convert(_request(make_jpeg()))

        assert result.tool == "fake-cwebp"
        assert_result_invariants(result)

    def test_failing_tools_fall_back_to_built_in(self):
        runner = ToolchainRunner(
            registry={ConversionKind.STILL_TO_WEBP: [script_descriptor("broken", FAIL)]}
        )
        result = StickerEncoder(runner=runner).convert(_request(make_jpeg()))
        assert result.tool == BUILT_IN_TOOL

    def test_noise_is_degraded_until_it_fits(self):
        config = StickerConfig(EXTRA_TIERS=[(10, 128, 8)])
        encoder = StickerEncoder(runner=ToolchainRunner(registry={}), config=config)
        constraints = Constraints(max_bytes=60 * 1024)
        result = encoder.convert(
            _request(make_png(size=(512, 512), noise=True, mode="RGB"), constraints=constraints)
        )
        assert_result_invariants(result, constraints)

    def test_unsatisfiable_size_raises(self, encoder):
        constraints = Constraints(max_bytes=200)
        with pytest.raises(SizeConstraintExceededError):
            encoder.convert(
                _request(make_png(size=(512, 512), noise=True, mode="RGB"), constraints=constraints)
            )

    def test_constraints_limit_dimension(self, encoder):
        constraints = Constraints(max_dimension=256)
        result = encoder.convert(_request(make_jpeg(size=(800, 400)), constraints=constraints))
        assert (result.width, result.height) == (256, 128)

    def test_oversized_webp_is_reencoded(self, encoder):
        result = encoder.convert(_request(make_webp(size=(1024, 1024))))
        assert result.tool == BUILT_IN_TOOL
        assert (result.width, result.height) == (512, 512)


class TestFailures:
    def test_jpeg_magic_with_garbage_is_decode_error(self, encoder):
        with pytest.raises(DecodeError):
            encoder.convert(_request(b"\xff\xd8" + b"\x42" * 256))

    def test_unknown_format(self, encoder):
        with pytest.raises(UnsupportedFormatError):
            encoder.convert(_request(b"just some text"))

    def test_video_without_tools(self, encoder):
        with pytest.raises(ToolUnavailableError):
            encoder.convert(_request(b"\x00\x00\x00\x20ftypisom" + b"\x00" * 64, mimetype="video/mp4"))

    def test_expired_deadline(self):
        runner = ToolchainRunner(
            registry={ConversionKind.STILL_TO_WEBP: [script_descriptor("enc", PILLOW_TO_WEBP)]}
        )
        with pytest.raises(ConversionTimeoutError):
            StickerEncoder(runner=runner).convert(_request(make_jpeg()), deadline=Deadline(0))


class TestAnimatedPath:
    def test_gif_without_animated_tools_falls_back_to_static(self, encoder):
        result = encoder.convert(_request(make_gif(size=(240, 160))))

        assert result.is_animated is False
        assert result.mimetype == "image/webp"
        assert result.tool == BUILT_IN_TOOL
        assert (result.width, result.height) == (512, 341)
        assert_result_invariants(result)

    def test_gif_with_animated_tool(self):
        runner = ToolchainRunner(
            registry={
                ConversionKind.GIF_TO_WEBP: [
                    script_descriptor("fake-gif2webp", PILLOW_TO_ANIMATED_WEBP, input_suffix=".gif")
                ]
            }
        )
        result = StickerEncoder(runner=runner).convert(_request(make_gif(size=(200, 200), frames=4, duration=100)))

        assert result.tool == "fake-gif2webp"
        assert result.is_animated is True
        assert is_animated_webp(result.data)
        assert (result.width, result.height) == (512, 512)
        assert_result_invariants(result)

    def test_failing_animated_tool_degrades_to_static(self):
        runner = ToolchainRunner(
            registry={ConversionKind.GIF_TO_WEBP: [script_descriptor("broken", FAIL, input_suffix=".gif")]}
        )
        result = StickerEncoder(runner=runner).convert(_request(make_gif()))
        assert result.is_animated is False

    def test_static_target_ignores_animation(self):
        runner = ToolchainRunner(
            registry={
                ConversionKind.GIF_TO_WEBP: [
                    script_descriptor("fake-gif2webp", PILLOW_TO_ANIMATED_WEBP, input_suffix=".gif")
                ]
            }
        )
        result = StickerEncoder(runner=runner).convert(_request(make_gif(), TargetKind.STATIC_STICKER))
        assert result.is_animated is False
        assert result.tool == BUILT_IN_TOOL

    def test_video_uses_frame_extraction_when_animation_fails(self):
        frame_png = make_png(size=(320, 240))
        write_frame = f"import sys\nopen(sys.argv[2], 'wb').write({frame_png!r})\n"
        runner = ToolchainRunner(
            registry={
                ConversionKind.VIDEO_TO_WEBP: [script_descriptor("broken", FAIL, input_suffix=".mp4")],
                ConversionKind.FRAME_TO_PNG: [
                    script_descriptor("fake-ffmpeg", write_frame, ".png", ".mp4")
                ],
            }
        )
        video = b"\x00\x00\x00\x20ftypisom" + b"\x00" * 64
        result = StickerEncoder(runner=runner).convert(_request(video, mimetype="video/mp4"))

        assert result.is_animated is False
        assert (result.width, result.height) == (512, 384)


class TestPassthrough:
    def test_compliant_sticker_is_returned_untouched(self, encoder, sticker_webp):
        result = encoder.convert(_request(sticker_webp))

        assert result.tool == PASSTHROUGH_TOOL
        assert result.data == sticker_webp
        assert (result.width, result.height) == (512, 512)

    def test_passthrough_never_grows_or_resizes(self, sticker_webp):
        runner = ToolchainRunner(
            registry={
                ConversionKind.WEBP_OPTIMIZE: [
                    script_descriptor("fake-cwebp", PILLOW_WEBP_LOW_QUALITY, input_suffix=".webp")
                ]
            }
        )
        source = make_webp(size=(512, 400), noise=True, quality=95)
        result = StickerEncoder(runner=runner).convert(_request(source))

        assert result.size <= len(source)
        assert (result.width, result.height) == (512, 400)
        assert result.tool == "fake-cwebp"

    def test_larger_optimisation_is_discarded(self):
        small = make_webp(size=(128, 128), noise=True, quality=10)
        runner = ToolchainRunner(
            registry={
                ConversionKind.WEBP_OPTIMIZE: [
                    script_descriptor("fake-cwebp", PILLOW_TO_WEBP.replace("int(sys.argv[3])", "100"), input_suffix=".webp")
                ]
            }
        )
        result = StickerEncoder(runner=runner).convert(_request(small))
        assert result.data == small
        assert result.tool == PASSTHROUGH_TOOL

    def test_optimiser_failure_keeps_original(self, sticker_webp):
        runner = ToolchainRunner(
            registry={ConversionKind.WEBP_OPTIMIZE: [script_descriptor("broken", FAIL, input_suffix=".webp")]}
        )
        result = StickerEncoder(runner=runner).convert(_request(sticker_webp))
        assert result.data == sticker_webp

    def test_animated_sticker_passthrough(self, encoder):
        source = make_webp(size=(256, 256), animated=True)
        result = encoder.convert(_request(source))
        assert result.is_animated is True
        assert result.data == source

    def test_static_target_flattens_animated_sticker(self, encoder):
        source = make_webp(size=(256, 256), animated=True)
        result = encoder.convert(_request(source, TargetKind.STATIC_STICKER))

        assert result.is_animated is False
        assert result.tool == BUILT_IN_TOOL
        assert not is_animated_webp(result.data)
        assert (result.width, result.height) == (512, 512)
        assert_result_invariants(result)

    def test_static_target_keeps_still_sticker(self, encoder, sticker_webp):
        result = encoder.convert(_request(sticker_webp, TargetKind.STATIC_STICKER))
        assert result.tool == PASSTHROUGH_TOOL
        assert result.data == sticker_webp


class TestToImage:
    def test_sticker_to_png_built_in(self, encoder, sticker_webp):
        result = encoder.convert(_request(sticker_webp, TargetKind.IMAGE))

        assert result.mimetype == "image/png"
        assert result.tool == BUILT_IN_TOOL
        assert result.is_animated is False
        assert_result_invariants(result)

    def test_sticker_to_png_with_decoder_tool(self, sticker_webp):
        runner = ToolchainRunner(
            registry={
                ConversionKind.WEBP_TO_PNG: [script_descriptor("fake-dwebp", PILLOW_TO_PNG, ".png", ".webp")]
            }
        )
        result = StickerEncoder(runner=runner).convert(_request(sticker_webp, TargetKind.IMAGE))
        assert result.tool == "fake-dwebp"
        assert (result.width, result.height) == (512, 512)

    def test_jpeg_to_png(self, encoder):
        result = encoder.convert(_request(make_jpeg(size=(600, 300)), TargetKind.IMAGE))
        assert result.mimetype == "image/png"
        assert (result.width, result.height) == (512, 256)

    def test_png_size_limit_degrades_tiers(self):
        config = StickerConfig(EXTRA_TIERS=[(40, 256, 8)])
        encoder = StickerEncoder(runner=ToolchainRunner(registry={}), config=config)
        constraints = Constraints(max_bytes=120 * 1024)
        result = encoder.convert(
            _request(make_png(size=(512, 512), noise=True, mode="RGB"), TargetKind.IMAGE, constraints=constraints)
        )
        assert (result.width, result.height) == (256, 256)
        assert_result_invariants(result, constraints)


def test_config_tiers_are_used():
    config = StickerConfig(DEFAULT_QUALITY=90, MAX_DIMENSION=320, DEGRADED_DIMENSION=256)
    encoder = StickerEncoder(runner=ToolchainRunner(registry={}), config=config)
    result = encoder.convert(_request(make_jpeg(size=(640, 640)), constraints=config.constraints()))
    assert (result.width, result.height) == (320, 320)
