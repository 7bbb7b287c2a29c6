"""In-process image decoding, resizing and the built-in encoders.

Everything here runs on Pillow.  External tools are preferred for the actual
sticker encoding; these helpers prepare their input and provide the
last-resort encoders when no tool is usable.
"""

from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps, ImageSequence

from .error_handling import DecodeError, UnsupportedFormatError
from .formats import MediaFormat

logger = logging.getLogger(__name__)

# Minimum frame delay in milliseconds
MIN_FRAME_DELAY_MS = 20
DEFAULT_FRAME_DELAY_MS = 100
MAX_ANIMATION_FRAMES = 2000

_PIL_FORMATS: dict[MediaFormat, str] = {
    MediaFormat.JPEG: "JPEG",
    MediaFormat.PNG: "PNG",
    MediaFormat.GIF: "GIF",
    MediaFormat.WEBP: "WEBP",
}

# Pillow raises a zoo of exception types for malformed input
_DECODE_FAILURES = (OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError)


def probe_dimensions(data: bytes) -> tuple[int, int] | None:
    """Return ``(width, height)`` from the image header, or None if unreadable."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except _DECODE_FAILURES:
        return None


def fit_dimensions(width: int, height: int, box: int) -> tuple[int, int]:
    """Scale ``width``×``height`` so the longer side equals *box*.

    The aspect ratio is preserved and neither side drops below one pixel.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid dimensions {width}x{height}")
    if box <= 0:
        raise ValueError(f"box must be positive, got {box}")

    if width >= height:
        new_w = box
        new_h = max(1, round(height * box / width))
    else:
        new_h = box
        new_w = max(1, round(width * box / height))
    return min(new_w, box), min(new_h, box)


def _normalize_mode(img: Image.Image) -> Image.Image:
    """Return an RGBA or RGB copy depending on whether the image has alpha."""
    has_alpha = img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info
    target = "RGBA" if has_alpha else "RGB"
    if img.mode == target:
        return img.copy()
    return img.convert(target)


def decode_image(data: bytes, fmt: MediaFormat) -> Image.Image:
    """Decode the first frame of *data* as *fmt* into a fully loaded image.

    Raises:
        UnsupportedFormatError: *fmt* is not a still-image format Pillow reads.
        DecodeError: the bytes do not parse as *fmt*.
    """
    pil_format = _PIL_FORMATS.get(fmt)
    if pil_format is None:
        raise UnsupportedFormatError(
            f"No in-process decoder for {fmt.value} data", context={"format": fmt.value}
        )

    try:
        with Image.open(io.BytesIO(data), formats=[pil_format]) as img:
            img.load()
            if fmt is MediaFormat.JPEG:
                img = ImageOps.exif_transpose(img)
            return _normalize_mode(img)
    except _DECODE_FAILURES as e:
        raise DecodeError(
            f"Could not decode {fmt.value} image ({len(data)} bytes)",
            cause=e,
            context={"format": fmt.value, "bytes": len(data)},
        ) from e


def first_frame(data: bytes, fmt: MediaFormat) -> Image.Image:
    """Return the first decodable frame of an animated GIF or WebP."""
    return decode_image(data, fmt)


def resize_to_fit(img: Image.Image, box: int) -> Image.Image:
    """Resample *img* so its longer side equals *box* (LANCZOS, deterministic)."""
    new_size = fit_dimensions(img.width, img.height, box)
    if new_size == img.size:
        return img.copy()
    return img.resize(new_size, Image.Resampling.LANCZOS)


# ---------------------------------------------------------------------------
# Animation helpers
# ---------------------------------------------------------------------------


def select_frames_for_fps(delays: list[int], max_fps: int) -> list[int]:
    """Pick frame indices so playback never exceeds *max_fps*.

    A frame is kept when its start time is at least one frame interval
    (``1000 / max_fps`` ms) after the previously kept frame.  The first frame
    is always kept.
    """
    if not delays:
        return []
    if max_fps <= 0:
        raise ValueError(f"max_fps must be positive, got {max_fps}")

    interval = 1000.0 / max_fps
    kept = [0]
    last_start = 0.0
    elapsed = 0.0
    for index, delay in enumerate(delays):
        if index > 0 and elapsed - last_start >= interval - 1e-6:
            kept.append(index)
            last_start = elapsed
        elapsed += delay
    return kept


def merge_delays(delays: list[int], kept: list[int]) -> list[int]:
    """Fold the delays of dropped frames into the kept frame before them."""
    if not delays or not kept:
        return []

    merged = []
    for i, frame_idx in enumerate(kept):
        end = kept[i + 1] if i + 1 < len(kept) else len(delays)
        merged.append(max(MIN_FRAME_DELAY_MS, sum(delays[frame_idx:end])))
    return merged


def resize_animation(data: bytes, box: int, max_fps: int) -> bytes:
    """Rescale every GIF frame to fit *box* and cap the frame rate.

    Returns GIF bytes suitable as input for an animated WebP encoder.
    """
    try:
        with Image.open(io.BytesIO(data), formats=["GIF"]) as img:
            frames: list[Image.Image] = []
            delays: list[int] = []
            for frame in ImageSequence.Iterator(img):
                if len(frames) >= MAX_ANIMATION_FRAMES:
                    logger.warning(
                        f"⚠️  Animation truncated at {MAX_ANIMATION_FRAMES} frames"
                    )
                    break
                duration = frame.info.get("duration") or DEFAULT_FRAME_DELAY_MS
                delays.append(int(duration))
                frames.append(frame.convert("RGBA"))
    except _DECODE_FAILURES as e:
        raise DecodeError(f"Could not decode GIF animation ({len(data)} bytes)", cause=e) from e

    if not frames:
        raise DecodeError("GIF contains no frames")

    kept = select_frames_for_fps(delays, max_fps)
    kept_delays = merge_delays(delays, kept)
    size = fit_dimensions(frames[0].width, frames[0].height, box)
    resized = [frames[i].resize(size, Image.Resampling.LANCZOS) for i in kept]

    buf = io.BytesIO()
    resized[0].save(
        buf,
        format="GIF",
        save_all=True,
        append_images=resized[1:],
        duration=kept_delays,
        loop=0,
        disposal=2,
    )
    logger.debug(
        f"Rescaled animation to {size[0]}x{size[1]}, "
        f"{len(kept)}/{len(frames)} frames kept at ≤{max_fps}fps"
    )
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Built-in encoders
# ---------------------------------------------------------------------------


def encode_webp(img: Image.Image, *, quality: int | None = None, lossless: bool = False) -> bytes:
    """Encode *img* as a still WebP with Pillow's bundled libwebp."""
    buf = io.BytesIO()
    if lossless:
        img.save(buf, format="WEBP", lossless=True, quality=100, method=6)
    else:
        img.save(buf, format="WEBP", quality=quality if quality is not None else 75, method=6)
    return buf.getvalue()


def encode_png(img: Image.Image, *, palette: bool = False) -> bytes:
    """Encode *img* as PNG; ``palette=True`` quantizes to 256 colours first."""
    if palette:
        img = img.quantize(colors=256, method=Image.Quantize.FASTOCTREE)
    buf = io.BytesIO()
    img.save(buf, format="PNG", optimize=True)
    return buf.getvalue()
