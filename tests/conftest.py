import io
import sys
import threading
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from stickerlab.error_handling import DownloadError
from stickerlab.messaging import (
    MediaCategory,
    MediaReference,
    OutgoingMessage,
    UploadHandle,
)
from stickerlab.tool_interfaces import EncodeParams, ToolDescriptor
from stickerlab.toolchain import ToolchainRunner

# ---------------------------------------------------------------------------
# Image builders
# ---------------------------------------------------------------------------


def _image(size: tuple[int, int], mode: str = "RGB", noise: bool = False) -> Image.Image:
    if noise:
        rng = np.random.default_rng(1234)
        channels = 4 if mode == "RGBA" else 3
        pixels = rng.integers(0, 256, size=(size[1], size[0], channels), dtype=np.uint8)
        return Image.fromarray(pixels)
    return Image.new(mode, size, (200, 40, 90, 255)[: len(mode)])


def make_jpeg(size=(640, 480), noise=False) -> bytes:
    buf = io.BytesIO()
    _image(size, noise=noise).save(buf, format="JPEG", quality=90)
    return buf.getvalue()


def make_png(size=(300, 200), noise=False, mode="RGBA") -> bytes:
    buf = io.BytesIO()
    _image(size, mode=mode, noise=noise).save(buf, format="PNG")
    return buf.getvalue()


def make_gif(size=(120, 80), frames=6, duration=40) -> bytes:
    imgs = []
    for i in range(frames):
        val = int(i * 255 / max(frames - 1, 1))
        imgs.append(Image.new("RGB", size, (val, 0, 255 - val)))
    buf = io.BytesIO()
    imgs[0].save(
        buf, format="GIF", save_all=True, append_images=imgs[1:], duration=duration, loop=0
    )
    return buf.getvalue()


def make_webp(size=(512, 512), noise=False, quality=80, animated=False) -> bytes:
    buf = io.BytesIO()
    if animated:
        frames = [Image.new("RGBA", size, (i * 60, 0, 0, 255)) for i in range(3)]
        frames[0].save(
            buf, format="WEBP", save_all=True, append_images=frames[1:], duration=100, loop=0
        )
    else:
        _image(size, mode="RGBA", noise=noise).save(buf, format="WEBP", quality=quality)
    return buf.getvalue()


@pytest.fixture
def jpeg_bytes():
    return make_jpeg()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def gif_bytes():
    return make_gif()


@pytest.fixture
def sticker_webp():
    """A compliant 512x512 still sticker."""
    return make_webp()


# ---------------------------------------------------------------------------
# Fake external tools: Python scripts run through sys.executable
# ---------------------------------------------------------------------------

# argv: input, output, quality, dimension, fps
PILLOW_TO_WEBP = (
    "import sys\n"
    "from PIL import Image\n"
    "img = Image.open(sys.argv[1])\n"
    "img.load()\n"
    "img.save(sys.argv[2], 'WEBP', quality=int(sys.argv[3]))\n"
)

PILLOW_TO_ANIMATED_WEBP = (
    "import sys\n"
    "from PIL import Image, ImageSequence\n"
    "img = Image.open(sys.argv[1])\n"
    "frames = [f.convert('RGBA') for f in ImageSequence.Iterator(img)]\n"
    "frames[0].save(sys.argv[2], 'WEBP', save_all=True, append_images=frames[1:],\n"
    "               duration=100, loop=0, quality=int(sys.argv[3]))\n"
)

PILLOW_TO_PNG = (
    "import sys\n"
    "from PIL import Image\n"
    "img = Image.open(sys.argv[1])\n"
    "img.load()\n"
    "img.save(sys.argv[2], 'PNG')\n"
)

PILLOW_WEBP_LOW_QUALITY = (
    "import sys\n"
    "from PIL import Image\n"
    "img = Image.open(sys.argv[1])\n"
    "img.load()\n"
    "img.save(sys.argv[2], 'WEBP', quality=5)\n"
)

COPY_INPUT = (
    "import shutil, sys\n"
    "shutil.copyfile(sys.argv[1], sys.argv[2])\n"
)

FAIL = "import sys\nsys.stderr.write('boom: bad input\\n')\nsys.exit(3)\n"

WRITE_GARBAGE = "import sys\nopen(sys.argv[2], 'wb').write(b'definitely not an image')\n"

HANG = "import time\ntime.sleep(30)\n"


def script_descriptor(
    name: str,
    script: str,
    output_suffix: str = ".webp",
    input_suffix: str = ".png",
    available: bool = True,
) -> ToolDescriptor:
    """Build a ToolDescriptor that runs *script* with the current interpreter."""

    def build(binary: str, input_path: Path, output_path: Path, params: EncodeParams) -> list[str]:
        return [
            binary,
            "-c",
            script,
            str(input_path),
            str(output_path),
            str(params.quality),
            str(params.dimension),
            str(params.fps),
        ]

    return ToolDescriptor(
        name=name,
        tool_key=name,
        build_command=build,
        output_suffix=output_suffix,
        input_suffix=input_suffix,
        probe=(lambda: sys.executable) if available else (lambda: None),
    )


@pytest.fixture
def empty_runner():
    """Runner with no registered tools: every path uses its built-in fallback."""
    return ToolchainRunner(registry={}, tool_timeout=10)


# ---------------------------------------------------------------------------
# Fake messaging client
# ---------------------------------------------------------------------------


class FakeMessagingClient:
    """Thread-safe in-memory stand-in for a chat transport."""

    def __init__(self, media: dict[str, bytes] | None = None):
        self.media = dict(media or {})
        self.uploads: list[tuple[bytes, MediaCategory]] = []
        self.sent: list[OutgoingMessage] = []
        self.disconnected = False
        self.fail_download = False
        self.fail_upload = False
        self._lock = threading.Lock()

    def download(self, media: MediaReference) -> bytes:
        if self.fail_download or media.direct_path not in self.media:
            raise DownloadError(f"cannot fetch {media.direct_path}")
        return self.media[media.direct_path]

    def upload(self, data: bytes, category: MediaCategory) -> UploadHandle:
        if self.fail_upload:
            raise ConnectionError("upload endpoint unreachable")
        with self._lock:
            self.uploads.append((data, category))
            index = len(self.uploads)
        return UploadHandle(
            url=f"https://media.example/{index}",
            direct_path=f"/m/{index}",
            file_length=len(data),
        )

    def send(self, message: OutgoingMessage) -> str:
        with self._lock:
            self.sent.append(message)
            return f"sent-{len(self.sent)}"

    def disconnect(self) -> None:
        self.disconnected = True

    @property
    def texts(self) -> list[str]:
        return [m.text for m in self.sent if m.text is not None]


@pytest.fixture
def fake_client():
    return FakeMessagingClient()
