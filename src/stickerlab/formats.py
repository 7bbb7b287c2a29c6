"""Signature sniffing for chat media.

The byte signature always wins over the mimetype declared by the transport:
video-typed messages frequently carry plain GIF payloads.
"""

from dataclasses import dataclass
from enum import Enum


class MediaFormat(Enum):
    """Formats the conversion pipeline distinguishes."""

    JPEG = "jpeg"
    PNG = "png"
    GIF = "gif"
    WEBP = "webp"
    VIDEO = "video"
    UNKNOWN = "unknown"


_MIMETYPES: dict[MediaFormat, str] = {
    MediaFormat.JPEG: "image/jpeg",
    MediaFormat.PNG: "image/png",
    MediaFormat.GIF: "image/gif",
    MediaFormat.WEBP: "image/webp",
    MediaFormat.VIDEO: "video/mp4",
    MediaFormat.UNKNOWN: "application/octet-stream",
}

# Matroska / WebM EBML header
_EBML_MAGIC = b"\x1a\x45\xdf\xa3"


def _looks_like_video_envelope(data: bytes) -> bool:
    # ISO base media (mp4, mov, 3gp): size(4) + "ftyp"
    if data[4:8] == b"ftyp":
        return True
    if data[0:4] == _EBML_MAGIC:
        return True
    return data[0:4] == b"RIFF" and data[8:12] == b"AVI "


def sniff_format(data: bytes, declared_mimetype: str | None = None) -> MediaFormat:
    """Classify *data* by its magic bytes.

    Never raises; short or empty input is simply ``UNKNOWN`` unless the
    declared mimetype marks it as video.
    """
    if data[0:4] == b"RIFF" and data[8:12] == b"WEBP":
        return MediaFormat.WEBP
    if data[0:6] in (b"GIF87a", b"GIF89a"):
        return MediaFormat.GIF
    if len(data) >= 2 and data[0] == 0xFF and data[1] == 0xD8:
        return MediaFormat.JPEG
    # only bytes 1..3 of the \x89PNG signature are compared
    if data[1:4] == b"PNG":
        return MediaFormat.PNG

    declared = (declared_mimetype or "").split(";")[0].strip().lower()
    if declared == "image/gif" or declared.startswith("video/"):
        return MediaFormat.VIDEO
    if _looks_like_video_envelope(data):
        return MediaFormat.VIDEO

    return MediaFormat.UNKNOWN


def mimetype_for(fmt: MediaFormat) -> str:
    return _MIMETYPES[fmt]


def is_animated_format(fmt: MediaFormat) -> bool:
    """GIF and video sources are candidates for the animated path."""
    return fmt in (MediaFormat.GIF, MediaFormat.VIDEO)


def is_animated_webp(data: bytes) -> bool:
    """Return True if a WebP payload carries an ANIM chunk."""
    # VP8X flags byte lives right after the chunk header at offset 20
    return data[12:16] == b"VP8X" and len(data) > 20 and bool(data[20] & 0x02)


@dataclass(frozen=True)
class MediaBlob:
    """Raw media bytes together with their sniffed format."""

    data: bytes
    format: MediaFormat
    width: int | None = None
    height: int | None = None

    @classmethod
    def from_bytes(cls, data: bytes, declared_mimetype: str | None = None) -> "MediaBlob":
        """Sniff *data* and read its dimensions when the header allows it."""
        fmt = sniff_format(data, declared_mimetype)
        width = height = None
        if fmt in (MediaFormat.JPEG, MediaFormat.PNG, MediaFormat.GIF, MediaFormat.WEBP):
            from .imaging import probe_dimensions

            dims = probe_dimensions(data)
            if dims is not None:
                width, height = dims
        return cls(data=data, format=fmt, width=width, height=height)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def mimetype(self) -> str:
        return mimetype_for(self.format)
