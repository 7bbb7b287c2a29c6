"""StickerLab - chat sticker conversion toolkit."""

__version__: str = "0.1.0"
__author__: str = "StickerLab Team"

from .formats import MediaBlob, MediaFormat, sniff_format  # noqa: E402
from .models import Constraints, ConversionRequest, ConversionResult, TargetKind  # noqa: E402

__all__ = [
    "Constraints",
    "ConversionRequest",
    "ConversionResult",
    "MediaBlob",
    "MediaFormat",
    "TargetKind",
    "sniff_format",
]
