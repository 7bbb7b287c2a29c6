"""Request and result types for one conversion."""

from dataclasses import dataclass
from enum import Enum

from .formats import MediaBlob


class TargetKind(Enum):
    """What the caller wants back."""

    STATIC_STICKER = "static_sticker"
    ANIMATED_STICKER = "animated_sticker"
    IMAGE = "image"

    @property
    def is_sticker(self) -> bool:
        return self is not TargetKind.IMAGE


@dataclass(frozen=True)
class Constraints:
    """Output limits every successful result must satisfy."""

    max_dimension: int = 512
    max_bytes: int = 500 * 1024

    def __post_init__(self) -> None:
        if self.max_dimension <= 0:
            raise ValueError(f"max_dimension must be positive, got {self.max_dimension}")
        if self.max_bytes <= 0:
            raise ValueError(f"max_bytes must be positive, got {self.max_bytes}")


@dataclass(frozen=True)
class ConversionRequest:
    source: MediaBlob
    target: TargetKind
    constraints: Constraints = Constraints()


@dataclass(frozen=True)
class ConversionResult:
    """Output of a successful conversion.

    ``tool`` names the converter that produced ``data`` (``"built-in"`` for
    the in-process Pillow encoders, ``"passthrough"`` when the source was
    returned untouched).
    """

    data: bytes
    mimetype: str
    is_animated: bool
    tool: str
    width: int
    height: int

    @property
    def size(self) -> int:
        return len(self.data)
