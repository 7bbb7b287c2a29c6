from .ffmpeg import animated_webp_command as ffmpeg_animated_webp_command
from .ffmpeg import extract_frame_command as ffmpeg_extract_frame_command
from .imagemagick import first_frame_png_command as imagemagick_first_frame_png_command
from .imagemagick import still_webp_command as imagemagick_still_webp_command
from .libwebp import cwebp_command, dwebp_command, gif2webp_command

__all__ = [
    # libwebp
    "cwebp_command",
    "dwebp_command",
    "gif2webp_command",
    # FFmpeg
    "ffmpeg_animated_webp_command",
    "ffmpeg_extract_frame_command",
    # ImageMagick
    "imagemagick_still_webp_command",
    "imagemagick_first_frame_png_command",
]
