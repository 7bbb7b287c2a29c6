"""Print the format StickerLab detects for a file."""

import mimetypes
from pathlib import Path

import click

from ..formats import MediaBlob, MediaFormat, is_animated_webp


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--mimetype",
    default=None,
    help="Declared mimetype (default: guessed from the file extension)",
)
def sniff(file: Path, mimetype: str | None) -> None:
    """Detect the media format of FILE from its magic bytes."""
    declared = mimetype or mimetypes.guess_type(file.name)[0]
    blob = MediaBlob.from_bytes(file.read_bytes(), declared)

    details = [f"{blob.size} bytes"]
    if blob.width is not None and blob.height is not None:
        details.append(f"{blob.width}x{blob.height}")
    if blob.format is MediaFormat.WEBP and is_animated_webp(blob.data):
        details.append("animated")

    click.echo(f"{blob.format.value} ({blob.mimetype}; {', '.join(details)})")
