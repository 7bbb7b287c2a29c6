"""Convert a local file the same way the bot converts chat media."""

import mimetypes
from dataclasses import replace
from pathlib import Path

import click

from ..encoder import StickerEncoder
from ..error_handling import StickerLabError
from ..formats import MediaBlob
from ..io import atomic_write
from ..models import ConversionRequest, TargetKind
from .utils import handle_generic_error, handle_keyboard_interrupt, load_configs

_TARGETS = {
    "sticker": TargetKind.ANIMATED_STICKER,
    "static": TargetKind.STATIC_STICKER,
    "image": TargetKind.IMAGE,
}


@click.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output_path", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--to",
    "target",
    type=click.Choice(sorted(_TARGETS)),
    default="sticker",
    show_default=True,
    help="sticker keeps animation when possible, static forces a still sticker, image writes PNG",
)
@click.option(
    "--max-bytes",
    type=click.IntRange(min=1),
    default=None,
    help="Override the output byte ceiling",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file (engine, sticker and dispatcher sections)",
)
def convert(
    input_path: Path, output_path: Path, target: str, max_bytes: int | None, config_path: Path | None
) -> None:
    """Convert INPUT_PATH to a sticker or image and write it to OUTPUT_PATH."""
    configs = load_configs(config_path)
    sticker_config = configs.sticker

    encoder = StickerEncoder(config=sticker_config, engine_config=configs.engine)

    constraints = sticker_config.constraints()
    if max_bytes is not None:
        constraints = replace(constraints, max_bytes=max_bytes)

    declared = mimetypes.guess_type(input_path.name)[0]
    source = MediaBlob.from_bytes(input_path.read_bytes(), declared)
    click.echo(f"📥 {input_path.name}: {source.format.value}, {source.size} bytes")

    try:
        result = encoder.convert(
            ConversionRequest(source=source, target=_TARGETS[target], constraints=constraints)
        )
    except StickerLabError as e:
        handle_generic_error("Conversion", e)
        return
    except KeyboardInterrupt:
        handle_keyboard_interrupt("Conversion")
        return

    with atomic_write(output_path) as f:
        f.write(result.data)

    kind = "animated" if result.is_animated else "still"
    click.echo(
        f"✅ Wrote {output_path} ({result.mimetype}, {kind}, {result.width}x{result.height}, "
        f"{result.size} bytes via {result.tool})"
    )
