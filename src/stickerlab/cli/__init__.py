"""CLI module for StickerLab commands.

Each command lives in its own module; this package assembles the click group
used by the ``stickerlab`` entry point.
"""

from pathlib import Path

import click

from .. import __version__
from ..io import setup_logging
from .convert_cmd import convert
from .sniff_cmd import sniff
from .tools_cmd import tools


@click.group()
@click.version_option(version=__version__, prog_name="stickerlab")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity",
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Also write logs to a timestamped file in this directory",
)
def main(log_level: str, log_dir: Path | None) -> None:
    """🖼️ StickerLab: chat sticker conversion toolkit."""
    setup_logging(log_dir, log_level)


main.add_command(convert)
main.add_command(sniff)
main.add_command(tools)

__all__ = [
    "convert",
    "main",
    "sniff",
    "tools",
]
