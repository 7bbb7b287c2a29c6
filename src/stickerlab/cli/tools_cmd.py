"""Show which external converters StickerLab can find."""

import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ..capability_registry import tools_for
from ..system_tools import get_available_tools
from ..tool_interfaces import ConversionKind
from .utils import load_configs


@click.command()
@click.option("--json", "output_json", is_flag=True, help="Output results in JSON format")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file with tool paths",
)
def tools(output_json: bool, config_path: Path | None) -> None:
    """List discovered conversion tools and the conversions they serve."""
    configs = load_configs(config_path)
    found = get_available_tools(configs.engine, with_version=True)

    used_for: dict[str, list[str]] = {key: [] for key in found}
    for kind in ConversionKind:
        for descriptor in tools_for(kind):
            used_for.setdefault(descriptor.tool_key, []).append(kind.value)

    if output_json:
        result = {
            key: {
                "binary": info.name,
                "available": info.available,
                "version": info.version,
                "conversions": used_for.get(key, []),
            }
            for key, info in found.items()
        }
        click.echo(json.dumps(result, indent=2))
        return

    console = Console()
    table = Table(title="🔧 Conversion tools", show_header=True, header_style="bold magenta")
    table.add_column("Tool", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Binary")
    table.add_column("Version", style="dim")
    table.add_column("Conversions", style="dim")

    for key, info in found.items():
        status = "[green]✅ Found[/green]" if info.available else "[red]❌ Missing[/red]"
        table.add_row(
            key,
            status,
            info.name,
            info.version or "-",
            ", ".join(used_for.get(key, [])),
        )

    console.print(table)
    missing = [key for key, info in found.items() if not info.available]
    if missing:
        console.print(
            "\n💡 Missing tools are skipped; the built-in Pillow encoder covers still stickers."
        )
