"""Shared utilities for CLI commands."""

import sys
from pathlib import Path

import click

from ..config import DispatcherConfig, EngineConfig, LoadedConfig, StickerConfig, load_config_yaml
from ..error_handling import ConfigurationError


def handle_generic_error(command_name: str, error: Exception) -> None:
    """Handle generic command errors with consistent formatting."""
    click.echo(f"❌ {command_name} failed: {error}", err=True)
    sys.exit(1)


def handle_keyboard_interrupt(command_name: str) -> None:
    """Handle keyboard interrupt with consistent formatting."""
    click.echo(f"\n⏹️  {command_name} interrupted by user", err=True)
    sys.exit(1)


def load_configs(config_path: Path | None) -> LoadedConfig:
    """Load the YAML config file, or the defaults (with env overrides) when omitted."""
    if config_path is None:
        return LoadedConfig(
            engine=EngineConfig(), sticker=StickerConfig(), dispatcher=DispatcherConfig()
        )
    try:
        return load_config_yaml(config_path)
    except ConfigurationError as e:
        click.echo(f"❌ Invalid config file: {e}", err=True)
        sys.exit(1)
