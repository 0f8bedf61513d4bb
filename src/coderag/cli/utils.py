"""CLI utilities."""

from pathlib import Path

import click

from coderag.config.loader import load_config
from coderag.config.models import CodeRagConfig
from coderag.core.errors import ConfigError
from coderag.core.logging import configure_logging


def load_cli_config(ctx: click.Context, root: Path | None = None) -> CodeRagConfig:
    """Load config for a command and reconfigure logging from it.

    ``--config-root`` wins over the command's own root; without either the
    current directory is used. ``-v`` forces DEBUG regardless of config.

    Raises:
        click.ClickException: Config could not be loaded.
    """
    obj = ctx.obj or {}
    config_root = obj.get("config_root") or root
    try:
        config = load_config(config_root)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    if obj.get("verbose"):
        config.logging.level = "DEBUG"
    configure_logging(config=config.logging)
    return config


def require_directory(path: Path) -> Path:
    resolved = path.resolve()
    if not resolved.is_dir():
        raise click.ClickException(f"'{resolved}' is not a directory")
    return resolved
