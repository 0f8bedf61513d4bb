"""CodeRAG CLI - coderag command."""

from pathlib import Path

import click

from coderag.cli.index import index_command
from coderag.cli.parse import parse_command
from coderag.cli.search import count_command, search_command
from coderag.cli.watch import watch_command
from coderag.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="coderag")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--config-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory whose .coderag/config.yaml is loaded (default: the command's root)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_root: Path | None) -> None:
    """CodeRAG - index Java source trees into a vector store."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_root"] = config_root
    configure_logging(level="DEBUG" if verbose else "INFO")


cli.add_command(index_command, name="index")
cli.add_command(watch_command, name="watch")
cli.add_command(parse_command, name="parse")
cli.add_command(search_command, name="search")
cli.add_command(count_command, name="count")


if __name__ == "__main__":
    cli()
