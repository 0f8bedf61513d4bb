"""coderag parse command - show the segments of one file."""

import json
from pathlib import Path

import click
from rich.table import Table

from coderag.cli.utils import load_cli_config
from coderag.core.errors import ParseError
from coderag.core.progress import get_console, pluralize, status
from coderag.index._internal.discovery.eligibility import EligibilityFilter
from coderag.index._internal.parsing.segmenter import JavaSegmenter


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Root that segment paths are relative to (default: the file's directory)",
)
@click.option("--json", "as_json", is_flag=True, help="Output segments as JSON")
@click.pass_context
def parse_command(ctx: click.Context, file: Path, root: Path | None, as_json: bool) -> None:
    """Segment FILE and print the result."""
    file = file.resolve()
    root = root.resolve() if root is not None else file.parent
    config = load_cli_config(ctx, root)

    eligibility = EligibilityFilter.from_config(config.segmentation, config.watch.extensions)
    if not eligibility.is_eligible(file):
        status(f"{file.name} would be skipped during indexing", style="warning")

    segmenter = JavaSegmenter.from_config(config.segmentation)
    try:
        segments = segmenter.parse_file(file, root)
    except ParseError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(json.dumps([s.to_dict() for s in segments], indent=2))
        return

    table = Table(title=f"{file.name}: {pluralize(len(segments), 'segment')}")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("Lines", justify="right")
    table.add_column("FQN")
    table.add_column("Chunk", justify="right")
    for s in segments:
        chunk = f"{s.chunk_number + 1}/{s.total_chunks}" if s.is_sub_chunk and s.chunk_number is not None else ""
        table.add_row(s.kind.value, s.entity_name or "", f"{s.start_line}-{s.end_line}", s.fqn, chunk)
    get_console().print(table)
