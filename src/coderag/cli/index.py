"""coderag index command - run a full reindex."""

import json
from pathlib import Path

import click
from rich.table import Table

from coderag.cli.utils import load_cli_config, require_directory
from coderag.core.errors import IndexingError
from coderag.core.progress import get_console, pluralize, spinner, status
from coderag.daemon.service import CodeRagService

_STAT_LABELS = (
    ("files_found", "Files found"),
    ("files_parsed", "Files parsed"),
    ("files_failed", "Files failed"),
    ("segments_parsed", "Segments parsed"),
    ("segments_embedded", "Segments embedded"),
    ("embeddings_missing", "Embeddings missing"),
    ("entries_upserted", "Entries upserted"),
    ("batches_failed", "Upsert batches failed"),
    ("duration_sec", "Duration (s)"),
)


def print_stats(stats: dict[str, object]) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    for key, label in _STAT_LABELS:
        if key in stats:
            table.add_row(label, str(stats[key]))
    get_console().print(table)


@click.command()
@click.argument("path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output counts as JSON")
@click.pass_context
def index_command(ctx: click.Context, path: Path, as_json: bool) -> None:
    """Run a full reindex of PATH (default: current directory)."""
    root = require_directory(path)
    config = load_cli_config(ctx, root)

    with CodeRagService(config=config, root=root) as service:
        try:
            with spinner(f"Indexing {root}"):
                stats = service.reindex().to_dict()
        except IndexingError as e:
            partial = e.details.get("stats", {})
            if as_json:
                click.echo(json.dumps({"ok": False, "error": e.to_dict()}))
            else:
                status(e.message, style="error")
                if partial:
                    print_stats(partial)
            ctx.exit(1)

    if as_json:
        click.echo(json.dumps({"ok": True, "stats": stats}))
        return
    status(
        f"Indexed {pluralize(int(stats['files_parsed']), 'file')}, "
        f"{pluralize(int(stats['entries_upserted']), 'entry', 'entries')} upserted",
        style="success",
    )
    print_stats(stats)
