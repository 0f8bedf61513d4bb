"""coderag watch command - keep the vector store in sync with a tree."""

import time
from pathlib import Path

import click

from coderag.cli.index import print_stats
from coderag.cli.utils import load_cli_config, require_directory
from coderag.core.errors import CodeRagError
from coderag.core.progress import spinner, status
from coderag.daemon.service import CodeRagService


@click.command()
@click.argument("path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--no-initial-index", is_flag=True, help="Skip the full reindex before watching")
@click.pass_context
def watch_command(ctx: click.Context, path: Path, no_initial_index: bool) -> None:
    """Watch PATH and apply incremental updates until interrupted."""
    root = require_directory(path)
    config = load_cli_config(ctx, root)

    with CodeRagService(config=config, root=root) as service:
        if not no_initial_index:
            try:
                with spinner(f"Indexing {root}"):
                    stats = service.reindex()
                print_stats(stats.to_dict())
            except CodeRagError as e:
                status(e.message, style="warning")

        try:
            service.start_watching()
        except CodeRagError as e:
            raise click.ClickException(str(e)) from e

        status(f"Watching {root} (Ctrl-C to stop)", style="success")
        try:
            while service.watcher.is_running:
                time.sleep(0.5)
        except KeyboardInterrupt:
            status("Stopping watcher")

    status("Watcher stopped", style="success")
