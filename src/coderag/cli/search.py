"""coderag search / count commands - query the vector store."""

import json

import click
from rich.table import Table

from coderag.backends import build_embedding_gateway, build_vector_store, close_backend
from coderag.cli.utils import load_cli_config
from coderag.core.errors import CodeRagError
from coderag.core.progress import get_console, status


@click.command()
@click.argument("query")
@click.option("-k", "--top-k", "k", type=int, default=None, help="Number of results (default: search.max_results)")
@click.option("--json", "as_json", is_flag=True, help="Output results as JSON")
@click.pass_context
def search_command(ctx: click.Context, query: str, k: int | None, as_json: bool) -> None:
    """Embed QUERY and print the nearest indexed segments."""
    config = load_cli_config(ctx)
    limit = k or config.search.max_results
    gateway = build_embedding_gateway(config.embedding)
    store = build_vector_store(config.vector_store)

    try:
        vector = gateway.embed(query)
        hits = store.query(config.vector_store.collection, vector, limit)
    except CodeRagError as e:
        raise click.ClickException(str(e)) from e
    finally:
        close_backend(gateway)
        close_backend(store)

    hits = [h for h in hits if h.score is None or h.score >= config.search.min_score]

    if as_json:
        click.echo(
            json.dumps(
                [{"id": h.id, "score": h.score, "metadata": h.metadata, "document": h.document} for h in hits],
                indent=2,
            )
        )
        return

    if not hits:
        status("No results", style="warning")
        return

    table = Table()
    table.add_column("Score", justify="right")
    table.add_column("Type")
    table.add_column("FQN")
    table.add_column("Location")
    for h in hits:
        md = h.metadata
        table.add_row(
            f"{h.score:.3f}" if h.score is not None else "-",
            str(md.get("type", "")),
            str(md.get("fqn", "")),
            f"{md.get('filePath', '')}:{md.get('startLine', '')}",
        )
    get_console().print(table)


@click.command()
@click.pass_context
def count_command(ctx: click.Context) -> None:
    """Print the number of entries in the configured collection."""
    config = load_cli_config(ctx)
    store = build_vector_store(config.vector_store)
    try:
        click.echo(store.count(config.vector_store.collection))
    except CodeRagError as e:
        raise click.ClickException(str(e)) from e
    finally:
        close_backend(store)
