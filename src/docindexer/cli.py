"""Command line interface for docindexer."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from docindexer.config import DEFAULT_INDEX_PATH, AppConfig
from docindexer.exceptions import SetupError, ToyDictionaryError
from docindexer.index.indexer import run_indexing
from docindexer.models import WriteMode

USAGE = (
    "Usage: docindexer [--index INDEX_PATH] --docs DOCS_PATH [--update] [--knn-dict DICT_PATH]\n\n"
    "Indexes the documents in DOCS_PATH, creating an index in INDEX_PATH.\n"
    "If DICT_PATH holds a vector dictionary, documents also get embedding vectors."
)

EXIT_SETUP_ERROR = 1
EXIT_TOY_DICTIONARY = 3

console = Console()
err_console = Console(stderr=True)
app = typer.Typer(help="docindexer - index a directory tree for hybrid search", add_completion=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


@app.command()
def index(
    index_path: Path = typer.Option(DEFAULT_INDEX_PATH, "--index", help="Index directory"),
    docs: Optional[Path] = typer.Option(None, "--docs", help="File or directory to index"),
    knn_dict: Optional[Path] = typer.Option(
        None, "--knn-dict", help="Text file of 'token v1 v2 ...' vectors"
    ),
    update: bool = typer.Option(
        False, "--update/--create", help="Replace documents in an existing index by path"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index every file under DOCS_PATH."""
    if docs is None:
        err_console.print(USAGE, markup=False, highlight=False)
        raise typer.Exit(code=EXIT_SETUP_ERROR)

    _setup_logging(verbose)
    config = AppConfig(
        index_path=index_path,
        docs_path=docs,
        knn_dict_path=knn_dict,
        mode=WriteMode.UPSERT if update else WriteMode.CREATE,
    )
    config.index_path = config.resolve_index_path(Path.cwd())

    console.print(f"Indexing to directory '{escape(str(config.index_path))}'...")
    try:
        stats = run_indexing(config)
    except SetupError as exc:
        err_console.print(f"[red]Setup error:[/red] {escape(str(exc))}", highlight=False)
        raise typer.Exit(code=EXIT_SETUP_ERROR) from exc
    except ToyDictionaryError as exc:
        err_console.print(
            f"[red]Vector dictionary check failed:[/red] {escape(str(exc))}", highlight=False
        )
        raise typer.Exit(code=EXIT_TOY_DICTIONARY) from exc

    console.print(
        f"Indexed {stats.document_count} documents in {stats.elapsed_ms} milliseconds"
    )
    console.print(f"Added: {stats.added}, updated: {stats.updated}, failed: {stats.failed}")
