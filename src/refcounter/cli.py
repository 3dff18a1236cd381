import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from refcounter import __version__
from refcounter.config import RefCounterConfig, load_config
from refcounter.detector import group_unused_by_file, summarize
from refcounter.models import UnusedSymbolInfo
from refcounter.oracle import SnapshotError, SnapshotOracle
from refcounter.progress import ProgressReporter
from refcounter.service import ReferenceCounter
from refcounter.workspace import RepositoryNotFoundError, find_repository_root, get_relative_path

app = typer.Typer(
    help="Reference Counter - effective reference counts and unused symbol detection",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

CLI_EDITOR_ID = "cli"


class UnsupportedFileError(ValueError):
    """Raised when a file is not handled by the reference counter."""


def _build_counter(
    snapshot: Optional[Path],
    include_imports: Optional[bool],
    use_cache: bool = False,
) -> tuple[Path, RefCounterConfig, ReferenceCounter]:
    """Locate the repository, load its settings and wire a counter to an oracle snapshot."""
    root = find_repository_root(Path.cwd())
    config = load_config(root).with_overrides(
        include_imports=include_imports,
        # A recorded snapshot never warms up, retrying an empty answer is pointless
        symbol_retry_attempts=1,
    )
    snapshot_path = snapshot if snapshot is not None else root / config.snapshot_path
    oracle = SnapshotOracle.from_file(snapshot_path)
    counter = ReferenceCounter(root, config, oracle, oracle, use_snapshot=use_cache)
    return root, config, counter


async def _collect_counts(counter: ReferenceCounter, file_id: str) -> list[dict]:
    await counter.session.collect(file_id)
    counts = counter.active_counts()
    rows = []
    for key, symbol in counter.session.symbols.items():
        rows.append({
            "name": symbol.name,
            "kind": symbol.kind.value,
            "line": symbol.position.line,
            "character": symbol.position.character,
            "references": counts[key],
        })
    counter.close()
    return rows


@app.command()
def counts(
    file: Path = typer.Argument(..., help="Source file to count references for"),
    snapshot: Optional[Path] = typer.Option(None, "--snapshot", "-s", help="Oracle snapshot JSON file"),
    include_imports: Optional[bool] = typer.Option(
        None, "--include-imports/--no-include-imports", help="Count import lines as references"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
):
    """Show the effective reference count of every symbol in a file.

    Examples:
        refcount counts src/app.py
        refcount counts src/app.py --include-imports --json
    """
    try:
        root, _, counter = _build_counter(snapshot, include_imports)
        path = file if file.is_absolute() else Path.cwd() / file
        file_id = get_relative_path(path, root)
        if not counter.accepts(file_id):
            raise UnsupportedFileError(f"{file_id} is not a supported source file")
        rows = asyncio.run(_collect_counts(counter, file_id))
    except (RepositoryNotFoundError, SnapshotError, UnsupportedFileError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)

    if as_json:
        typer.echo(json.dumps(rows, indent=2))
        return

    if not rows:
        console.print(f"No countable symbols in {file_id}")
        return

    table = Table(title=f"References in {file_id}")
    table.add_column("Line", justify="right")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("References", justify="right")
    for row in rows:
        table.add_row(str(row["line"] + 1), row["kind"], row["name"], str(row["references"]))
    console.print(table)


async def _scan(counter: ReferenceCounter, show_progress: bool) -> list[UnusedSymbolInfo]:
    if not show_progress:
        try:
            return await counter.scan_workspace()
        finally:
            counter.close()

    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=err_console,
        transient=True,
    ) as progress:
        task = progress.add_task("Scanning", total=None)

        def on_progress(processed: int, total: int, message: str) -> None:
            progress.update(task, completed=processed, total=total, description=message)

        try:
            return await counter.scan_workspace(ProgressReporter(on_progress=on_progress))
        finally:
            counter.close()


@app.command()
def unused(
    snapshot: Optional[Path] = typer.Option(None, "--snapshot", "-s", help="Oracle snapshot JSON file"),
    include_imports: Optional[bool] = typer.Option(
        None, "--include-imports/--no-include-imports", help="Count import lines as references"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
    use_cache: bool = typer.Option(
        True, "--cache/--no-cache", help="Reuse symbols of unchanged files from .refcounter-cache"
    ),
):
    """List functions, classes and methods that nothing references.

    Examples:
        refcount unused
        refcount unused --snapshot lsp-dump.json --json
    """
    try:
        root, config, counter = _build_counter(snapshot, include_imports, use_cache)
        if not config.enable_unused_symbols:
            typer.echo("Error: unused symbol detection is disabled in .refcounter", err=True)
            raise typer.Exit(code=1)
        items = asyncio.run(_scan(counter, show_progress=not as_json))
    except typer.Exit:
        raise
    except (RepositoryNotFoundError, SnapshotError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)

    if as_json:
        typer.echo(json.dumps([item.to_dict() for item in items], indent=2))
        return

    if not items:
        console.print("No unused symbols found")
        return

    table = Table(title="Unused symbols")
    table.add_column("File")
    table.add_column("Line", justify="right")
    table.add_column("Kind")
    table.add_column("Name")
    for file_id, file_items in group_unused_by_file(items).items():
        for position, item in enumerate(file_items):
            table.add_row(
                file_id if position == 0 else "",
                str(item.line + 1),
                item.kind.value,
                item.name,
                end_section=position == len(file_items) - 1,
            )
    console.print(table)

    breakdown = ", ".join(f"{count} {kind}" for kind, count in sorted(summarize(items).items()))
    console.print(f"{len(items)} unused symbols ({breakdown})")


@app.command()
def mcp_server():
    """Start the MCP server exposing reference counting tools over stdio."""
    from refcounter.mcp_server import main

    asyncio.run(main())


def _version_callback(value: bool):
    """Show version and exit."""
    if value:
        console.print(f"refcount version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log progress and oracle failures"),
):
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )
