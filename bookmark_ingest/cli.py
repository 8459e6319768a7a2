"""
Bookmark Ingest - CLI

Command-line interface for converting Firefox bookmark backups into CSV
snapshots and reconciling them with the local record store.

Usage:
    firefox-bookmarks-to-csv -i bookmarks.json -o bookmarks.csv
    firefox-bookmarks-to-csv -i bookmarks.json -d manga.sqlite3 -c v1.csv -o v2.csv
    firefox-bookmarks-to-csv convert -i bookmarks.json -o bookmarks.csv
    firefox-bookmarks-to-csv stats -i bookmarks.json
    firefox-bookmarks-to-csv show -d manga.sqlite3
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import get_config, load_env, reset_config
from .db import RecordStore
from .errors import BookmarkIngestError, BookmarkParseError, StoreError
from .firefox_parser import FirefoxParser
from .pipeline import RunReport, run_conversion
from .romanizer import get_default_romanizer

console = Console()

MAX_LISTED_MESSAGES = 10


def setup_logging(level: str, log_format: str) -> None:
    """Configure root logging; log lines go to stderr so stdout stays clean"""
    if log_format == "rich":
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        fmt = "%(message)s"
    else:
        handler = logging.StreamHandler(sys.stderr)
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level.upper(),
        format=fmt,
        handlers=[handler],
    )


def print_messages(title: str, messages: list[str]) -> None:
    if not messages:
        return
    console.print()
    console.print(f"[yellow]{title}:[/yellow]")
    for message in messages[:MAX_LISTED_MESSAGES]:
        console.print(f"  - {message}", markup=False)
    if len(messages) > MAX_LISTED_MESSAGES:
        console.print(f"  ... and {len(messages) - MAX_LISTED_MESSAGES} more")


def print_report(report: RunReport) -> None:
    console.print()
    console.print("[bold green]Conversion Complete![/bold green]")

    results_table = Table(title="Results")
    results_table.add_column("Metric", style="cyan")
    results_table.add_column("Count", justify="right", style="green")

    results_table.add_row("Bookmarks found", str(report.bookmarks_found))
    results_table.add_row("Records written to CSV", str(report.records_written))
    if report.db_path is not None:
        results_table.add_row("New records inserted", str(report.inserted))
        results_table.add_row("Records updated", str(report.updated))
        results_table.add_row("Records unchanged", str(report.unchanged))
    results_table.add_row("Duplicate bookmarks merged", str(report.duplicates_merged))
    results_table.add_row("Records skipped", str(len(report.rejected)))
    results_table.add_row("Warnings", str(len(report.warnings)))

    console.print(results_table)

    if report.store_created:
        console.print(f"Created new record store at {report.db_path}")

    print_messages("Skipped records", report.rejected)
    print_messages("Warnings", report.warnings)

    if report.diff is not None:
        console.print()
        if not report.diff.has_changes:
            console.print("[green]No changes since the comparison snapshot.[/green]")
            return

        diff_table = Table(title="Changes since comparison snapshot")
        diff_table.add_column("Change", style="cyan")
        diff_table.add_column("URL")
        for label, urls in (
            ("added", report.diff.added),
            ("removed", report.diff.removed),
            ("changed", report.diff.changed),
        ):
            for url in urls:
                diff_table.add_row(label, escape(url))
        console.print(diff_table)


def conversion_options(required: bool):
    """Options shared by the top-level command and ``convert``"""
    options = [
        click.option(
            "--input", "-i", "input_path",
            required=required,
            default=None,
            type=click.Path(exists=True, dir_okay=False, path_type=Path),
            help="Path to Firefox bookmarks JSON backup"
        ),
        click.option(
            "--output", "-o", "output_path",
            required=required,
            default=None,
            type=click.Path(dir_okay=False, path_type=Path),
            help="Path of the CSV snapshot to write"
        ),
        click.option(
            "--db", "-d", "db_path",
            default=None,
            type=click.Path(dir_okay=False, path_type=Path),
            help="Record store (SQLite) to reconcile with; created if missing"
        ),
        click.option(
            "--compare", "-c", "compare_path",
            default=None,
            type=click.Path(dir_okay=False, path_type=Path),
            help="Earlier CSV snapshot to report changes against"
        ),
        click.option(
            "--no-romanize",
            is_flag=True,
            help="Do not romanize non-Latin titles"
        ),
    ]

    def decorator(f):
        for option in reversed(options):
            f = option(f)
        return f

    return decorator


@click.group(invoke_without_command=True, no_args_is_help=True)
@click.version_option(version=__version__)
@click.option(
    "--env-file",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Extra .env file to load before reading settings"
)
@conversion_options(required=False)
@click.pass_context
def cli(
    ctx: click.Context,
    env_file: Optional[Path],
    input_path: Optional[Path],
    output_path: Optional[Path],
    db_path: Optional[Path],
    compare_path: Optional[Path],
    no_romanize: bool,
):
    """
    Firefox Bookmarks to CSV - bookmark tracking tool

    Without a command, converts the backup given with -i into the CSV
    snapshot given with -o, the same as the convert command.
    """
    if env_file is not None:
        load_env(str(env_file))
        reset_config()
    cfg = get_config()
    setup_logging(cfg.app.log_level, cfg.app.log_format)

    conversion_given = any([input_path, output_path, db_path, compare_path, no_romanize])
    if ctx.invoked_subcommand is not None:
        if conversion_given:
            raise click.UsageError(
                f"Conversion options go after the command: {ctx.invoked_subcommand} [OPTIONS]"
            )
        return

    if input_path is None:
        raise click.UsageError("Missing option '--input' / '-i'.")
    if output_path is None:
        raise click.UsageError("Missing option '--output' / '-o'.")

    ctx.invoke(
        convert,
        input_path=input_path,
        output_path=output_path,
        db_path=db_path,
        compare_path=compare_path,
        no_romanize=no_romanize,
    )


@cli.command()
@conversion_options(required=True)
def convert(
    input_path: Path,
    output_path: Path,
    db_path: Optional[Path],
    compare_path: Optional[Path],
    no_romanize: bool,
):
    """
    Convert a Firefox bookmarks backup into a CSV snapshot.

    With a record store, bookmarks are merged into it by URL first and the
    snapshot holds every stored record.
    """
    cfg = get_config()
    if db_path is None and cfg.store.db_path:
        db_path = Path(cfg.store.db_path)

    romanize_titles = cfg.normalizer.romanize_titles and not no_romanize

    console.print(f"\n[bold blue]Firefox Bookmarks to CSV[/bold blue]")
    console.print(f"Input: {input_path}")
    console.print(f"Output: {output_path}")
    console.print(f"Store: {db_path or '(none, CSV only)'}")
    console.print()

    romanizer = get_default_romanizer() if romanize_titles else None

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Converting bookmarks...", total=None)

        try:
            report = run_conversion(
                input_path,
                output_path,
                db_path=db_path,
                compare_path=compare_path,
                romanizer=romanizer,
                romanize_titles=romanize_titles,
                extract_hashtags=cfg.normalizer.extract_hashtags,
            )
        except BookmarkParseError as e:
            console.print(f"[red]Error parsing file:[/red] {escape(str(e))}", highlight=False)
            sys.exit(1)
        except StoreError as e:
            console.print(f"[red]Database error:[/red] {escape(str(e))}", highlight=False)
            sys.exit(1)
        except BookmarkIngestError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
            sys.exit(1)

        progress.update(task, completed=True)

    print_report(report)


@cli.command()
@click.option(
    "--input", "-i", "input_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to Firefox bookmarks JSON backup"
)
def stats(input_path: Path):
    """
    Show statistics about a bookmarks backup without converting it.
    """
    console.print(f"\n[bold blue]Bookmarks File Statistics[/bold blue]")
    console.print(f"File: {input_path}")
    console.print()

    try:
        parser = FirefoxParser(input_path)
        file_stats = parser.get_stats()
    except BookmarkParseError as e:
        console.print(f"[red]Error parsing file:[/red] {escape(str(e))}", highlight=False)
        sys.exit(1)

    console.print(f"Total folders: {file_stats['total_folders']}")
    console.print(f"Total bookmarks: {file_stats['total_bookmarks']}")
    console.print(f"Separators: {file_stats['total_separators']}")
    console.print(f"Malformed nodes: {file_stats['malformed_nodes']}")
    console.print()

    if file_stats["top_folders"]:
        table = Table(title="Top-level Folders")
        table.add_column("Folder", style="cyan")
        table.add_column("Bookmark Count", justify="right", style="green")

        for folder in file_stats["top_folders"]:
            table.add_row(escape(folder["label"]), str(folder["count"]))

        console.print(table)
    else:
        console.print("[yellow]No folders found in the bookmarks file.[/yellow]")


@cli.command()
@click.option(
    "--db", "-d", "db_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Record store (SQLite) to inspect"
)
@click.option(
    "--limit", "-n",
    default=50,
    type=int,
    help="Maximum number of records to list (default: 50)"
)
def show(db_path: Path, limit: int):
    """
    Show the records currently held in a record store.
    """
    try:
        with RecordStore.open_or_create(db_path) as store:
            total = store.count()
            records = store.read_all()
    except StoreError as e:
        console.print(f"[red]Database error:[/red] {escape(str(e))}", highlight=False)
        sys.exit(1)

    console.print(f"\n[bold blue]Record Store Status[/bold blue]")
    console.print(f"Store: {db_path}")
    console.print(f"Total records: {total}")
    console.print()

    if not records:
        console.print("[yellow]No records stored yet.[/yellow]")
        return

    table = Table(title="Records")
    table.add_column("ID", justify="right", style="green")
    table.add_column("Title", style="cyan")
    table.add_column("Chapter")
    table.add_column("Last Update")
    table.add_column("URL")

    for record in records[:limit]:
        table.add_row(
            str(record.id),
            escape(record.title),
            record.possible_chapter or "",
            record.possible_last_update or "",
            escape(record.url),
        )

    console.print(table)
    if total > limit:
        console.print(f"... and {total - limit} more")


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == "__main__":
    main()
