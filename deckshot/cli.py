"""Command-line interface for uploading captured pages."""
import asyncio
import logging
import mimetypes
from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from deckshot.core.auth import EnvTokenProvider
from deckshot.core.config import settings
from deckshot.services.batch_uploader import upload_screenshots
from deckshot.services.blob_codec import encode_data_url
from deckshot.services.error_handling import UploadError

console = Console()


def read_as_data_url(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    return encode_data_url(path.read_bytes(), mime_type)


@click.group()
@click.option('--coordinator-url', default=settings.COORDINATOR_URL, envvar='COORDINATOR_URL', help='Coordinator base URL')
@click.option('--log-level', default=settings.LOG_LEVEL, help='Logging level')
@click.pass_context
def cli(ctx, coordinator_url, log_level):
    """Upload captured slide-deck pages to storage."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    ctx.ensure_object(dict)
    ctx.obj['coordinator_url'] = coordinator_url


@cli.command()
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--concurrency', '-c', default=settings.UPLOAD_CONCURRENCY, type=click.IntRange(min=1), help='Files uploaded in parallel')
@click.option('--token-env', default=settings.AUTH_TOKEN_ENV, help='Environment variable holding the bearer token')
@click.pass_context
def upload(ctx, files, concurrency, token_env):
    """Upload FILES in order and print their storage keys."""
    encoded = [read_as_data_url(path) for path in files]

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console
    ) as progress:
        task = progress.add_task("Uploading...", total=100)

        def on_progress(update):
            progress.update(
                task,
                completed=update.percent,
                description=f"Uploading {update.current_file}/{update.total_files}"
            )

        try:
            outcomes = asyncio.run(upload_screenshots(
                encoded,
                on_progress,
                concurrency,
                credential_provider=EnvTokenProvider(token_env),
                coordinator_url=ctx.obj['coordinator_url']
            ))
        except UploadError as e:
            console.print(f"[red]Error: {e}[/red]")
            ctx.exit(1)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("File")
    table.add_column("Uploaded as")
    table.add_column("Storage key")
    for path, outcome in zip(files, outcomes):
        table.add_row(path.name, outcome.original_filename, outcome.storage_key)
    console.print(table)
