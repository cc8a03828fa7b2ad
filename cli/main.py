#!/usr/bin/env python3
"""
HLS Forge CLI - transcode and publish videos, run the delivery gateway
"""
import asyncio
import sys
from pathlib import Path
from typing import Dict, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from api.config import settings
from api.utils.logger import setup_logging
from worker.base import ProcessingError
from worker.models import PipelineOptions, VideoCategory, Visibility
from worker.tasks import VideoPipelineTask

console = Console()


async def build_pipeline(hardware_mode: str) -> VideoPipelineTask:
    """Wire storage, metadata store and publisher from settings."""
    from api.models.database import AsyncSessionLocal, init_db
    from api.repositories.video_repository import VideoRepository
    from storage.factory import create_storage_backend, storage_config_from_settings
    from worker.publisher import Publisher

    await init_db()
    storage = create_storage_backend(storage_config_from_settings(settings))
    publisher = Publisher(storage, VideoRepository(AsyncSessionLocal))
    return VideoPipelineTask(publisher, hardware_mode=hardware_mode)


class RenditionProgress:
    """Rich progress bars, one per rendition."""

    def __init__(self, progress: Progress):
        self.progress = progress
        self.tasks: Dict[str, int] = {}

    def __call__(self, label: str, percent: float, stats: dict) -> None:
        if label not in self.tasks:
            self.tasks[label] = self.progress.add_task(f"Encoding {label}", total=100)
        speed = stats.get('speed')
        description = f"Encoding {label}" + (f" ({speed:.1f}x)" if speed else "")
        self.progress.update(self.tasks[label], completed=percent, description=description)


async def _process(source: Path, user_id: str, options: PipelineOptions, hardware_mode: str):
    task = await build_pipeline(hardware_mode)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        return await task.run(source, user_id, options, observer=RenditionProgress(progress))


@click.group()
@click.option('--log-level', default=None, help='Log level (defaults to API_LOG_LEVEL)')
def cli(log_level: Optional[str]):
    """HLS Forge command-line interface"""
    setup_logging(level=log_level)


@cli.command()
@click.argument('source', type=click.Path(path_type=Path))
@click.option('--title', required=True, help='Video title (max 100 characters)')
@click.option('--description', default='', help='Video description')
@click.option('--category', default=VideoCategory.MOVIES.value,
              type=click.Choice([c.value for c in VideoCategory]))
@click.option('--genre', default='action', help='Primary genre')
@click.option('--secondary-genre', 'secondary_genres', multiple=True, help='Secondary genre (up to 2)')
@click.option('--sub-category', default=None, help='Sub-category')
@click.option('--tag', 'tags', multiple=True, help='Tag (repeatable)')
@click.option('--visibility', default=Visibility.PUBLIC.value,
              type=click.Choice([v.value for v in Visibility]))
@click.option('--user-id', default=None, help='Owner user id (defaults to DEFAULT_USER_ID)')
@click.option('--gpu/--cpu', 'gpu', default=None, help='Force the hardware or software encoder')
def process(source, title, description, category, genre, secondary_genres,
            sub_category, tags, visibility, user_id, gpu):
    """Transcode SOURCE into HLS renditions and publish it."""
    try:
        options = PipelineOptions(
            title=title,
            description=description,
            category=category,
            genre=genre,
            secondary_genres=list(secondary_genres),
            sub_category=sub_category,
            tags=list(tags),
            visibility=visibility,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid options: {e}[/red]")
        sys.exit(1)

    hardware_mode = 'auto' if gpu is None else ('on' if gpu else 'off')
    user_id = user_id or settings.DEFAULT_USER_ID

    console.print(f"[cyan]Processing {source}[/cyan]")
    try:
        asset = asyncio.run(_process(source, user_id, options, hardware_mode))
    except ProcessingError as e:
        console.print(f"[red]Processing failed: {e}[/red]")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    table = Table(title="Published renditions")
    table.add_column("Label", style="cyan")
    table.add_column("Resolution")
    table.add_column("Encoder")
    for rendition in asset.renditions:
        table.add_row(rendition.label, rendition.resolution, rendition.encoder.value)
    console.print(table)

    if asset.partial:
        console.print("[yellow]Some renditions failed and were left out[/yellow]")
    console.print(f"[green]✓ Video published: {asset.id}[/green]")
    console.print(f"HLS URL: {asset.hls_url}")


@cli.command()
@click.option('--host', default=None, help='Bind address (defaults to API_HOST)')
@click.option('--port', default=None, type=int, help='Bind port (defaults to API_PORT)')
def serve(host, port):
    """Run the HLS delivery gateway."""
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=host or settings.API_HOST,
        port=port or settings.API_PORT,
        workers=settings.API_WORKERS,
        reload=settings.API_RELOAD,
        log_config=None,
    )


def main():
    """Main entry point for HLS Forge CLI."""
    cli()


if __name__ == "__main__":
    main()
