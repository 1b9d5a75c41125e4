#!/usr/bin/env python3
"""
DailyNews - RSS News Ingestion
==============================

Main application entry point with CLI interface for management and testing.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py init-db                   # Initialize database
    python main.py seed                      # Insert catalogs and starter sources
    python main.py refresh                   # Run a full ingestion
    python main.py test-source URL           # Preview a feed before adding it
    python main.py add-source ...            # Add a user source
"""

import sys
import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from dailynews.config.settings import get_settings
from dailynews.database.connection import get_db_manager
from dailynews.database.models import NewsFilters
from dailynews.database.schema import DatabaseSchema
from dailynews.database.seed import seed_database
from dailynews.ingestion.image_qualifier import validate_image
from dailynews.ingestion import pattern_detector
from dailynews.processing.pipeline import IngestionPipeline, IngestionResult
from dailynews.scheduler.refresh_scheduler import RefreshScheduler
from dailynews.services import FallbackImageService, SourceService
from dailynews.storage import NewsRepository
from dailynews.utils.exceptions import DailyNewsError, get_user_friendly_message
from dailynews.utils.ingestion_lock import ingestion_lock_for
from dailynews.utils.logging import configure_application_logging

console = Console()
logger = logging.getLogger(__name__)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """DailyNews - RSS news ingestion and admission pipeline."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _bootstrap(ctx):
    """Load settings and configure logging for a command."""
    settings = get_settings()
    debug = ctx.obj.get('debug') if ctx.obj else False
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )
    return settings


def _fail(message: str, error: Optional[Exception] = None) -> None:
    if isinstance(error, DailyNewsError):
        detail = get_user_friendly_message(error)
    else:
        detail = str(error) if error else ""
    console.print(f"[bold red]❌ {message}{': ' + detail if detail else ''}[/bold red]")
    sys.exit(1)


def _print_ingestion_result(result: IngestionResult) -> None:
    table = Table(title=f"Ingestion ({result.mode})")
    table.add_column("Group", style="cyan")
    table.add_column("Sources", justify="right")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Admitted", justify="right", style="green")
    table.add_column("Discarded", justify="right", style="yellow")
    table.add_column("Top discard reasons")

    for group in result.groups:
        reasons = sorted(group.discards.items(), key=lambda kv: kv[1], reverse=True)[:3]
        table.add_row(
            f"{group.category}/{group.language}",
            str(group.sources_total),
            str(group.sources_failed),
            str(group.admitted),
            str(group.discarded),
            ", ".join(f"{name}={count}" for name, count in reasons),
        )

    console.print(table)
    console.print(
        f"Admitted [green]{result.total_admitted}[/green], discarded "
        f"[yellow]{result.total_discarded}[/yellow] in {result.duration_seconds:.1f}s"
    )
    if result.purge_failed:
        console.print("[yellow]⚠️ Purge of previous news failed; old items may remain[/yellow]")
    for error in result.errors:
        console.print(f"[red]• {error}[/red]")


@cli.command()
@click.pass_context
def check_config(ctx):
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking DailyNews Configuration[/bold blue]")

    try:
        settings = get_settings()

        table = Table(title="Configuration Status")
        table.add_column("Component", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Details")

        checks = [
            ("Database", _check_database_config, settings),
            ("Logging", _check_logging_config, settings),
            ("Filters", _check_filter_config, settings),
            ("Images", _check_image_config, settings),
            ("Scheduler", _check_scheduler_config, settings),
        ]

        all_passed = True
        for name, check_func, config in checks:
            status, details = check_func(config)
            table.add_row(name, "✅ Valid" if status else "❌ Invalid", details)
            if not status:
                all_passed = False

        console.print(table)

        if all_passed:
            console.print("[bold green]✅ All configuration checks passed![/bold green]")
        else:
            console.print("[bold red]❌ Configuration validation failed[/bold red]")
            sys.exit(1)

    except DailyNewsError as e:
        _fail("Configuration error", e)


@cli.command()
@click.pass_context
def init_db(ctx):
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing DailyNews Database[/bold blue]")

    try:
        settings = _bootstrap(ctx)
        schema = DatabaseSchema(settings.database.path)
        Path(settings.database.path).parent.mkdir(parents=True, exist_ok=True)
        schema.create_tables()

        if not schema.verify_schema():
            _fail("Database schema verification failed")

        console.print("[bold green]✅ Database initialized successfully![/bold green]")

        info = get_db_manager(settings.database.path).get_database_info()
        info_table = Table(title="Database Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")
        info_table.add_row("Database Path", settings.database.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        for table_name, count in info['table_counts'].items():
            info_table.add_row(f"Rows in {table_name}", str(count))
        console.print(info_table)

    except DailyNewsError as e:
        _fail("Database initialization error", e)


@cli.command()
@click.option('--no-sources', is_flag=True, help='Only insert categories and languages')
@click.pass_context
def seed(ctx, no_sources):
    """Insert categories, languages and starter sources."""
    settings = _bootstrap(ctx)
    DatabaseSchema(settings.database.path).create_tables()
    inserted = seed_database(get_db_manager(settings.database.path), include_sources=not no_sources)

    for table_name, count in inserted.items():
        console.print(f"  {table_name}: [green]{count}[/green] inserted")
    console.print("[bold green]✅ Seed complete[/bold green]")


@cli.command()
@click.option('--deadline', type=float, help='Abort the run after this many seconds')
@click.option('--manual', is_flag=True, help='Use the manual refresh timeout as deadline')
@click.pass_context
def refresh(ctx, deadline, manual):
    """Run a full ingestion of every active source."""
    settings = _bootstrap(ctx)
    console.print("[bold blue]🔄 Refreshing news[/bold blue]")

    try:
        if manual:
            scheduler = RefreshScheduler(settings)
            result = asyncio.run(scheduler.trigger_manual_refresh(timeout=deadline))
        else:
            pipeline = IngestionPipeline(get_db_manager(settings.database.path), settings)
            with ingestion_lock_for(settings.database.path):
                result = asyncio.run(pipeline.run_full_ingestion(deadline=deadline))
    except DailyNewsError as e:
        _fail("Refresh failed", e)

    _print_ingestion_result(result)


@cli.command()
@click.argument('source_id', type=int)
@click.pass_context
def ingest_source(ctx, source_id):
    """Ingest a single source without purging stored news."""
    settings = _bootstrap(ctx)
    pipeline = IngestionPipeline(get_db_manager(settings.database.path), settings)

    try:
        result = asyncio.run(pipeline.run_single_source_ingestion(source_id))
    except DailyNewsError as e:
        _fail(f"Ingestion of source {source_id} failed", e)

    _print_ingestion_result(result)


@cli.command()
@click.argument('url')
@click.pass_context
def detect_pattern(ctx, url):
    """Detect the extraction pattern of a feed."""
    settings = _bootstrap(ctx)

    try:
        pattern = asyncio.run(pattern_detector.detect_pattern(url, settings))
    except DailyNewsError as e:
        _fail("Pattern detection failed", e)

    console.print(f"Detected pattern: [bold green]{pattern.label}[/bold green] ({pattern.value})")


@cli.command()
@click.argument('url')
@click.pass_context
def test_source(ctx, url):
    """Preview a feed: detected pattern, valid items and sample titles."""
    settings = _bootstrap(ctx)
    service = SourceService(get_db_manager(settings.database.path), settings)
    console.print(f"[bold blue]🧪 Testing {url}[/bold blue]")

    try:
        result = asyncio.run(service.test_source(url))
    except DailyNewsError as e:
        _fail("This feed cannot be added", e)

    console.print(f"  Pattern: [green]{result.pattern.label}[/green] ({result.pattern_type})")
    console.print(f"  Valid items: {result.valid_count}/{result.total_count}")
    for title in result.sample_titles:
        console.print(f"  • {title}")


@cli.command(name='validate-image')
@click.argument('url')
@click.pass_context
def validate_image_url(ctx, url):
    """Check whether an image URL qualifies for publication."""
    settings = _bootstrap(ctx)

    try:
        qualified = asyncio.run(validate_image(url, settings))
    except DailyNewsError as e:
        _fail("Image could not be checked", e)

    if qualified:
        console.print("[bold green]✅ Image qualifies[/bold green]")
    else:
        console.print("[yellow]⚠️ Image rejected (size or aspect ratio)[/yellow]")
        sys.exit(1)


@cli.command()
@click.option('--name', required=True, help='Display name of the source')
@click.option('--url', 'rss_url', required=True, help='Feed URL')
@click.option('--category', required=True, help='Category code')
@click.option('--language', required=True, help='Language code')
@click.option('--fallback-image-id', type=int, help='Fallback image to associate')
@click.option('--no-ingest', is_flag=True, help='Skip the initial ingestion')
@click.pass_context
def add_source(ctx, name, rss_url, category, language, fallback_image_id, no_ingest):
    """Add a user source with an auto-detected pattern."""
    settings = _bootstrap(ctx)
    service = SourceService(get_db_manager(settings.database.path), settings)

    try:
        result = asyncio.run(
            service.add_source(
                name, rss_url, category, language,
                fallback_image_id=fallback_image_id, ingest=not no_ingest,
            )
        )
    except DailyNewsError as e:
        _fail("Source not added", e)

    console.print(
        f"[bold green]✅ Source {result.source_id} added with {result.pattern.label}[/bold green]"
    )
    if not result.pattern.has_image:
        console.print("[yellow]This feed has no images; a fallback image is required[/yellow]")
    if result.ingestion_error:
        console.print(f"[yellow]⚠️ Initial ingestion failed: {result.ingestion_error}[/yellow]")
    elif result.ingestion:
        console.print(f"Initial ingestion admitted {result.admitted} items")


@cli.command()
@click.option('--category', help='Filter by category code')
@click.option('--language', help='Filter by language code')
@click.option('--user-added', is_flag=True, help='Only user-added sources')
@click.pass_context
def list_sources(ctx, category, language, user_added):
    """List configured sources."""
    settings = _bootstrap(ctx)
    service = SourceService(get_db_manager(settings.database.path), settings)
    sources = service.list_sources(category, language, True if user_added else None)

    if not sources:
        console.print("[yellow]⚠️ No sources found[/yellow]")
        return

    table = Table(title=f"Sources ({len(sources)})")
    table.add_column("ID", justify="right")
    table.add_column("Status")
    table.add_column("Name", style="cyan")
    table.add_column("Group", style="yellow")
    table.add_column("Pattern")
    table.add_column("URL", style="blue")

    for source in sources:
        url = source.rss_url if len(source.rss_url) <= 50 else source.rss_url[:47] + "..."
        table.add_row(
            str(source.id),
            "🟢" if source.active else "⚪",
            source.name + (" (user)" if source.user_added else ""),
            f"{source.category_code}/{source.language_code}",
            source.pattern.label if source.pattern else "custom",
            url,
        )
    console.print(table)


@cli.command()
@click.argument('source_id', type=int)
@click.argument('name')
@click.pass_context
def rename_source(ctx, source_id, name):
    """Rename a user-added source."""
    settings = _bootstrap(ctx)
    service = SourceService(get_db_manager(settings.database.path), settings)

    try:
        source = service.rename_source(source_id, name)
    except DailyNewsError as e:
        _fail("Rename failed", e)

    console.print(f"[bold green]✅ Source {source.id} renamed to '{source.name}'[/bold green]")


@cli.command()
@click.argument('source_id', type=int)
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def delete_source(ctx, source_id, yes):
    """Delete a source with its news and fallback image."""
    settings = _bootstrap(ctx)
    if not yes and not click.confirm(f"Delete source {source_id} and all its news?"):
        console.print("[yellow]Deletion cancelled[/yellow]")
        return

    service = SourceService(get_db_manager(settings.database.path), settings)
    try:
        service.delete_source(source_id)
    except DailyNewsError as e:
        _fail("Delete failed", e)

    console.print(f"[bold green]✅ Source {source_id} deleted[/bold green]")


@cli.command()
@click.argument('image_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--category', help='Category code')
@click.option('--language', help='Language code')
@click.option('--source-id', type=int, help='Attach to a user-added source instead of a group')
@click.pass_context
def upload_fallback(ctx, image_path, category, language, source_id):
    """Store a local image as fallback for a group or a source."""
    settings = _bootstrap(ctx)
    db = get_db_manager(settings.database.path)
    path = Path(image_path)
    content_type = mimetypes.guess_type(path.name)[0] or ""

    try:
        if source_id is not None:
            image = SourceService(db, settings).set_source_fallback_image(
                source_id, path.read_bytes(), path.name, content_type
            )
        else:
            if not category or not language:
                _fail("--category and --language are required without --source-id")
            image = FallbackImageService(db, settings).save_upload(
                path.read_bytes(), path.name, content_type, category, language
            )
    except DailyNewsError as e:
        _fail("Upload failed", e)

    console.print(f"[bold green]✅ Stored {image.filename} (id {image.id})[/bold green]")


@cli.command()
@click.argument('url')
@click.option('--category', required=True, help='Category code')
@click.option('--language', required=True, help='Language code')
@click.pass_context
def import_fallback(ctx, url, category, language):
    """Download, resize and store a remote image as group fallback."""
    settings = _bootstrap(ctx)
    service = FallbackImageService(get_db_manager(settings.database.path), settings)

    try:
        image = service.import_from_url(url, category, language)
    except DailyNewsError as e:
        _fail("Import failed", e)

    console.print(f"[bold green]✅ Imported {image.filename} ({image.file_size} bytes)[/bold green]")


@cli.command()
@click.option('--language', help='Language code')
@click.option('--category', help='Category code')
@click.option('--source', 'sources', multiple=True, help='Source name (repeatable)')
@click.option('--exclude-category', 'exclude', multiple=True, help='Category to leave out (repeatable)')
@click.option('--since', type=click.DateTime(formats=["%Y-%m-%d"]), help='Published on or after')
@click.option('--until', type=click.DateTime(formats=["%Y-%m-%d"]), help='Published on or before')
@click.option('--search', help='Text contained in the title')
@click.option('--limit', default=20, show_default=True, help='Page size (max 100)')
@click.option('--page', default=1, show_default=True, help='Page number')
@click.pass_context
def news(ctx, language, category, sources, exclude, since, until, search, limit, page):
    """List stored news, newest first."""
    settings = _bootstrap(ctx)
    repository = NewsRepository(get_db_manager(settings.database.path))

    filters = NewsFilters(
        language=language,
        category=category,
        sources=list(sources),
        exclude_categories=list(exclude),
        date_from=since,
        date_to=until.replace(hour=23, minute=59, second=59) if until else None,
        search=search,
    )

    try:
        total = repository.count_filtered_news(filters)
        items = repository.get_filtered_news(filters, limit=limit, offset=(max(page, 1) - 1) * limit)
    except DailyNewsError as e:
        _fail("Could not list news", e)

    if not items:
        console.print("[yellow]⚠️ No news found[/yellow]")
        return

    table = Table(title=f"News (page {page}, {total} total)")
    table.add_column("Published", style="cyan")
    table.add_column("Group", style="yellow")
    table.add_column("Source")
    table.add_column("Title", style="green")

    for item in items:
        title = item.title if len(item.title) <= 70 else item.title[:67] + "..."
        table.add_row(
            item.pub_date.strftime("%Y-%m-%d %H:%M"),
            f"{item.category_code}/{item.language_code}",
            item.source_name or str(item.source_id),
            title,
        )
    console.print(table)


# Helper functions for configuration checks
def _check_database_config(settings) -> tuple[bool, str]:
    """Check database configuration."""
    try:
        db_path = Path(settings.database.path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return True, f"Path: {settings.database.path}"
    except OSError as e:
        return False, str(e)


def _check_logging_config(settings) -> tuple[bool, str]:
    """Check logging configuration."""
    try:
        if settings.logging.file_path:
            Path(settings.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Level: {settings.logging.level.value}, Console: {settings.logging.console_logging}"
    except OSError as e:
        return False, str(e)


def _check_filter_config(settings) -> tuple[bool, str]:
    filters = settings.filters
    if filters.min_title > filters.max_title:
        return False, f"min_title {filters.min_title} > max_title {filters.max_title}"
    return True, f"Title {filters.min_title}-{filters.max_title}, blacklist: {len(filters.blacklist)} terms"


def _check_image_config(settings) -> tuple[bool, str]:
    images = settings.images
    low, high = images.aspect_bounds
    try:
        Path(images.fallback_dir).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return False, str(e)
    return True, f"Aspect {low:.2f}-{high:.2f}, min {images.min_width}x{images.min_height}"


def _check_scheduler_config(settings) -> tuple[bool, str]:
    scheduler = settings.scheduler
    mode = "atomic swap" if settings.ingestion.atomic_refresh else "purge first"
    return True, f"Every {scheduler.interval_minutes} min, {mode}, deadline {settings.limits.manual_refresh_timeout}s"


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 DailyNews interrupted by user[/yellow]")
        sys.exit(130)
