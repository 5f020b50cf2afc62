"""apos-static CLI application using Typer."""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from apos_static import __version__
from apos_static.config import Settings
from apos_static.core.discovery.locales import LocaleEntry
from apos_static.core.discovery.sitemap import SitemapBuilder, write_sitemap
from apos_static.core.export.orchestrator import (
    ExportSummary,
    StaticExportOrchestrator,
    content_api_factory,
    load_locales,
)
from apos_static.utils.exceptions import AposStaticError
from apos_static.utils.logging import configure_logging

app = typer.Typer(
    name="apos-static",
    help="apos-static - export a headless Apostrophe + Astro site to static files",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Display version and exit."""
    if value:
        console.print(f"[bold cyan]apos-static[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """apos-static - export a headless Apostrophe + Astro site to static files."""
    pass


def parse_piece_types(value: str | None) -> list[str] | None:
    """Split a comma-separated piece type list."""
    if value is None:
        return None
    types = [item.strip() for item in value.split(",") if item.strip()]
    return types or None


def load_settings(**overrides: Any) -> Settings:
    """
    Build settings from the environment with CLI flag overrides.

    Raises:
        typer.Exit: If the resulting configuration is invalid
    """
    try:
        return Settings(**{key: value for key, value in overrides.items() if value is not None})
    except ValueError as e:
        err_console.print("\n[bold red]❌ Configuration Errors:[/bold red]")
        err_console.print(f"  {e}")
        raise typer.Exit(code=1) from None


def validate_environment(config: Settings) -> None:
    """
    Validate required configuration before any network activity.

    Raises:
        typer.Exit: If validation fails
    """
    errors = []

    if not config.front_key:
        errors.append("APOS_EXTERNAL_FRONT_KEY not set")

    if config.locales_file is not None and not config.locales_file.is_file():
        errors.append(f"Locales file not found: {config.locales_file}")

    if not config.frontend_dir.is_dir():
        errors.append(f"Frontend directory not found: {config.frontend_dir}")

    if errors:
        err_console.print("\n[bold red]❌ Configuration Errors:[/bold red]")
        for error in errors:
            err_console.print(f"  • {error}")
        err_console.print(
            "\n[yellow]💡 Hint:[/yellow] Check your .env file or environment variables"
        )
        raise typer.Exit(code=1)


def print_summary(summary: ExportSummary) -> None:
    """Print the final export report."""
    crawl = summary.crawl
    lines = (
        f"Pages: {crawl.succeeded} rendered, {crawl.failed} failed "
        f"(of {len(summary.sitemap)})\n"
        f"Build assets: {summary.build_assets_copied} files\n"
        f"Uploads: {summary.assets.copied} copied, {summary.assets.downloaded} downloaded, "
        f"{len(summary.assets.failed)} failed\n"
        f"404 page: {summary.not_found_source}\n"
        f"Output: {summary.output_dir.resolve()}\n"
        f"Elapsed: {summary.elapsed_seconds:.1f}s"
    )

    if not crawl.failed:
        console.print(
            Panel.fit(
                f"[bold green]✅ Static export complete![/bold green]\n\n{lines}",
                title="Success",
                border_style="green",
            )
        )
        return

    table = Table(title="Failed Pages")
    table.add_column("URL", style="cyan")
    table.add_column("Attempts", justify="right")
    table.add_column("Error", style="red")
    for result in crawl.failures:
        table.add_row(result.url_path, str(result.attempts), result.error or "")
    console.print(table)
    console.print(
        Panel.fit(
            f"[bold yellow]⚠️  Static export finished with failures[/bold yellow]\n\n{lines}",
            title="Partial Failure",
            border_style="yellow",
        )
    )


@app.command()
def generate(
    output_dir: Annotated[
        Path | None,
        typer.Option("--output-dir", "-o", help="Directory to write the static site to (wiped first)"),
    ] = None,
    host: Annotated[
        str | None,
        typer.Option("--host", help="Preview server host (default: 127.0.0.1)"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Preview server port (default: 4321)"),
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", "-c", help="Crawl workers (clamped to 2-8, default: CPU count)"),
    ] = None,
    retries: Annotated[
        int | None,
        typer.Option("--retries", "-r", help="Retries per page after the first attempt (default: 3)"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Per-page request timeout in seconds (default: 30)"),
    ] = None,
    piece_types: Annotated[
        str | None,
        typer.Option("--piece-types", help="Comma-separated piece types (skips endpoint discovery)"),
    ] = None,
    apos_host: Annotated[
        str | None,
        typer.Option("--apos-host", help="Content API host (default: $APOS_HOST)"),
    ] = None,
    locales_file: Annotated[
        Path | None,
        typer.Option("--locales-file", help="JSON locale config; enables multi-locale export"),
    ] = None,
    frontend_dir: Annotated[
        Path | None,
        typer.Option("--frontend-dir", help="Frontend project directory (default: current directory)"),
    ] = None,
    skip_build: Annotated[
        bool,
        typer.Option("--skip-build", help="Serve the existing build instead of rebuilding"),
    ] = False,
    with_sitemap: Annotated[
        bool,
        typer.Option("--write-sitemap", help="Also write sitemap.json into the output directory"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging"),
    ] = False,
) -> None:
    """
    Render every page of the site to a static directory tree.

    This command will:
    1. Validate configuration (APOS_EXTERNAL_FRONT_KEY is required)
    2. Build the frontend and start its preview server
    3. Discover pages and pieces through the content API
    4. Render every URL and copy assets and uploads
    5. Stop the preview server and report

    Exits non-zero if any page failed to render, even though output was written.

    Examples:
        apos-static generate
        apos-static generate --output-dir dist-static --concurrency 4
        apos-static generate --piece-types article,event --locales-file locales.json
    """
    config = load_settings(
        output_dir=output_dir,
        preview_host=host,
        preview_port=port,
        crawl_concurrency=concurrency,
        crawl_retries=retries,
        crawl_timeout_seconds=timeout,
        piece_types=parse_piece_types(piece_types),
        apos_host=apos_host,
        locales_file=locales_file,
        frontend_dir=frontend_dir,
        skip_build=skip_build or None,
        write_sitemap=with_sitemap or None,
        log_level="DEBUG" if verbose else None,
    )
    configure_logging(config.log_level, config.environment)
    validate_environment(config)

    console.print(
        Panel.fit(
            "[bold cyan]apos-static[/bold cyan] - Static Site Export\n"
            f"Version {__version__}",
            border_style="cyan",
        )
    )
    console.print("\n[bold]Configuration:[/bold]")
    console.print(f"  Content API: {config.apos_host}")
    console.print(f"  Preview: {config.preview_base_url}")
    console.print(f"  Output: {config.output_dir}")
    if config.piece_types:
        console.print(f"  Piece types: {', '.join(config.piece_types)}")
    if config.locales_file:
        console.print(f"  Locales: {config.locales_file}")
    console.print()

    orchestrator = StaticExportOrchestrator(config)
    try:
        summary = asyncio.run(orchestrator.run())
    except KeyboardInterrupt:
        err_console.print("\n\n[yellow]⚠️  Export cancelled by user (Ctrl+C)[/yellow]")
        raise typer.Exit(code=130) from None
    except asyncio.CancelledError:
        err_console.print("\n\n[yellow]⚠️  Export terminated[/yellow]")
        raise typer.Exit(code=143) from None
    except AposStaticError as e:
        err_console.print("\n[bold red]❌ Static Export Failed:[/bold red]")
        err_console.print(f"  {type(e).__name__}: {e}")
        raise typer.Exit(code=1) from None

    print_summary(summary)
    if summary.exit_code:
        raise typer.Exit(code=summary.exit_code)


@app.command()
def sitemap(
    apos_host: Annotated[
        str | None,
        typer.Option("--apos-host", help="Content API host (default: $APOS_HOST)"),
    ] = None,
    piece_types: Annotated[
        str | None,
        typer.Option("--piece-types", help="Comma-separated piece types (skips endpoint discovery)"),
    ] = None,
    locale: Annotated[
        str | None,
        typer.Option("--locale", help="Fetch content for a single locale id"),
    ] = None,
    locales_file: Annotated[
        Path | None,
        typer.Option("--locales-file", help="JSON locale config; merges all locales"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the JSON list to a file instead of stdout"),
    ] = None,
) -> None:
    """
    Print the list of URLs a static export would render.

    Examples:
        apos-static sitemap > sitemap.json
        apos-static sitemap --piece-types article --locale fr
    """
    config = load_settings(
        apos_host=apos_host,
        piece_types=parse_piece_types(piece_types),
        locales_file=locales_file,
    )
    configure_logging("WARNING", config.environment)
    if not config.front_key:
        err_console.print(
            "[bold red]Error:[/bold red] APOS_EXTERNAL_FRONT_KEY is required in env to read the API"
        )
        raise typer.Exit(code=1)

    async def run_sitemap() -> list[str]:
        locales = load_locales(config)
        if locales is None and locale:
            locales = [LocaleEntry(locale_id=locale, base_url=config.apos_host)]
        builder = SitemapBuilder(
            content_api_factory(config, config.front_key or ""),
            piece_types=config.piece_types,
            ensure_root=config.ensure_root,
        )
        return await builder.build(locales)

    try:
        urls = asyncio.run(run_sitemap())
    except AposStaticError as e:
        err_console.print(f"[bold red]Error:[/bold red] {type(e).__name__}: {e}")
        raise typer.Exit(code=1) from None

    if output is not None:
        write_sitemap(urls, output)
        err_console.print(f"[green]✓ Wrote {len(urls)} URLs to {output}[/green]")
    else:
        typer.echo(json.dumps(urls, indent=2))


if __name__ == "__main__":
    app()
