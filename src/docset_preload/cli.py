"""Command-line interface for docset-preload."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from docset_preload import __version__
from docset_preload.config import AppConfig
from docset_preload.docset import DocumentationFetcher
from docset_preload.errors import PreloadError
from docset_preload.fetcher import PageFetcher
from docset_preload.jobs import EnqueuedJob, JobStatus, OutcomeState, PreloadJob
from docset_preload.orchestrator import JobOrchestrator
from docset_preload.output import LocalSites, LocalStore
from docset_preload.patterns import PatternRegistry, parse_docset_type
from docset_preload.preload import PreloadRequest, to_jsonl
from docset_preload.search import LocalSearchEngine, RemoteSearchEngine

app = typer.Typer(
    name="docset-preload",
    help="Crawl documentation sites into a local, searchable Markdown index.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()
state: dict[str, AppConfig] = {}


def version_callback(value: bool):
    if value:
        console.print(f"docset-preload version {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=verbose, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML configuration file",
        exists=True,
        dir_okay=False,
    ),
    storage: Optional[Path] = typer.Option(
        None,
        "--storage",
        "-s",
        help="Storage root for site stores and job snapshots (overrides config)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
):
    """Documentation preloading and local search."""
    app_config = AppConfig.from_toml(config) if config else AppConfig()
    if storage is not None:
        app_config.storage.root = storage
    app_config.verbose = verbose or app_config.verbose
    _configure_logging(app_config.verbose)
    state["config"] = app_config


def _config() -> AppConfig:
    return state.get("config") or AppConfig()


def _fail(message: str, code: int = 1) -> None:
    console.print(f"[red]Error: {message}[/red]")
    if _config().verbose:
        console.print_exception()
    raise typer.Exit(code)


def _run(coro):
    """Run a coroutine, mapping domain errors and Ctrl-C to exit codes."""
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        raise typer.Exit(130)
    except PreloadError as e:
        _fail(e.message)


async def _run_preload(
    config: AppConfig,
    start: Callable[[JobOrchestrator], Awaitable[EnqueuedJob]],
    output: Optional[Path] = None,
    format: str = "json",
) -> bool:
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        TextColumn("•"),
        TimeRemainingColumn(),
        console=console,
    )
    task_ids: dict[str, TaskID] = {}

    def on_progress(job: PreloadJob) -> None:
        if job.id not in task_ids:
            task_ids[job.id] = progress.add_task("Discovering...", total=None)
        counts = job.progress
        description = "Discovering..." if counts.total == 0 else "Preloading..."
        if counts.failed:
            description = f"{description} [red]{counts.failed} failed[/red]"
        progress.update(
            task_ids[job.id],
            description=description,
            total=counts.total or None,
            completed=counts.completed + counts.failed,
        )

    async with PageFetcher(config.fetcher) as fetcher:
        orchestrator = JobOrchestrator(config, fetcher, on_progress=on_progress)
        with progress:
            enqueued = await start(orchestrator)
            await orchestrator.wait(enqueued.job_id)
        outcome = await orchestrator.result(enqueued.job_id)

    console.print(f"Job: [cyan]{enqueued.job_id}[/cyan]")
    if outcome.state != OutcomeState.COMPLETED or outcome.result is None:
        console.print(f"[red]{outcome.error}[/red]")
        return False

    result = outcome.result
    console.print()
    console.print("[bold]Preload complete[/bold]")
    console.print(f"  Discovered: {result.discovered}")
    console.print(f"  Preloaded:  [green]{result.preloaded}[/green]")
    if result.failed:
        console.print(f"  Failed:     [red]{result.failed}[/red]")
        for error in result.errors[:10]:
            console.print(f"    [dim]{error.path}[/dim] {error.error}")
    console.print(f"  Site store: {result.local_output.directory}")
    for message in result.local_output.errors:
        console.print(f"  [yellow]{message}[/yellow]")

    if output is not None:
        if format == "jsonl":
            payload = to_jsonl(result.to_bundle())
        else:
            payload = result.model_dump_json(by_alias=True, exclude_none=True, indent=2)
        output.write_text(payload, encoding="utf-8")
        console.print(f"  Result:     {output}")
    return True


@app.command()
def preload(
    base_url: str = typer.Argument(..., help="Base URL of the documentation site"),
    paths: Optional[list[str]] = typer.Option(
        None,
        "--path",
        "-p",
        help="Extra path or URL to preload (repeatable)",
    ),
    docset_type: Optional[str] = typer.Option(
        None,
        "--type",
        "-t",
        help="Docset type (see list-docset-types); detected per page when omitted",
    ),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", help="Maximum pages to fetch"),
    max_discover: Optional[int] = typer.Option(
        None, "--max-discover", help="Maximum URLs to discover"
    ),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", help="Link crawl depth"),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-j", help="Concurrent page fetches"
    ),
    include_base: bool = typer.Option(True, "--include-base/--no-include-base"),
    indexes: bool = typer.Option(
        True, "--indexes/--no-indexes", help="Use sitemaps and search indexes"
    ),
    links: bool = typer.Option(True, "--links/--no-links", help="Crawl links"),
    same_host_only: bool = typer.Option(True, "--same-host/--any-host"),
    format: str = typer.Option("json", "--format", "-f", help="Result format: json or jsonl"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the job result to this file"
    ),
):
    """
    Discover, fetch and index a documentation site into the local store.

    Examples:

        docset-preload preload https://docs.example.com

        docset-preload preload https://docs.example.com --max-pages 50 -j 8

        docset-preload preload https://docs.example.com -p /guide -o result.jsonl -f jsonl
    """
    config = _config()
    try:
        request = PreloadRequest.parse({
            "base_url": base_url,
            "paths": paths or [],
            "docset_type": docset_type,
            "format": format,
            "max_pages": max_pages if max_pages is not None else config.preload.max_pages,
            "max_discover": max_discover if max_discover is not None else config.discovery.max_discover,
            "max_depth": max_depth if max_depth is not None else config.discovery.max_depth,
            "concurrency": concurrency if concurrency is not None else config.preload.concurrency,
            "include_base": include_base,
            "include_indexes": indexes,
            "include_links": links,
            "same_host_only": same_host_only,
        })
    except PreloadError as e:
        _fail(e.message)
    if not _run(_run_preload(
        config, lambda orchestrator: orchestrator.enqueue(request), output, request.format
    )):
        raise typer.Exit(1)


async def _status(config: AppConfig, job_id: str):
    async with PageFetcher(config.fetcher) as fetcher:
        return await JobOrchestrator(config, fetcher).status(job_id)


@app.command()
def status(job_id: str = typer.Argument(..., help="Preload job id")):
    """Show the last known state of a preload job."""
    view = _run(_status(_config(), job_id))
    if view is None:
        _fail("Preload job not found.", code=2)

    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Job", view.id)
    color = {JobStatus.COMPLETED.value: "green", JobStatus.FAILED.value: "red"}.get(
        view.status, "yellow"
    )
    table.add_row("Status", f"[{color}]{view.status}[/{color}]")
    if view.request is not None:
        table.add_row("Base URL", view.request.base_url)
    if view.progress is not None:
        counts = view.progress
        table.add_row(
            "Progress",
            f"{counts.completed}/{counts.total} done, {counts.failed} failed, "
            f"{counts.discovered} discovered",
        )
    if view.updated_at:
        table.add_row("Updated", view.updated_at)
    if view.error:
        table.add_row("Error", f"[red]{view.error}[/red]")
    if view.message:
        table.add_row("Note", view.message)
    console.print(table)


async def _result(config: AppConfig, job_id: str):
    async with PageFetcher(config.fetcher) as fetcher:
        return await JobOrchestrator(config, fetcher).result(job_id)


@app.command()
def result(
    job_id: str = typer.Argument(..., help="Preload job id"),
    format: str = typer.Option("json", "--format", "-f", help="json or jsonl"),
):
    """Print a finished job's result."""
    outcome = _run(_result(_config(), job_id))
    if outcome.state != OutcomeState.COMPLETED or outcome.result is None:
        code = 2 if outcome.state == OutcomeState.NOT_FOUND else 1
        _fail(outcome.error or "Preload job result unavailable.", code=code)
    if format == "jsonl":
        typer.echo(to_jsonl(outcome.result.to_bundle()))
    else:
        typer.echo(outcome.result.model_dump_json(by_alias=True, exclude_none=True, indent=2))


async def _fetch(config: AppConfig, url: str, path: Optional[str], docset_type: Optional[str]):
    async with PageFetcher(config.fetcher) as fetcher:
        documents = DocumentationFetcher(fetcher, config.extractor)
        return await documents.fetch_markdown(url, path, parse_docset_type(docset_type))


@app.command()
def fetch(
    url: str = typer.Argument(..., help="Page URL, or base URL when --path is given"),
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Path relative to URL"),
    docset_type: Optional[str] = typer.Option(None, "--type", "-t", help="Docset type"),
    raw: bool = typer.Option(False, "--raw", help="Print plain Markdown without rendering"),
):
    """Fetch one page and print it as Markdown."""
    page = _run(_fetch(_config(), url, path, docset_type))
    if raw:
        typer.echo(page.markdown)
        return
    console.print(f"[dim]{page.url} ({page.docset_type.value})[/dim]")
    console.print(Markdown(page.markdown))


@app.command()
def search(
    query: str = typer.Argument(..., help="Text to search for"),
    slug: Optional[str] = typer.Option(None, "--site", help="Limit to one local site"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum results (1-200)"),
):
    """Search titles and content of locally stored documentation."""
    engine = LocalSearchEngine(LocalStore(_config().storage.root))
    response = _run(engine.search(query, slug=slug, limit=limit))

    if not response.results:
        console.print(f"[yellow]No results for {response.query!r}.[/yellow]")
        return

    table = Table(title=f"{response.total_results} results for {response.query!r}")
    table.add_column("Score", justify="right", style="cyan")
    table.add_column("Site")
    table.add_column("Title", style="bold")
    table.add_column("Snippet", overflow="fold")
    for hit in response.results:
        table.add_row(str(hit.score), hit.slug, hit.title or hit.path, hit.snippet)
    console.print(table)


async def _search_remote(config: AppConfig, url: str, query: str, docset_type: Optional[str]):
    async with PageFetcher(config.fetcher) as fetcher:
        return await RemoteSearchEngine(fetcher).search(url, query, parse_docset_type(docset_type))


@app.command("search-remote")
def search_remote(
    url: str = typer.Argument(..., help="Documentation URL"),
    query: str = typer.Argument(..., help="Text to search for"),
    docset_type: Optional[str] = typer.Option(
        None, "--type", "-t", help="mkdocs or sphinx to try only that index format"
    ),
    diagnostics: bool = typer.Option(False, "--diagnostics", help="Show the sources tried"),
):
    """Search a live documentation site through its own search index or sitemap."""
    if not query.strip():
        _fail("Missing search query")
    response = _run(_search_remote(_config(), url, query, docset_type))

    if response.results:
        table = Table(title=f"{len(response.results)} results for {response.query!r}")
        table.add_column("Source", style="cyan")
        table.add_column("Title", style="bold")
        table.add_column("URL", overflow="fold")
        table.add_column("Snippet", overflow="fold")
        for hit in response.results:
            table.add_row(hit.source, hit.title, hit.url, hit.snippet)
        console.print(table)
    else:
        console.print(f"[yellow]No results for {response.query!r} under {response.base_url}.[/yellow]")

    if diagnostics:
        info = response.diagnostics
        console.print(f"[dim]Bases tried:[/dim] {', '.join(info.bases_tried)}")
        console.print(f"[dim]Sources fetched:[/dim] {', '.join(info.fetched_source_urls) or '-'}")
        for error in info.parse_errors:
            console.print(f"[red]Parse error[/red] {error.url}: {error.error}")


@app.command()
def sites():
    """List local documentation sites."""
    entries = _run(LocalSites(LocalStore(_config().storage.root)).list_sites())
    if not entries:
        console.print("[yellow]No local sites. Run a preload first.[/yellow]")
        return

    table = Table(title="Local Sites")
    table.add_column("Slug", style="cyan")
    table.add_column("Base URL")
    table.add_column("Docs", justify="right")
    table.add_column("Updated")
    for entry in entries:
        table.add_row(entry.slug, entry.base_url, str(entry.total_docs), entry.updated_at)
    console.print(table)


@app.command("delete-site")
def delete_site(
    slug: str = typer.Argument(..., help="Site slug"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete a local site and its documents."""
    if not yes:
        typer.confirm(f"Delete local site {slug!r}?", abort=True)
    _run(LocalSites(LocalStore(_config().storage.root)).delete_site(slug))
    console.print(f"[green]Deleted {slug}.[/green]")


@app.command("rename-site")
def rename_site(
    old_slug: str = typer.Argument(..., help="Current slug"),
    new_slug: str = typer.Argument(..., help="New slug"),
):
    """Rename a local site."""
    _run(LocalSites(LocalStore(_config().storage.root)).rename_site(old_slug, new_slug))
    console.print(f"[green]Renamed {old_slug} to {new_slug.strip().lower()}.[/green]")


@app.command("update-site")
def update_site(slug: str = typer.Argument(..., help="Site slug")):
    """Re-crawl a local site from its stored base URL."""
    started = _run_preload(_config(), lambda orchestrator: orchestrator.update_local_site(slug))
    if not _run(started):
        raise typer.Exit(1)


@app.command("rebuild-sites-index")
def rebuild_sites_index():
    """Rebuild the sites registry from the site directories on disk."""
    entries = _run(LocalSites(LocalStore(_config().storage.root)).rebuild_index())
    console.print(f"[green]Indexed {len(entries)} sites.[/green]")


@app.command("list-docset-types")
def list_docset_types():
    """List docset types and their content selectors."""
    table = Table(title="Docset Types")
    table.add_column("Type", style="cyan")
    table.add_column("Description")
    table.add_column("Selectors")

    for pattern in PatternRegistry.list_patterns():
        table.add_row(
            pattern.docset_type.value,
            pattern.description,
            ", ".join(pattern.content_selectors) or "-",
        )

    console.print(table)


if __name__ == "__main__":
    app()
