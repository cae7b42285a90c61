"""Command line interface for wikirag."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from wikirag.config import AppConfig
from wikirag.gemini.client import GeminiConfig, GeminiService
from wikirag.index.extraction import SynonymExtractor
from wikirag.index.hash_cache import HashCache
from wikirag.index.indexer import SyncStats, SyncValidationError, WikiSynchronizer
from wikirag.index.search import Searcher
from wikirag.ingestion.wiki_loader import AzureWikiClient, export_pages
from wikirag.logging_config import setup_logging
from wikirag.utils.files import guess_image_mime_type
from wikirag.utils.text import format_answer

console = Console()
app = typer.Typer(help="wikirag - keep a Gemini File Search store in sync with your wiki")


def _setup_logging(verbose: bool, config: AppConfig | None = None) -> None:
    setup_logging(verbose, config.log_dir if config is not None else None)


def _load_config(data_dir: Optional[Path]) -> AppConfig:
    return AppConfig.from_env(data_dir=data_dir)


def _gemini(config: AppConfig) -> GeminiService:
    return GeminiService(GeminiConfig.from_app_config(config))


def _print_stats(stats: SyncStats) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Item")
    table.add_column("Uploaded")
    table.add_column("Skipped")
    table.add_column("Duplicates")
    table.add_column("Failed")
    table.add_row("Documents", str(stats.documents_uploaded), "-", "-", str(stats.documents_failed))
    table.add_row(
        "Images",
        str(stats.images_uploaded),
        str(stats.images_skipped),
        str(stats.images_duplicate),
        str(stats.images_failed),
    )
    console.print(table)


@app.command()
def export(
    limit: Optional[int] = typer.Option(None, help="Export only the first N pages"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding exported files"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Export wiki pages and their images from Azure DevOps."""
    config = _load_config(data_dir)
    _setup_logging(verbose, config)

    async def _run():
        async with AzureWikiClient(config) as client:
            return await export_pages(client, config, limit=limit)

    try:
        result = asyncio.run(_run())
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    console.print(
        f"Exported {result.total_pages} pages into [bold]{result.folder}[/bold] "
        f"(images saved: {result.images_saved}, failed: {result.images_failed})"
    )


@app.command()
def sync(
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding exported files"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Rebuild the File Search store from the exported wiki."""
    config = _load_config(data_dir)
    _setup_logging(verbose, config)
    synchronizer = WikiSynchronizer(_gemini(config), config)

    console.print(f"Syncing [bold]{config.files_dir}[/bold] into {config.dataset_name}...")
    try:
        stats = asyncio.run(synchronizer.sync())
    except SyncValidationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    if stats is None:
        console.print("[yellow]A sync is already running.[/yellow]")
        return
    console.print(f"Store: {stats.store} ({stats.synonym_terms} synonym terms)")
    _print_stats(stats)


@app.command("sync-images")
def sync_images(
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding exported files"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Upload only new or changed images into the existing store."""
    config = _load_config(data_dir)
    _setup_logging(verbose, config)
    gemini = _gemini(config)

    async def _run() -> SyncStats:
        store_name = await gemini.find_store(config.dataset_name)
        if not store_name:
            raise typer.BadParameter(f"File Search store not found: {config.dataset_name}")
        return await WikiSynchronizer(gemini, config).upload_images(store_name)

    _print_stats(asyncio.run(_run()))


@app.command()
def synonyms(
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding exported files"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Regenerate the synonym index without touching the store."""
    config = _load_config(data_dir)
    _setup_logging(verbose, config)
    extractor = SynonymExtractor(
        _gemini(config),
        max_chars=config.batch_chars,
        timeout=config.batch_timeout,
        cooldown=config.batch_cooldown,
        min_document_chars=config.min_document_chars,
        model=config.qa_model,
    )
    index = asyncio.run(extractor.build_index(config.files_dir, config.synonyms_path))
    console.print(f"Saved {len(index)} terms to [bold]{config.synonyms_path}[/bold]")


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to answer from the wiki"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding exported files"),
    custom_prompt: str = typer.Option("", help="Replace the default system instruction"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Answer a question using the File Search store."""
    config = _load_config(data_dir)
    _setup_logging(verbose, config)
    searcher = Searcher.from_config(config, _gemini(config))

    try:
        result = asyncio.run(searcher.search(question, custom_prompt=custom_prompt))
    except LookupError as exc:
        raise typer.BadParameter(str(exc)) from exc

    if verbose:
        console.print(f"[dim]{result.rewritten_query}[/dim]")
    console.print(format_answer(result.answer), markup=False)


@app.command()
def documents(
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding exported files"),
) -> None:
    """List the documents stored in the File Search store."""
    config = _load_config(data_dir)
    gemini = _gemini(config)

    async def _run():
        store_name = await gemini.find_store(config.dataset_name)
        if not store_name:
            return None
        return await gemini.list_documents(store_name)

    docs = asyncio.run(_run())
    if docs is None:
        console.print("[yellow]File Search store not found.[/yellow]")
        return
    if not docs:
        console.print("[yellow]No documents found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Document")
    table.add_column("Name")
    for doc in docs:
        table.add_row(str(doc["display_name"]), str(doc["name"]))
    console.print(table)
    console.print(f"Total documents: {len(docs)}")


@app.command("analyze-image")
def analyze_image(
    image: Path = typer.Argument(..., help="Image file to analyse", resolve_path=True),
) -> None:
    """Print the OCR and summary JSON Gemini produces for an image."""
    if not image.is_file():
        raise typer.BadParameter(f"Image not found: {image}")
    config = AppConfig.from_env()
    gemini = _gemini(config)
    analysis = asyncio.run(gemini.analyze_image(image.read_bytes(), guess_image_mime_type(image)))
    console.print(analysis, markup=False)


@app.command("clear-cache")
def clear_cache(
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory holding exported files"),
) -> None:
    """Forget image digests so every image is uploaded on the next pass."""
    config = _load_config(data_dir)
    cache = HashCache(config.hash_cache_path)
    count = len(cache)
    cache.clear()
    console.print(f"Removed {count} cached image digests.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(4000, help="Server port"),
) -> None:
    """Start the HTTP API (sync, query and Slack endpoints)."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from wikirag.web.app import app as web_app

    console.print(f"Starting web interface on http://{host}:{port}")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")
