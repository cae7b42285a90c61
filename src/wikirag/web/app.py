"""FastAPI application serving wiki sync, search and the Slack command."""

from __future__ import annotations

import dataclasses
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict
from urllib.parse import parse_qs

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel

from wikirag.config import AppConfig
from wikirag.gemini.client import GeminiConfig, GeminiService
from wikirag.index.indexer import SyncValidationError, WikiSynchronizer
from wikirag.index.search import Searcher
from wikirag.ingestion.wiki_loader import AzureWikiClient, export_pages
from wikirag.logging_config import setup_logging
from wikirag.utils.files import guess_image_mime_type
from wikirag.web.slack import (
    RATE_LIMIT_MESSAGE,
    RateLimiter,
    SignatureError,
    SlackResponder,
    handle_question,
    verify_signature,
)

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="wikirag", version="0.1.0")


class ExportPayload(BaseModel):
    limit: int | None = None


class QueryPayload(BaseModel):
    query: str
    custom_prompt: str = ""


class AnalyzeImagePayload(BaseModel):
    image_path: Path


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return AppConfig.from_env()


@lru_cache(maxsize=1)
def get_gemini() -> GeminiService:
    return GeminiService(GeminiConfig.from_app_config(get_config()))


@lru_cache(maxsize=1)
def get_synchronizer() -> WikiSynchronizer:
    return WikiSynchronizer(get_gemini(), get_config())


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    config = get_config()
    return RateLimiter(config.rate_limit, config.rate_window)


def get_searcher(
    config: AppConfig = Depends(get_config), gemini: GeminiService = Depends(get_gemini)
) -> Searcher:
    return Searcher.from_config(config, gemini)


def get_responder(config: AppConfig = Depends(get_config)) -> SlackResponder:
    return SlackResponder(max_size=config.slack_max_message_size, min_break=config.slack_min_break)


@app.on_event("startup")
async def startup_event() -> None:
    setup_logging(log_dir=get_config().log_dir)


@app.get("/health")
async def health() -> Dict[str, str]:
    LOGGER.debug("Health check received")
    return {"status": "OK", "service": "Wiki RAG Server"}


@app.post("/wikis/export")
async def export_wiki(
    payload: ExportPayload | None = None, config: AppConfig = Depends(get_config)
) -> Dict[str, Any]:
    limit = payload.limit if payload else None
    try:
        async with AzureWikiClient(config) as client:
            result = await export_pages(client, config, limit=limit)
    except Exception as exc:
        LOGGER.exception("Wiki export failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {
        "message": "Wiki pages exported successfully",
        "total_pages": result.total_pages,
        "folder": str(result.folder),
        "images_saved": result.images_saved,
        "images_failed": result.images_failed,
    }


@app.post("/sync")
async def sync_wiki(
    synchronizer: WikiSynchronizer = Depends(get_synchronizer),
) -> Dict[str, Any]:
    try:
        stats = await synchronizer.sync()
    except SyncValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        LOGGER.exception("Sync failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    if stats is None:
        raise HTTPException(status_code=409, detail="Sync already running")
    return {"message": "Wiki File Search store updated", "stats": dataclasses.asdict(stats)}


@app.post("/query")
async def query_wiki(
    payload: QueryPayload, searcher: Searcher = Depends(get_searcher)
) -> Dict[str, str]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query is required")

    try:
        result = await searcher.search(query, custom_prompt=payload.custom_prompt)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as exc:
        LOGGER.exception("Query failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"answer": result.answer, "rewritten_query": result.rewritten_query}


@app.get("/documents")
async def list_documents(
    config: AppConfig = Depends(get_config), gemini: GeminiService = Depends(get_gemini)
) -> Dict[str, Any]:
    """List all documents currently stored in the File Search store."""
    store_name = await gemini.find_store(config.dataset_name)
    if not store_name:
        raise HTTPException(status_code=404, detail="File Search store not found")
    documents = await gemini.list_documents(store_name)
    LOGGER.info("Total documents: %d", len(documents))
    return {"store": store_name, "documents": documents}


@app.post("/analyze-image")
async def analyze_image(
    payload: AnalyzeImagePayload, gemini: GeminiService = Depends(get_gemini)
) -> Dict[str, str]:
    path = payload.image_path.expanduser()
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"Image not found: {path}")
    analysis = await gemini.analyze_image(path.read_bytes(), guess_image_mime_type(path))
    return {"analysis": analysis}


@app.post("/slack")
async def slack_command(
    request: Request,
    background_tasks: BackgroundTasks,
    config: AppConfig = Depends(get_config),
    limiter: RateLimiter = Depends(get_rate_limiter),
    searcher: Searcher = Depends(get_searcher),
    responder: SlackResponder = Depends(get_responder),
) -> Response:
    body = await request.body()
    try:
        verify_signature(
            config.slack_signing_secret,
            request.headers.get("x-slack-request-timestamp"),
            request.headers.get("x-slack-signature"),
            body,
        )
    except SignatureError as exc:
        LOGGER.warning("Rejected Slack request: %s", exc.detail)
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc

    form = {key: values[0] for key, values in parse_qs(body.decode("utf-8")).items()}
    user_id = form.get("user_id", "unknown")
    response_url = form.get("response_url", "")
    question = form.get("text", "").strip()

    # Slack expects a 200 even when the request is throttled.
    if not limiter.allow(user_id):
        LOGGER.warning("Rate limit exceeded for Slack user %s", user_id)
        if response_url:
            background_tasks.add_task(responder.send_ephemeral, response_url, RATE_LIMIT_MESSAGE)
        return Response(status_code=200)

    if not question or not response_url:
        return PlainTextResponse("Please provide a question.")

    background_tasks.add_task(handle_question, question, response_url, searcher, responder)
    return PlainTextResponse("Processing your question...")
