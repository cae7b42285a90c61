"""Full wiki to File Search synchronization pipeline."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence

from wikirag.config import AppConfig
from wikirag.gemini.client import GeminiService
from wikirag.index.extraction import SynonymExtractor
from wikirag.index.hash_cache import HashCache
from wikirag.index.synonyms import SynonymIndex
from wikirag.models import MetadataField, SyncState, WikiDocument
from wikirag.utils.files import (
    compute_digest,
    guess_image_mime_type,
    iter_document_paths,
    iter_image_paths,
)
from wikirag.utils.text import chunk_terms, extract_image_links

LOGGER = logging.getLogger(__name__)


class SyncValidationError(ValueError):
    """The exported corpus is missing or empty; the remote store was left untouched."""


@dataclass(slots=True)
class SyncStats:
    store: str = ""
    synonym_terms: int = 0
    documents_uploaded: int = 0
    documents_failed: int = 0
    images_uploaded: int = 0
    images_skipped: int = 0
    images_duplicate: int = 0
    images_failed: int = 0
    processed_files: List[str] = field(default_factory=list)

    def increment_document(self, status: str, name: str) -> None:
        if status == "uploaded":
            self.documents_uploaded += 1
        else:
            self.documents_failed += 1
        self.processed_files.append(name)

    def increment_image(self, status: str, name: str) -> None:
        if status == "uploaded":
            self.images_uploaded += 1
        elif status == "skipped":
            self.images_skipped += 1
        elif status == "duplicate":
            self.images_duplicate += 1
        else:
            self.images_failed += 1
        self.processed_files.append(name)


def load_document(path: Path) -> WikiDocument:
    return WikiDocument.from_dict(json.loads(path.read_text(encoding="utf-8")))


def format_document_content(document: WikiDocument) -> str:
    return f"TITLE: {document.title} \nSOURCE: {document.source} \n\n{document.content} "


def build_document_metadata(
    document: WikiDocument,
    filename: str,
    terms: Sequence[str],
    *,
    max_len: int = 255,
    max_groups: int = 15,
) -> List[MetadataField]:
    """Metadata for one page.

    Every value is truncated to ``max_len``; synonym chunks beyond ``max_groups``
    are dropped.
    """
    metadata = [
        MetadataField.capped("type", "wiki-text", max_len),
        MetadataField.capped("wiki_title", document.title, max_len),
        MetadataField.capped("wiki_file", filename, max_len),
    ]
    for index, chunk in enumerate(chunk_terms(terms, max_len)[:max_groups]):
        key = "synonyms" if index == 0 else f"synonyms_{index + 1}"
        metadata.append(MetadataField.capped(key, chunk, max_len))
    return metadata


def build_image_page_map(files_dir: Path) -> Dict[str, str]:
    """Map image file names to the title of the page that embeds them."""
    page_map: Dict[str, str] = {}
    for path in iter_document_paths(files_dir):
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Skipping unreadable page %s: %s", path.name, exc)
            continue
        if not isinstance(data, dict):
            continue
        page = data.get("title") or data.get("path") or data.get("source") or path.name
        for link in extract_image_links(str(data.get("content") or "")):
            image_name = Path(link).name
            if image_name:
                page_map[image_name] = str(page)
    return page_map


class WikiSynchronizer:
    """Coordinates full re-indexing of the exported wiki into a File Search store.

    Only one sync may run at a time; a concurrent call returns ``None``.
    """

    def __init__(
        self,
        gemini: GeminiService,
        config: AppConfig,
        *,
        extractor: SynonymExtractor | None = None,
        cache: HashCache | None = None,
    ) -> None:
        self.gemini = gemini
        self.config = config
        self.extractor = extractor or SynonymExtractor(
            gemini,
            max_chars=config.batch_chars,
            timeout=config.batch_timeout,
            cooldown=config.batch_cooldown,
            min_document_chars=config.min_document_chars,
            model=config.qa_model,
        )
        self.cache = cache if cache is not None else HashCache(config.hash_cache_path)
        self._state = SyncState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> SyncState:
        return self._state

    def _try_begin(self) -> bool:
        with self._lock:
            if self._state is SyncState.RUNNING:
                return False
            self._state = SyncState.RUNNING
            return True

    def _finish(self) -> None:
        with self._lock:
            self._state = SyncState.IDLE

    async def sync(self) -> SyncStats | None:
        """Rebuild the store, the synonym index and upload every page and image."""
        if not self._try_begin():
            LOGGER.warning("Sync already running. Skipping duplicate call.")
            return None

        LOGGER.info("Starting full wiki sync (text + images)")
        try:
            document_paths = self._validate()
            self.cache.clear()
            store_name = await self._recreate_store()
            index = await self.extractor.build_index(
                self.config.files_dir, self.config.synonyms_path
            )

            stats = SyncStats(store=store_name, synonym_terms=len(index))
            await self.upload_documents(store_name, document_paths, index, stats)
            await self.upload_images(store_name, stats)
            LOGGER.info(
                "Sync complete: %d documents, %d images uploaded",
                stats.documents_uploaded,
                stats.images_uploaded,
            )
            return stats
        finally:
            self._finish()

    def _validate(self) -> List[Path]:
        files_dir = self.config.files_dir
        if not files_dir.is_dir():
            raise SyncValidationError(f"Wiki export folder not found: {files_dir}")
        paths = list(iter_document_paths(files_dir))
        if not paths:
            raise SyncValidationError("No wiki text files found. Aborting sync to protect store.")
        return paths

    async def _recreate_store(self) -> str:
        existing = await self.gemini.find_store(self.config.dataset_name)
        if existing:
            LOGGER.info("Deleting existing File Search store %s", self.config.dataset_name)
            await self.gemini.delete_store(existing)
        store_name = await self.gemini.create_store(self.config.dataset_name)
        LOGGER.info("New File Search store created: %s", store_name)
        return store_name

    async def upload_documents(
        self,
        store_name: str,
        paths: Sequence[Path],
        index: SynonymIndex,
        stats: SyncStats,
    ) -> None:
        for path in paths:
            try:
                document = load_document(path)
                content = format_document_content(document)
                metadata = build_document_metadata(
                    document,
                    path.name,
                    index.terms_for(content),
                    max_len=self.config.metadata_max_len,
                    max_groups=self.config.metadata_max_groups,
                )
                await self.gemini.upload_text(store_name, content, path.name, metadata)
                stats.increment_document("uploaded", path.name)
            except Exception as exc:
                LOGGER.error("Failed to upload %s: %s", path.name, exc)
                stats.increment_document("failed", path.name)

    async def upload_images(self, store_name: str, stats: SyncStats | None = None) -> SyncStats:
        """Analyse and upload images whose content changed since the last upload."""
        stats = stats or SyncStats(store=store_name)
        page_map = build_image_page_map(self.config.files_dir)
        seen: set[str] = set()

        for path in iter_image_paths(self.config.images_dir):
            name = path.name
            if name in seen:
                LOGGER.warning("Runtime duplicate skipped: %s", name)
                stats.increment_image("duplicate", name)
                continue
            seen.add(name)

            try:
                data = path.read_bytes()
                digest = compute_digest(data)
                if self.cache.is_unchanged(name, digest):
                    LOGGER.info("Skipped unchanged image (hash match): %s", name)
                    stats.increment_image("skipped", name)
                    continue

                LOGGER.info("Analysing image: %s", name)
                description = await self.gemini.analyze_image(data, guess_image_mime_type(path))
                source_page = page_map.get(name, "Unknown")
                guid = str(uuid.uuid4())
                content = f"SOURCE PAGE: {source_page}\nIMAGE: {name}\n\nDESCRIPTION:\n{description}"
                max_len = self.config.metadata_max_len
                metadata = [
                    MetadataField.capped("type", "wiki-image", max_len),
                    MetadataField.capped("source_page", source_page, max_len),
                    MetadataField.capped("image_name", f"{name}-{guid}", max_len),
                    MetadataField.capped("image_guid", guid, max_len),
                ]
                await self.gemini.upload_text(store_name, content, f"{path.stem}.txt", metadata)
                self.cache.record(name, digest)
                stats.increment_image("uploaded", name)
            except Exception as exc:
                LOGGER.error("Failed to process image %s: %s", name, exc)
                stats.increment_image("failed", name)

        return stats
