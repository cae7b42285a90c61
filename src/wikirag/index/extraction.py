"""Batched synonym extraction over the exported wiki corpus."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, List

from tenacity import AsyncRetrying, before_sleep_log, stop_after_attempt

from wikirag.gemini.client import GeminiService
from wikirag.index.synonyms import SynonymIndex, merge_entries
from wikirag.models import DocumentUnit, WikiDocument
from wikirag.utils.files import iter_document_paths
from wikirag.utils.text import clean_wiki_text, split_document, strip_code_fences

LOGGER = logging.getLogger(__name__)

EXTRACTION_PROMPT = """
You are analyzing internal technical documentation related to IT software development.

Your task:
1. Extract important TECHNICAL TERMS and CONCEPTS a developer/support engineer would search for.
2. Include MULTI-WORD concepts (e.g., "restart container", "push remote branch", "order sync logic").
3. Include synonyms, variants, acronyms, abbreviations, common search terms users might type.
4. Focus on:
   - Software architecture & components
   - Application development (backend + frontend)
   - Web development, hosting, frameworks
   - DevOps & CI/CD pipelines
   - Deployment strategies (containers, IIS, cloud)
   - APIs & system integrations
   - Database objects and sync workflows
5. Prefer:
   - Actionable + searchable terminology (task verbs + systems)
   - System names, service names, key database entities
   - Troubleshooting/workflow terminology

STRICT DATA CLEANUP RULES:
- DO NOT include entries where synonyms array is empty
- DO NOT include synonyms that equal the term
- DO NOT include blank terms
- Deduplicate and lowercase all synonyms
- Only include entries where synonyms.length > 0

OUTPUT FORMAT (STRICT JSON, NO markdown fences):
[
  {{
    "term": "string",
    "synonyms": ["string1", "string2"]
  }}
]

CONTENT:
{content}
"""


def load_corpus(files_dir: Path, *, min_chars: int = 20) -> Iterator[DocumentUnit]:
    """Lazily yield cleaned documents worth sending to extraction."""
    paths = list(iter_document_paths(files_dir))
    LOGGER.info("Found %d wiki pages in %s", len(paths), files_dir)
    for position, path in enumerate(paths, start=1):
        try:
            document = WikiDocument.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as exc:
            LOGGER.error("Failed processing file %s: %s", path.name, exc)
            continue

        text = clean_wiki_text(document.content)
        LOGGER.debug("Loaded %d/%d: %s", position, len(paths), path.name)
        if len(text) > min_chars:
            yield DocumentUnit(name=path.name, text=text)


def plan_batches(units: Iterable[DocumentUnit], max_chars: int) -> Iterator[List[DocumentUnit]]:
    """Group units into batches whose combined text stays within ``max_chars``.

    Oversized documents are first split into ``name#n`` units; units are never
    split across batches.
    """
    batch: List[DocumentUnit] = []
    size = 0
    for document in units:
        pieces = [document]
        if len(document.text) > max_chars:
            pieces = list(split_document(document, max_chars=max_chars))
        for unit in pieces:
            if batch and size + len(unit.text) > max_chars:
                yield batch
                batch, size = [], 0
            batch.append(unit)
            size += len(unit.text)

    if batch:
        yield batch


def build_prompt(batch: Iterable[DocumentUnit]) -> str:
    combined = "\n\n".join(f"SOURCE: {unit.name}\n{unit.text}" for unit in batch)
    return EXTRACTION_PROMPT.format(content=combined)


def parse_extraction_output(raw: str) -> List[Any]:
    """Decode model output, retrying once without markdown code fences.

    Raises ``json.JSONDecodeError`` when both attempts fail.
    """
    text = raw.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = json.loads(strip_code_fences(text))
    if not isinstance(data, list):
        LOGGER.warning("Extraction output is not a JSON array; ignoring it")
        return []
    return data


class SynonymExtractor:
    """Runs extraction batch by batch and merges the results into a synonym index."""

    def __init__(
        self,
        gemini: GeminiService,
        *,
        max_chars: int = 20000,
        timeout: float = 180.0,
        cooldown: float = 5.0,
        attempts: int = 2,
        min_document_chars: int = 20,
        model: str | None = None,
    ) -> None:
        self.gemini = gemini
        self.max_chars = max_chars
        self.timeout = timeout
        self.cooldown = cooldown
        self.attempts = attempts
        self.min_document_chars = min_document_chars
        self.model = model

    async def extract_batch(self, batch: List[DocumentUnit]) -> List[Any]:
        """Extract raw entries for one batch; a batch that keeps failing yields ``[]``."""
        prompt = build_prompt(batch)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            before_sleep=before_sleep_log(LOGGER, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    LOGGER.info(
                        "Extracting batch of %d units (attempt %d)",
                        len(batch),
                        attempt.retry_state.attempt_number,
                    )
                    raw = await asyncio.wait_for(
                        self.gemini.generate_text(prompt, model=self.model), timeout=self.timeout
                    )
                    entries = parse_extraction_output(raw)
        except Exception as exc:
            LOGGER.error(
                "Giving up on batch %s: %s",
                ", ".join(unit.name for unit in batch),
                str(exc) or type(exc).__name__,
            )
            return []
        return entries

    async def extract(self, units: Iterable[DocumentUnit]) -> List[List[Any]]:
        """Submit every batch sequentially, pausing ``cooldown`` seconds between them."""
        results: List[List[Any]] = []
        processed = 0
        for position, batch in enumerate(plan_batches(units, self.max_chars)):
            if position and self.cooldown > 0:
                await asyncio.sleep(self.cooldown)
            results.append(await self.extract_batch(batch))
            processed += len(batch)
            LOGGER.info("Processed %d units in %d batches", processed, position + 1)
        return results

    async def build_index(self, files_dir: Path, output_path: Path) -> SynonymIndex:
        """Regenerate the synonym index file from the exported corpus."""
        output_path = Path(output_path)
        if output_path.exists():
            output_path.unlink()
            LOGGER.info("Removed old synonym index %s", output_path)

        units = load_corpus(files_dir, min_chars=self.min_document_chars)
        batch_results = await self.extract(units)

        index = SynonymIndex(merge_entries(itertools.chain.from_iterable(batch_results)))
        index.save(output_path)
        LOGGER.info("Synonym extraction complete: %d terms saved to %s", len(index), output_path)
        return index
