"""Question answering over the File Search store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from wikirag.config import AppConfig
from wikirag.gemini.client import GeminiService
from wikirag.index.rewriter import QueryRewriter
from wikirag.index.synonyms import SynonymIndex
from wikirag.utils.text import NO_ANSWER

LOGGER = logging.getLogger(__name__)

DEFAULT_SYSTEM_INSTRUCTION = """You are an expert IT knowledge assistant for internal wiki documentation queries. Your primary directive is to provide comprehensive, accurate, and well-structured answers strictly based on the company's wiki documentation provided by the File Search tool.
RULES AND WORKFLOW:

1. Always call fileSearch BEFORE answering.
2. Answer ONLY using retrieved wiki content.
3. ALWAYS rewrite in your own words. Do NOT copy content or lists verbatim.
4. Keep the final answer under 250 words.
5. If nothing is found, reply: "I could not find information about this in the wiki."

FORMAT:
- Clear section headers
- Bullet lists
- Numbered steps
- **Bold** for emphasis
- No citations, no file names, no paths, no headings from wiki
At the very end of your response, list "Relevant Wiki Pages" using the exact titles of the cited documents."""


@dataclass(slots=True)
class SearchAnswer:
    question: str
    rewritten_query: str
    answer: str
    attempts: int


class Searcher:
    """High-level API to query the wiki knowledge store."""

    def __init__(
        self,
        gemini: GeminiService,
        rewriter: QueryRewriter,
        *,
        dataset_name: str,
        retries: int = 1,
        retry_delay: float = 1.0,
    ) -> None:
        self.gemini = gemini
        self.rewriter = rewriter
        self.dataset_name = dataset_name
        self.retries = retries
        self.retry_delay = retry_delay

    @classmethod
    def from_config(cls, config: AppConfig, gemini: GeminiService) -> "Searcher":
        """Build a searcher around the synonym index currently on disk."""
        rewriter = QueryRewriter(gemini, SynonymIndex.load(config.synonyms_path))
        return cls(gemini, rewriter, dataset_name=config.dataset_name)

    async def search(self, question: str, *, custom_prompt: str = "") -> SearchAnswer:
        store_name = await self.gemini.find_store(self.dataset_name)
        if not store_name:
            raise LookupError(f"File Search store {self.dataset_name} not found")

        rewritten = await self.rewriter.rewrite(question)
        LOGGER.info("Rewritten query: %s", rewritten)
        instruction = custom_prompt or DEFAULT_SYSTEM_INSTRUCTION

        attempts = 0
        while attempts <= self.retries:
            if attempts:
                await asyncio.sleep(self.retry_delay)
            attempts += 1
            answer = await self.gemini.generate_grounded(
                rewritten, system_instruction=instruction, store_name=store_name
            )
            if answer and answer.strip():
                return SearchAnswer(question, rewritten, answer, attempts)
            LOGGER.warning("Empty answer on attempt %d for %r", attempts, question)

        return SearchAnswer(question, rewritten, NO_ANSWER, attempts)
