"""Rewrite user questions into File Search friendly instructions."""

from __future__ import annotations

import logging
from typing import Sequence

from wikirag.gemini.client import GeminiService
from wikirag.index.synonyms import SynonymIndex
from wikirag.models import SynonymEntry

LOGGER = logging.getLogger(__name__)

SEARCH_DIRECTIVE = "Search document title, content, metadata that contains term"

REWRITE_PROMPT = """
You are a query rewriting assistant for an internal IT documentation search.

Rules:
- You MUST rewrite the user question into a FileSearch-friendly search instruction.
- ALWAYS start with the phrase: {directive}
- Extract the 3 to 5 most important search terms from the question.
- Include matching synonyms from provided synonym list.
- For every extracted search term or synonym, wrap the term in double quotes.
- Terms must be separated by commas.
- After the list of quoted terms, add a short phrase describing the user's intent
  such as: and summarize how to <user intent>.
- Output MUST be plain text, one sentence only.
- NO markdown. NO JSON. NO bullet points.

Relevant domain terms and synonyms for expansion:
{synonyms}

User question:
"{question}"

Rewrite the instruction now.
"""


def build_synonym_context(entries: Sequence[SynonymEntry]) -> str:
    if not entries:
        return "None found for this question."
    return "\n".join(f"- {entry.term}: {', '.join(entry.synonyms)}" for entry in entries)


class QueryRewriter:
    """Expands a question with matching synonym entries before retrieval."""

    def __init__(self, gemini: GeminiService, index: SynonymIndex) -> None:
        self.gemini = gemini
        self.index = index

    def build_prompt(self, question: str) -> str:
        matches = self.index.find_matches(question)
        LOGGER.debug("Question matched %d synonym entries", len(matches))
        return REWRITE_PROMPT.format(
            directive=SEARCH_DIRECTIVE,
            synonyms=build_synonym_context(matches),
            question=question,
        )

    async def rewrite(self, question: str) -> str:
        # Generation errors propagate: there is no fallback to the raw question.
        rewritten = await self.gemini.generate_text(self.build_prompt(question))
        return rewritten.strip()
