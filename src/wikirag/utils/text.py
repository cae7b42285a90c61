"""Text helpers: wiki cleanup, length-based splitting and delivery chunking."""

from __future__ import annotations

import re
from typing import Iterable, Iterator, List

from wikirag.models import DocumentUnit

NO_ANSWER = "No answer found."

_IMAGE_LINK = re.compile(r"!\[[^\]]*\]\(([^)]+)\)")
_CODE_FENCE = re.compile(r"```(?:json)?")


def clean_wiki_text(text: str) -> str:
    """Remove markdown syntax that carries no searchable terminology."""
    text = re.sub(r"!\[.*?\]\(.*?\)", "", text)
    text = re.sub(r"\[.*?\]\(.*?\)", "", text)
    text = re.sub(r"\[\[_.*?_\]\]", "", text)
    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = re.sub(r"#+\s?", "", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def extract_image_links(content: str) -> List[str]:
    """Return the targets of all markdown image links in order."""
    return [match for match in _IMAGE_LINK.findall(content) if match]


def strip_code_fences(raw: str) -> str:
    return _CODE_FENCE.sub("", raw).strip()


def split_document(unit: DocumentUnit, *, max_chars: int) -> Iterator[DocumentUnit]:
    """Split text into sequential fixed-length units named ``name#1``, ``name#2``...

    Boundaries are purely length based.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be positive")
    for index, start in enumerate(range(0, len(unit.text), max_chars), start=1):
        yield DocumentUnit(name=f"{unit.name}#{index}", text=unit.text[start : start + max_chars])


def chunk_terms(terms: Iterable[str], max_len: int = 255) -> List[str]:
    """Pack terms into ``", "``-joined strings no longer than ``max_len``.

    A single term longer than ``max_len`` is truncated and emitted alone.
    """
    chunks: List[str] = []
    current = ""
    for term in terms:
        trimmed = term.strip()
        if not trimmed:
            continue

        addition = (", " if current else "") + trimmed
        if len(current) + len(addition) <= max_len:
            current += addition
            continue

        if current:
            chunks.append(current)
        if len(trimmed) > max_len:
            chunks.append(trimmed[:max_len])
            current = ""
        else:
            current = trimmed

    if current:
        chunks.append(current)
    return chunks


def split_message(text: str, max_size: int = 2800, *, min_break: int = 2000) -> List[str]:
    """Split text into parts of at most ``max_size`` characters.

    A part ends after the last period of its window when that period lies
    beyond ``min_break``; otherwise the window is cut hard. Joining the parts
    gives back the original text.
    """
    parts: List[str] = []
    remaining = text
    while len(remaining) > max_size:
        window = remaining[:max_size]
        last_period = window.rfind(".")
        if last_period > min_break:
            window = window[: last_period + 1]
        parts.append(window)
        remaining = remaining[len(window) :]

    if remaining:
        parts.append(remaining)
    return parts


def normalize_answer_formatting(text: str) -> str:
    """Convert markdown emitted by the model into Slack mrkdwn."""
    if not text:
        return text

    result = text.replace("\\n", "\n")
    result = re.sub(r"\*\*\s*(.*?)\s*\*\*", r"*\1*", result)
    result = re.sub(r"\*([^*\n]+?)/\*\*", r"*\1*", result)
    result = re.sub(r"\*\*(.*?)\*\*", r"*\1*", result)
    result = re.sub(r"__(.*?)__", r"_\1_", result)
    result = re.sub(r"~~(.*?)~~", r"~\1~", result)
    result = re.sub(r"^#+\s*(.*)$", r"*\1*", result, flags=re.MULTILINE)
    result = re.sub(r"^- ", "• ", result, flags=re.MULTILINE)

    # Stray formatting artifacts
    result = re.sub(r"/\*{2,}", "", result)
    result = re.sub(r"\*{2,}", "", result)
    result = re.sub(r"_{2,}", "", result)
    result = re.sub(r"~{2,}", "", result)
    return result.strip()


def format_answer(answer: str | None) -> str:
    """Normalize an answer, substituting the not-found sentinel when empty."""
    stripped = (answer or "").strip()
    return normalize_answer_formatting(stripped or NO_ANSWER)
