"""Core wikirag data models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(slots=True)
class WikiDocument:
    """One exported wiki page as stored on disk."""

    title: str
    source: str
    content: str
    images: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "WikiDocument":
        """Validate a decoded export file, rejecting malformed pages."""
        if not isinstance(data, dict):
            raise ValueError("Wiki document must be a JSON object")
        title = data.get("title")
        if not isinstance(title, str):
            raise ValueError("Wiki document is missing a string 'title'")
        content = data.get("content") or ""
        if not isinstance(content, str):
            raise ValueError(f"Wiki document {title!r} has non-string 'content'")
        source = data.get("source") or ""
        images = data.get("images") or []
        if not isinstance(images, list) or not all(isinstance(i, str) for i in images):
            raise ValueError(f"Wiki document {title!r} has invalid 'images'")
        return cls(title=title, source=str(source), content=content, images=list(images))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "source": self.source,
            "content": self.content,
            "images": list(self.images),
        }


@dataclass(slots=True)
class DocumentUnit:
    """Whole document or a fixed-length piece of one, named ``name#index``."""

    name: str
    text: str


@dataclass(slots=True)
class SynonymEntry:
    """Canonical term with its alternate search terms."""

    term: str
    synonyms: List[str] = field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Any) -> "SynonymEntry | None":
        """Build an entry from untrusted model output, or ``None`` if unusable."""
        if not isinstance(raw, dict):
            return None
        term = raw.get("term")
        if not isinstance(term, str) or not term.strip():
            return None
        synonyms = raw.get("synonyms")
        if not isinstance(synonyms, list):
            synonyms = []
        return cls(
            term=term.strip().lower(),
            synonyms=[s.strip().lower() for s in synonyms if isinstance(s, str) and s.strip()],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"term": self.term, "synonyms": list(self.synonyms)}


@dataclass(slots=True)
class MetadataField:
    """Custom metadata pair attached to one uploaded document."""

    key: str
    value: str

    @classmethod
    def capped(cls, key: str, value: str, max_len: int = 255) -> "MetadataField":
        """Build a field whose value is truncated to ``max_len`` characters."""
        return cls(key, value[:max_len])

    def to_api(self) -> Dict[str, str]:
        return {"key": self.key, "string_value": self.value}


@dataclass(slots=True)
class AssetRecord:
    identifier: str
    digest: str


class SyncState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
