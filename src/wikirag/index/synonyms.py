"""Persisted synonym index used to expand search recall."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List

from wikirag.models import SynonymEntry

LOGGER = logging.getLogger(__name__)


def merge_entries(raw_entries: Iterable[Any]) -> List[SynonymEntry]:
    """Merge raw extraction output into canonical entries.

    Terms and synonyms are lowercased and trimmed, synonyms are unioned per
    term, self-references removed and terms without synonyms dropped.
    Merging is idempotent.
    """
    merged: Dict[str, Dict[str, None]] = {}
    for raw in raw_entries:
        entry = raw if isinstance(raw, SynonymEntry) else SynonymEntry.from_raw(raw)
        if entry is None:
            continue
        term = entry.term.strip().lower()
        if not term:
            continue
        bucket = merged.setdefault(term, {})
        for synonym in entry.synonyms:
            normalized = synonym.strip().lower()
            if normalized and normalized != term:
                bucket[normalized] = None

    return [
        SynonymEntry(term=term, synonyms=list(synonyms))
        for term, synonyms in merged.items()
        if synonyms
    ]


class SynonymIndex:
    """Ordered collection of synonym entries stored as a JSON array."""

    def __init__(self, entries: Iterable[SynonymEntry] = ()) -> None:
        self.entries: List[SynonymEntry] = list(entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[SynonymEntry]:
        return iter(self.entries)

    @classmethod
    def load(cls, path: Path) -> "SynonymIndex":
        """Load an index file; a missing file yields an empty index."""
        path = Path(path)
        if not path.exists():
            LOGGER.warning("Synonym index %s not found; continuing without synonyms", path)
            return cls()
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError(f"Synonym index {path} must contain a JSON array")
        entries = [entry for entry in map(SynonymEntry.from_raw, data) if entry is not None]
        LOGGER.info("Loaded %d synonym entries from %s", len(entries), path)
        return cls(entries)

    def save(self, path: Path) -> None:
        """Replace the index file, removing any previous version first."""
        path = Path(path)
        if path.exists():
            path.unlink()
            LOGGER.info("Removed old synonym index %s", path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = [entry.to_dict() for entry in self.entries]
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def find_matches(self, text: str) -> List[SynonymEntry]:
        """Entries whose term or any synonym occurs in ``text``, in index order."""
        lowered = text.lower()
        return [
            entry
            for entry in self.entries
            if entry.term.lower() in lowered
            or any(synonym.lower() in lowered for synonym in entry.synonyms)
        ]

    def terms_for(self, text: str) -> List[str]:
        """Flatten every matching entry into its term followed by its synonyms."""
        found: Dict[str, None] = {}
        for entry in self.find_matches(text):
            found[entry.term.lower()] = None
            for synonym in entry.synonyms:
                found[synonym.lower()] = None
        return list(found)
