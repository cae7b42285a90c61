"""Content hash cache for uploaded wiki assets."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List

from wikirag.models import AssetRecord

LOGGER = logging.getLogger(__name__)


class HashCache:
    """Persistent ``identifier -> digest`` map backed by a JSON file.

    Every ``record`` call rewrites the file, so the cache on disk always
    matches what was actually uploaded.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._entries: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Ignoring unreadable hash cache %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            LOGGER.warning("Ignoring malformed hash cache %s", self.path)
            return {}
        return {str(key): str(value) for key, value in data.items()}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def get(self, identifier: str) -> str | None:
        return self._entries.get(identifier)

    def records(self) -> List[AssetRecord]:
        return [AssetRecord(identifier=k, digest=v) for k, v in self._entries.items()]

    def is_unchanged(self, identifier: str, digest: str) -> bool:
        return self._entries.get(identifier) == digest

    def record(self, identifier: str, digest: str) -> None:
        self._entries[identifier] = digest
        self._save()

    def clear(self) -> None:
        """Forget every digest, forcing all assets to be reprocessed."""
        self._entries = {}
        if self.path.exists():
            self.path.unlink()
            LOGGER.info("Image hash cache cleared")

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._entries, indent=2), encoding="utf-8")
