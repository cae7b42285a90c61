"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
import re
import shutil
from pathlib import Path
from typing import Iterator

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif")

_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}


def iter_document_paths(directory: Path) -> Iterator[Path]:
    """Yield exported wiki page files in a stable order."""
    if not directory.is_dir():
        return
    for child in sorted(directory.iterdir()):
        if child.is_file() and child.suffix.lower() == ".json":
            yield child


def iter_image_paths(directory: Path) -> Iterator[Path]:
    """Yield exported wiki images, descending into sub-directories."""
    if not directory.is_dir():
        return
    for child in sorted(directory.rglob("*")):
        if child.is_file() and child.suffix.lower() in IMAGE_SUFFIXES:
            yield child


def compute_digest(data: bytes) -> str:
    """Compute the MD5 content digest of raw bytes."""
    return hashlib.md5(data).hexdigest()


def guess_image_mime_type(path: Path) -> str:
    return _MIME_TYPES.get(path.suffix.lower(), "image/png")


def safe_filename(page_path: str) -> str:
    """Turn a wiki page path such as ``/Team/How To`` into ``_Team_How_To``."""
    name = page_path.replace("/", "_")
    name = re.sub(r"\s+", "_", name)
    return re.sub(r"[^a-zA-Z0-9_]", "", name)


def ensure_empty_directory(directory: Path) -> None:
    """Create ``directory`` or remove everything inside it."""
    if not directory.exists():
        directory.mkdir(parents=True, exist_ok=True)
        return
    for child in directory.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()
