"""Tests for file utility functions."""

from __future__ import annotations

import hashlib
from pathlib import Path

from wikirag.utils.files import (
    compute_digest,
    ensure_empty_directory,
    guess_image_mime_type,
    iter_document_paths,
    iter_image_paths,
    safe_filename,
)


class TestIterDocumentPaths:
    """Test iter_document_paths function."""

    def test_only_top_level_json(self, tmp_path: Path) -> None:
        """Should yield JSON pages from the export folder, sorted."""
        (tmp_path / "b.json").write_text("{}")
        (tmp_path / "a.json").write_text("{}")
        (tmp_path / "notes.txt").write_text("text")
        nested = tmp_path / "nested"
        nested.mkdir()
        (nested / "c.json").write_text("{}")

        paths = list(iter_document_paths(tmp_path))

        assert [p.name for p in paths] == ["a.json", "b.json"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert list(iter_document_paths(tmp_path / "missing")) == []


class TestIterImagePaths:
    """Test iter_image_paths function."""

    def test_nested_images(self, tmp_path: Path) -> None:
        """Should find images in nested directories."""
        subdir = tmp_path / "sub"
        subdir.mkdir()
        (tmp_path / "root.PNG").write_bytes(b"1")
        (subdir / "nested.jpg").write_bytes(b"2")
        (subdir / "readme.md").write_text("skip")

        names = {p.name for p in iter_image_paths(tmp_path)}

        assert names == {"root.PNG", "nested.jpg"}

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert list(iter_image_paths(tmp_path / "missing")) == []


class TestComputeDigest:
    """Test compute_digest function."""

    def test_matches_md5(self) -> None:
        assert compute_digest(b"image bytes") == hashlib.md5(b"image bytes").hexdigest()

    def test_different_content(self) -> None:
        assert compute_digest(b"a") != compute_digest(b"b")


class TestHelpers:
    def test_guess_mime_type(self) -> None:
        assert guess_image_mime_type(Path("a.JPG")) == "image/jpeg"
        assert guess_image_mime_type(Path("a.gif")) == "image/gif"
        assert guess_image_mime_type(Path("a.unknown")) == "image/png"

    def test_safe_filename(self) -> None:
        assert safe_filename("/Team/How To (v2)") == "_Team_How_To_v2"

    def test_ensure_empty_directory_creates(self, tmp_path: Path) -> None:
        target = tmp_path / "out" / "files"

        ensure_empty_directory(target)

        assert target.is_dir()

    def test_ensure_empty_directory_clears(self, tmp_path: Path) -> None:
        (tmp_path / "old.json").write_text("{}")
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "x.png").write_bytes(b"x")

        ensure_empty_directory(tmp_path)

        assert list(tmp_path.iterdir()) == []
