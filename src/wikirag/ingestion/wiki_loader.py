"""Azure DevOps wiki export.

Pages are walked with an explicit stack so that deep page hierarchies do not
hit the recursion limit.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import httpx

from wikirag.config import AppConfig
from wikirag.models import WikiDocument
from wikirag.utils.files import ensure_empty_directory, safe_filename
from wikirag.utils.text import extract_image_links

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class WikiPage:
    path: str
    content: str
    remote_url: str = ""


@dataclass(slots=True)
class ExportResult:
    total_pages: int
    folder: Path
    images_saved: int = 0
    images_failed: int = 0


class AzureWikiClient:
    """Minimal async client for the Azure DevOps wiki REST API."""

    def __init__(self, config: AppConfig, *, client: httpx.AsyncClient | None = None) -> None:
        if not config.azure_pat and client is None:
            raise ValueError("AZ_PAT is not set")
        self.config = config
        base_url = config.wiki_api_url or (
            f"https://dev.azure.com/{config.azure_org}/{config.azure_project}/_apis/wiki/wikis"
        )
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            auth=httpx.BasicAuth("", config.azure_pat),
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(60.0),
        )

    async def __aenter__(self) -> "AzureWikiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def image_url(self) -> str:
        return self.config.image_repo_url or (
            f"https://dev.azure.com/{self.config.azure_org}/{self.config.azure_project}"
            f"/_apis/git/repositories/{self.config.wiki_id}/items"
        )

    async def get_page_tree(self) -> List[Dict[str, Any]]:
        """Return the root page nodes including nested ``subPages``."""
        response = await self._client.get(
            f"/{self.config.wiki_id}/pages",
            params={"recursionLevel": "full", "api-version": self.config.api_version},
        )
        response.raise_for_status()
        data = response.json()
        if isinstance(data, dict) and isinstance(data.get("value"), list):
            return data["value"]
        if isinstance(data, dict) and data.get("path"):
            return [data]
        LOGGER.error("Unexpected wiki pages response: %s", data)
        raise ValueError("Azure DevOps returned unknown page structure")

    async def get_content(self, page_path: str) -> str:
        response = await self._client.get(
            f"/{self.config.wiki_id}/pages",
            params={
                "path": page_path,
                "includeContent": "true",
                "api-version": self.config.api_version,
            },
        )
        response.raise_for_status()
        return response.json().get("content") or ""

    async def get_pages(self, limit: int | None = None) -> List[WikiPage]:
        """Fetch pages with content in depth-first order, stopping after ``limit``."""
        stack = list(reversed(await self.get_page_tree()))
        pages: List[WikiPage] = []
        while stack:
            if limit is not None and len(pages) >= limit:
                break
            node = stack.pop()
            path = node.get("path")
            if path and path != "/":
                pages.append(
                    WikiPage(
                        path=path,
                        content=await self.get_content(path),
                        remote_url=node.get("remoteUrl") or "",
                    )
                )
            stack.extend(reversed(node.get("subPages") or []))
        return pages

    async def download_image(self, image_path: str) -> bytes:
        response = await self._client.get(
            self.image_url,
            params={
                "path": image_path,
                "download": "true",
                "$format": "octetStream",
                "api-version": self.config.api_version,
            },
            headers={"Accept": "application/octet-stream"},
        )
        response.raise_for_status()
        return response.content


async def export_pages(
    client: AzureWikiClient, config: AppConfig, *, limit: int | None = None
) -> ExportResult:
    """Write one JSON file per wiki page and download the images it references.

    A limited export starts from an empty export folder.
    """
    pages = await client.get_pages(limit=limit)
    files_dir = config.files_dir
    if limit is not None:
        ensure_empty_directory(files_dir)
    else:
        files_dir.mkdir(parents=True, exist_ok=True)
    config.images_dir.mkdir(parents=True, exist_ok=True)

    result = ExportResult(total_pages=len(pages), folder=files_dir)
    for page in pages:
        saved: List[str] = []
        for image_path in extract_image_links(page.content):
            if ".attachments" not in image_path:
                continue
            try:
                data = await client.download_image(image_path)
                target = config.images_dir / Path(image_path).name
                target.write_bytes(data)
                saved.append(str(target))
                result.images_saved += 1
            except (httpx.HTTPError, OSError) as exc:
                LOGGER.error("Failed to download image %s: %s", image_path, exc)
                result.images_failed += 1

        document = WikiDocument(
            title=page.path, source=page.remote_url, content=page.content, images=saved
        )
        target = files_dir / f"{safe_filename(page.path)}.json"
        target.write_text(json.dumps(document.to_dict(), indent=2), encoding="utf-8")
        LOGGER.info("Exported %s", page.path)

    return result
