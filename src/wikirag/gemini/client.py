"""Gemini access: text generation, image analysis and File Search stores."""

from __future__ import annotations

import asyncio
import io
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from google import genai
from google.genai import types

from wikirag.config import DEFAULT_MODEL, AppConfig
from wikirag.models import MetadataField

logger = logging.getLogger(__name__)

IMAGE_ANALYSIS_PROMPT = """
You are in OCR+Summary mode.

Extract **two things** from this image:

1. A short summary (2-3 sentences) describing what the image shows. Remove all patient information.
2. All readable text from the image (OCR).

Return STRICT JSON ONLY:

{
"summary": "...",
"ocr": "..."
}
"""


@dataclass(slots=True)
class GeminiConfig:
    api_key: str = ""
    text_model: str = DEFAULT_MODEL
    qa_model: str = DEFAULT_MODEL
    vision_model: str = "gemini-2.5-flash-lite"
    poll_interval: float = 2.0

    @classmethod
    def from_app_config(cls, config: AppConfig) -> "GeminiConfig":
        return cls(
            api_key=config.api_key,
            text_model=config.rewrite_model,
            qa_model=config.qa_model,
            vision_model=config.vision_model,
        )


def extract_text(response: Any) -> str:
    """Join the text parts of the first candidate of a response."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    return "\n".join(part.text or "" for part in parts)


def wrap_image_analysis(output: str) -> str:
    """Return model output if it is JSON, otherwise wrap it into the expected shape."""
    try:
        json.loads(output)
        return output
    except json.JSONDecodeError:
        return json.dumps(
            {"summary": "Parsing failed; raw output returned.", "ocr": output}, indent=2
        )


class GeminiService:
    """Thin async wrapper around the ``google-genai`` client.

    This is the only place that talks to Gemini, so the rest of the package
    can be exercised with a mocked service.
    """

    def __init__(
        self, config: GeminiConfig | None = None, *, client: genai.Client | None = None
    ) -> None:
        self.config = config or GeminiConfig()
        self._client = client or genai.Client(api_key=self.config.api_key or None)

    async def generate_text(self, prompt: str, *, model: str | None = None) -> str:
        response = await self._client.aio.models.generate_content(
            model=model or self.config.text_model,
            contents=prompt,
        )
        return response.text or ""

    async def generate_grounded(
        self, question: str, *, system_instruction: str, store_name: str
    ) -> str:
        """Answer ``question`` using the File Search tool over ``store_name``."""
        response = await self._client.aio.models.generate_content(
            model=self.config.qa_model,
            contents=[types.Content(role="user", parts=[types.Part(text=question)])],
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
                tools=[
                    types.Tool(
                        file_search=types.FileSearch(file_search_store_names=[store_name])
                    )
                ],
            ),
        )
        logger.debug("Gemini raw response: %s", response)
        return extract_text(response)

    async def analyze_image(self, data: bytes, mime_type: str) -> str:
        """Return a JSON string with ``summary`` and ``ocr`` for an image.

        Errors are reported inside the JSON payload instead of being raised.
        """
        try:
            response = await self._client.aio.models.generate_content(
                model=self.config.vision_model,
                contents=[
                    IMAGE_ANALYSIS_PROMPT,
                    types.Part.from_bytes(data=data, mime_type=mime_type),
                ],
            )
        except Exception as exc:
            logger.error("Gemini OCR error: %s", exc)
            return json.dumps({"summary": "", "ocr": "", "error": str(exc) or "Unknown error"}, indent=2)
        return wrap_image_analysis(response.text or "")

    # File Search stores

    async def find_store(self, display_name: str) -> str | None:
        pager = await self._client.aio.file_search_stores.list()
        async for store in pager:
            if store.display_name == display_name:
                return store.name
        return None

    async def create_store(self, display_name: str) -> str:
        store = await self._client.aio.file_search_stores.create(
            config={"display_name": display_name}
        )
        if not store.name:
            raise RuntimeError(f"Failed to create File Search store {display_name!r}")
        return store.name

    async def delete_store(self, name: str) -> None:
        await self._client.aio.file_search_stores.delete(name=name, config={"force": True})

    async def upload_text(
        self,
        store_name: str,
        content: str,
        filename: str,
        metadata: Sequence[MetadataField],
    ) -> None:
        """Upload plain text into a store and wait for indexing to finish."""
        payload = content.encode("utf-8")
        logger.info(
            "Uploading %s (%d bytes) to %s with %d metadata fields",
            filename,
            len(payload),
            store_name,
            len(metadata),
        )
        operation = await self._client.aio.file_search_stores.upload_to_file_search_store(
            file_search_store_name=store_name,
            file=io.BytesIO(payload),
            config={
                "display_name": filename,
                "mime_type": "text/plain",
                "custom_metadata": [field.to_api() for field in metadata],
            },
        )
        while not operation.done:
            await asyncio.sleep(self.config.poll_interval)
            operation = await self._client.aio.operations.get(operation)
        if operation.error:
            raise RuntimeError(f"Upload of {filename} failed: {operation.error}")
        logger.info("Upload successful: %s", filename)

    async def list_documents(self, store_name: str, *, page_size: int = 10) -> List[Dict[str, Any]]:
        pager = await self._client.aio.file_search_stores.documents.list(
            parent=store_name, config={"page_size": page_size}
        )
        documents: List[Dict[str, Any]] = []
        async for document in pager:
            documents.append(
                {
                    "name": document.name,
                    "display_name": document.display_name,
                    "metadata": [
                        {"key": item.key, "value": item.string_value}
                        for item in document.custom_metadata or []
                    ],
                }
            )
        return documents
