"""Tests for the Gemini service wrapper."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from wikirag.config import AppConfig
from wikirag.gemini.client import (
    GeminiConfig,
    GeminiService,
    extract_text,
    wrap_image_analysis,
)
from wikirag.models import MetadataField


class _Pager:
    """Async iterable standing in for a google-genai pager."""

    def __init__(self, items):
        self._items = list(items)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for item in self._items:
            yield item


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock()
    mock.aio.models.generate_content = AsyncMock()
    mock.aio.file_search_stores.list = AsyncMock()
    mock.aio.file_search_stores.create = AsyncMock()
    mock.aio.file_search_stores.delete = AsyncMock()
    mock.aio.file_search_stores.upload_to_file_search_store = AsyncMock()
    mock.aio.file_search_stores.documents.list = AsyncMock()
    mock.aio.operations.get = AsyncMock()
    return mock


@pytest.fixture
def service(client: MagicMock) -> GeminiService:
    return GeminiService(GeminiConfig(poll_interval=0), client=client)


class TestHelpers:
    def test_config_from_app_config(self) -> None:
        config = AppConfig(api_key="k", qa_model="qa", rewrite_model="rw", vision_model="vis")

        gemini_config = GeminiConfig.from_app_config(config)

        assert gemini_config.api_key == "k"
        assert gemini_config.text_model == "rw"
        assert gemini_config.qa_model == "qa"
        assert gemini_config.vision_model == "vis"

    def test_extract_text_joins_parts(self) -> None:
        response = SimpleNamespace(
            candidates=[
                SimpleNamespace(
                    content=SimpleNamespace(
                        parts=[SimpleNamespace(text="line one"), SimpleNamespace(text="line two")]
                    )
                )
            ]
        )

        assert extract_text(response) == "line one\nline two"

    def test_extract_text_without_candidates(self) -> None:
        assert extract_text(SimpleNamespace(candidates=None)) == ""

    def test_wrap_image_analysis_keeps_json(self) -> None:
        output = '{"summary": "s", "ocr": "o"}'

        assert wrap_image_analysis(output) == output

    def test_wrap_image_analysis_wraps_text(self) -> None:
        wrapped = json.loads(wrap_image_analysis("plain words"))

        assert wrapped == {"summary": "Parsing failed; raw output returned.", "ocr": "plain words"}


class TestGeneration:
    """Test text, grounded and image generation."""

    @pytest.mark.asyncio
    async def test_generate_text(self, service: GeminiService, client: MagicMock) -> None:
        client.aio.models.generate_content.return_value = SimpleNamespace(text="hello")

        assert await service.generate_text("prompt") == "hello"
        kwargs = client.aio.models.generate_content.await_args.kwargs
        assert kwargs["model"] == service.config.text_model
        assert kwargs["contents"] == "prompt"

    @pytest.mark.asyncio
    async def test_generate_text_empty(self, service: GeminiService, client: MagicMock) -> None:
        client.aio.models.generate_content.return_value = SimpleNamespace(text=None)

        assert await service.generate_text("prompt") == ""

    @pytest.mark.asyncio
    async def test_generate_grounded_uses_store(
        self, service: GeminiService, client: MagicMock
    ) -> None:
        client.aio.models.generate_content.return_value = SimpleNamespace(
            candidates=[SimpleNamespace(content=SimpleNamespace(parts=[SimpleNamespace(text="A")]))]
        )

        answer = await service.generate_grounded(
            "question", system_instruction="be brief", store_name="fileSearchStores/wiki"
        )

        assert answer == "A"
        config = client.aio.models.generate_content.await_args.kwargs["config"]
        assert config.system_instruction == "be brief"
        assert config.tools[0].file_search.file_search_store_names == ["fileSearchStores/wiki"]

    @pytest.mark.asyncio
    async def test_analyze_image_error_is_reported(
        self, service: GeminiService, client: MagicMock
    ) -> None:
        client.aio.models.generate_content.side_effect = RuntimeError("blocked")

        result = json.loads(await service.analyze_image(b"png", "image/png"))

        assert result == {"summary": "", "ocr": "", "error": "blocked"}

    @pytest.mark.asyncio
    async def test_analyze_image_wraps_text(
        self, service: GeminiService, client: MagicMock
    ) -> None:
        client.aio.models.generate_content.return_value = SimpleNamespace(text="not json")

        result = json.loads(await service.analyze_image(b"png", "image/png"))

        assert result["ocr"] == "not json"


class TestStores:
    """Test File Search store management."""

    @pytest.mark.asyncio
    async def test_find_store(self, service: GeminiService, client: MagicMock) -> None:
        client.aio.file_search_stores.list.return_value = _Pager(
            [
                SimpleNamespace(display_name="Other", name="fileSearchStores/1"),
                SimpleNamespace(display_name="IT_Wiki", name="fileSearchStores/2"),
            ]
        )

        assert await service.find_store("IT_Wiki") == "fileSearchStores/2"

    @pytest.mark.asyncio
    async def test_find_store_missing(self, service: GeminiService, client: MagicMock) -> None:
        client.aio.file_search_stores.list.return_value = _Pager([])

        assert await service.find_store("IT_Wiki") is None

    @pytest.mark.asyncio
    async def test_create_store(self, service: GeminiService, client: MagicMock) -> None:
        client.aio.file_search_stores.create.return_value = SimpleNamespace(name="fileSearchStores/3")

        assert await service.create_store("IT_Wiki") == "fileSearchStores/3"
        client.aio.file_search_stores.create.assert_awaited_once_with(
            config={"display_name": "IT_Wiki"}
        )

    @pytest.mark.asyncio
    async def test_create_store_without_name(
        self, service: GeminiService, client: MagicMock
    ) -> None:
        client.aio.file_search_stores.create.return_value = SimpleNamespace(name=None)

        with pytest.raises(RuntimeError):
            await service.create_store("IT_Wiki")

    @pytest.mark.asyncio
    async def test_delete_store_forces(self, service: GeminiService, client: MagicMock) -> None:
        await service.delete_store("fileSearchStores/3")

        client.aio.file_search_stores.delete.assert_awaited_once_with(
            name="fileSearchStores/3", config={"force": True}
        )

    @pytest.mark.asyncio
    async def test_upload_text_polls_until_done(
        self, service: GeminiService, client: MagicMock
    ) -> None:
        pending = SimpleNamespace(done=False, error=None)
        client.aio.file_search_stores.upload_to_file_search_store.return_value = pending
        client.aio.operations.get.return_value = SimpleNamespace(done=True, error=None)

        await service.upload_text(
            "fileSearchStores/3", "TITLE: x", "x.json", [MetadataField("type", "wiki-text")]
        )

        kwargs = client.aio.file_search_stores.upload_to_file_search_store.await_args.kwargs
        assert kwargs["file_search_store_name"] == "fileSearchStores/3"
        assert kwargs["file"].read() == b"TITLE: x"
        assert kwargs["config"] == {
            "display_name": "x.json",
            "mime_type": "text/plain",
            "custom_metadata": [{"key": "type", "string_value": "wiki-text"}],
        }
        client.aio.operations.get.assert_awaited_once_with(pending)

    @pytest.mark.asyncio
    async def test_upload_text_error(self, service: GeminiService, client: MagicMock) -> None:
        client.aio.file_search_stores.upload_to_file_search_store.return_value = SimpleNamespace(
            done=True, error={"message": "bad file"}
        )

        with pytest.raises(RuntimeError, match="x.json"):
            await service.upload_text("fileSearchStores/3", "x", "x.json", [])

    @pytest.mark.asyncio
    async def test_list_documents(self, service: GeminiService, client: MagicMock) -> None:
        client.aio.file_search_stores.documents.list.return_value = _Pager(
            [
                SimpleNamespace(
                    name="doc/1",
                    display_name="vpn.json",
                    custom_metadata=[SimpleNamespace(key="type", string_value="wiki-text")],
                ),
                SimpleNamespace(name="doc/2", display_name="a.txt", custom_metadata=None),
            ]
        )

        documents = await service.list_documents("fileSearchStores/3")

        assert documents == [
            {
                "name": "doc/1",
                "display_name": "vpn.json",
                "metadata": [{"key": "type", "value": "wiki-text"}],
            },
            {"name": "doc/2", "display_name": "a.txt", "metadata": []},
        ]
