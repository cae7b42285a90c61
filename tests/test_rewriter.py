"""Tests for question rewriting."""

from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import pytest

from wikirag.index.rewriter import SEARCH_DIRECTIVE, QueryRewriter, build_synonym_context
from wikirag.index.synonyms import SynonymIndex
from wikirag.models import SynonymEntry


@pytest.fixture
def index() -> SynonymIndex:
    return SynonymIndex([SynonymEntry(term="vpn", synonyms=["tunnel", "virtual private network"])])


class TestBuildSynonymContext:
    def test_no_matches(self) -> None:
        assert build_synonym_context([]) == "None found for this question."

    def test_lists_entries(self) -> None:
        entries = [SynonymEntry("vpn", ["tunnel", "remote access"]), SynonymEntry("sso", ["okta"])]

        assert build_synonym_context(entries) == "- vpn: tunnel, remote access\n- sso: okta"


class TestQueryRewriter:
    """Test QueryRewriter prompt building and generation."""

    def test_prompt_includes_matching_synonyms(self, index: SynonymIndex) -> None:
        """The VPN entry is offered when the question mentions VPN."""
        rewriter = QueryRewriter(Mock(), index)

        prompt = rewriter.build_prompt("How do I set up VPN?")

        assert "- vpn: tunnel, virtual private network" in prompt
        assert '"How do I set up VPN?"' in prompt
        assert SEARCH_DIRECTIVE in prompt

    def test_prompt_matches_through_synonym(self, index: SynonymIndex) -> None:
        """Spelling out the synonym still brings the canonical term into context."""
        rewriter = QueryRewriter(Mock(), index)

        prompt = rewriter.build_prompt("how do I set up a virtual private network")

        assert "- vpn: tunnel, virtual private network" in prompt
        assert "None found for this question." not in prompt

    def test_prompt_without_matches(self, index: SynonymIndex) -> None:
        prompt = QueryRewriter(Mock(), index).build_prompt("reset my password")

        assert "None found for this question." in prompt
        assert "tunnel" not in prompt

    @pytest.mark.asyncio
    async def test_rewrite_strips_output(self, index: SynonymIndex) -> None:
        gemini = Mock()
        gemini.generate_text = AsyncMock(
            return_value=f'  {SEARCH_DIRECTIVE} "vpn", "tunnel" and summarize how to connect.\n'
        )

        rewritten = await QueryRewriter(gemini, index).rewrite("How do I set up VPN?")

        assert rewritten.startswith(SEARCH_DIRECTIVE)
        assert rewritten.endswith("connect.")

    @pytest.mark.asyncio
    async def test_rewrite_errors_propagate(self, index: SynonymIndex) -> None:
        gemini = Mock()
        gemini.generate_text = AsyncMock(side_effect=RuntimeError("quota exceeded"))

        with pytest.raises(RuntimeError, match="quota exceeded"):
            await QueryRewriter(gemini, index).rewrite("vpn")
