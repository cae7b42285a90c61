"""Slack slash-command delivery: signature checks, rate limiting and chunked replies."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List

import httpx

from wikirag.index.search import Searcher
from wikirag.utils.text import format_answer, split_message

LOGGER = logging.getLogger(__name__)

SIGNATURE_TOLERANCE = 60 * 5
RATE_LIMIT_MESSAGE = "You are sending too many requests. Try again in a minute."
FAILURE_MESSAGE = "Bot failed to answer the question."


class SignatureError(Exception):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def compute_signature(secret: str, timestamp: str, body: bytes) -> str:
    base = b"v0:" + timestamp.encode("utf-8") + b":" + body
    return "v0=" + hmac.new(secret.encode("utf-8"), base, hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    timestamp: str | None,
    signature: str | None,
    body: bytes,
    *,
    now: float | None = None,
) -> None:
    """Raise ``SignatureError`` unless the request was signed by Slack recently."""
    if not timestamp or not signature:
        raise SignatureError(400, "Missing Slack signature headers.")
    try:
        sent_at = int(timestamp)
    except ValueError:
        raise SignatureError(400, "Invalid Slack request timestamp.") from None

    current = time.time() if now is None else now
    if sent_at < current - SIGNATURE_TOLERANCE:
        raise SignatureError(400, "Slack request timestamp expired.")

    expected = compute_signature(secret, timestamp, body)
    if not hmac.compare_digest(expected, signature):
        raise SignatureError(401, "Slack signature mismatch.")


@dataclass(slots=True)
class _Window:
    count: int
    started: float


class RateLimiter:
    """Fixed-window request counter per Slack user."""

    def __init__(self, limit: int = 10, window: float = 60.0) -> None:
        self.limit = limit
        self.window = window
        self._windows: Dict[str, _Window] = {}

    def allow(self, user_id: str, *, now: float | None = None) -> bool:
        current = time.monotonic() if now is None else now
        entry = self._windows.get(user_id)
        if entry is None or current - entry.started > self.window:
            self._windows[user_id] = _Window(count=1, started=current)
            return True
        if entry.count >= self.limit:
            return False
        entry.count += 1
        return True


def build_answer_messages(
    answer: str, *, max_size: int = 2800, min_break: int = 2000
) -> List[Dict[str, Any]]:
    """Slack payloads for an answer, labelled ``Part i of n`` when split."""
    if len(answer) <= max_size:
        parts = [answer]
    else:
        parts = split_message(answer, max_size, min_break=min_break)

    messages = []
    for number, part in enumerate(parts, start=1):
        text = part if len(parts) == 1 else f"*Part {number} of {len(parts)}*\n\n{part}"
        messages.append(
            {
                "response_type": "in_channel",
                "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": text}}],
            }
        )
    return messages


class SlackResponder:
    """Posts replies to a slash command ``response_url``."""

    def __init__(self, *, max_size: int = 2800, min_break: int = 2000) -> None:
        self.max_size = max_size
        self.min_break = min_break

    async def send_answer(self, response_url: str, answer: str) -> None:
        messages = build_answer_messages(answer, max_size=self.max_size, min_break=self.min_break)
        async with httpx.AsyncClient() as client:
            for message in messages:
                response = await client.post(response_url, json=message)
                response.raise_for_status()

    async def send_ephemeral(self, response_url: str, text: str) -> None:
        async with httpx.AsyncClient() as client:
            try:
                await client.post(response_url, json={"response_type": "ephemeral", "text": text})
            except httpx.HTTPError as exc:
                LOGGER.error("Could not notify Slack: %s", exc)


async def handle_question(
    question: str, response_url: str, searcher: Searcher, responder: SlackResponder
) -> None:
    """Answer a slash command in the background; failures become an ephemeral notice."""
    try:
        result = await searcher.search(question)
        await responder.send_answer(response_url, format_answer(result.answer))
    except Exception as exc:
        LOGGER.error("Slack error: %s", exc, exc_info=True)
        await responder.send_ephemeral(response_url, FAILURE_MESSAGE)
