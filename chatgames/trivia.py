"""Trivia questions for Decoy's Dilemma."""

from __future__ import annotations

import asyncio
import html
import logging

import requests

from .models import TriviaQuestion

log = logging.getLogger("chat-games.trivia")

DEFAULT_TRIVIA_URL = "https://opentdb.com/api.php?amount=1&type=multiple"
FALLBACK_QUESTION = TriviaQuestion(question="What color is the sky at noon?", answer="blue")


class OpenTriviaClient:
    """Fetches a single question from the Open Trivia DB.

    Any network or payload problem falls back to a built-in question so a
    running game never stalls on the trivia service.
    """

    def __init__(
        self,
        url: str = DEFAULT_TRIVIA_URL,
        *,
        session: requests.Session | None = None,
        timeout: float = 10,
    ) -> None:
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout

    async def fetch_question(self) -> TriviaQuestion:
        return await asyncio.to_thread(self._fetch)

    def _fetch(self) -> TriviaQuestion:
        try:
            resp = self.session.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            log.warning("Trivia request failed: %s", exc)
            return FALLBACK_QUESTION

        question = parse_trivia_payload(payload)
        if question is None:
            log.warning("Unexpected trivia payload: %r", payload)
            return FALLBACK_QUESTION
        return question


def parse_trivia_payload(payload: object) -> TriviaQuestion | None:
    if not isinstance(payload, dict) or payload.get("response_code") != 0:
        return None
    results = payload.get("results")
    if not isinstance(results, list) or not results:
        return None
    first = results[0]
    if not isinstance(first, dict):
        return None
    question = html.unescape(str(first.get("question", ""))).strip()
    answer = html.unescape(str(first.get("correct_answer", ""))).strip()
    if not question or not answer:
        return None
    return TriviaQuestion(question=question, answer=answer)


__all__ = [
    "DEFAULT_TRIVIA_URL",
    "FALLBACK_QUESTION",
    "OpenTriviaClient",
    "parse_trivia_payload",
]
