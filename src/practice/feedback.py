"""
Feedback collaborators.

The engine does not grade answers itself. A feedback provider returns the
text shown to the user and, optionally, a 0-100 score that feeds the
average score. The default provider returns a fixed message; the HTTP
provider calls an external scoring service.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from .models import Question

logger = logging.getLogger(__name__)


@dataclass
class Feedback:
    """Result of evaluating one answer."""

    feedback: str
    score: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_text: str = "") -> Feedback:
        """
        Parse a scoring service response.

        Raises:
            ValueError: If the body is not a JSON object or the score is not numeric
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected JSON object, got {type(data).__name__}")
        raw_score = data.get("score")
        try:
            score = float(raw_score) if raw_score is not None else None
        except TypeError as e:
            raise ValueError(f"score is not numeric: {raw_score!r}") from e
        return cls(feedback=str(data.get("feedback") or default_text), score=score)


class FeedbackProvider(Protocol):
    async def evaluate(self, question: Question, answer_text: str) -> Feedback: ...

    async def close(self) -> None: ...


class FixedFeedbackProvider:
    """Returns the same encouragement for every answer, without a score."""

    def __init__(self, text: str):
        self.text = text

    async def evaluate(self, question: Question, answer_text: str) -> Feedback:
        return Feedback(feedback=self.text)

    async def close(self) -> None:
        pass


class HttpFeedbackProvider:
    """HTTP client for an external answer scoring service."""

    def __init__(
        self,
        api_url: str,
        fallback_text: str,
        timeout_ms: int = 10000,
        retry_attempts: int = 2,
    ):
        """
        Initialize the scoring client.

        Args:
            api_url: Endpoint accepting POST {question_id, question, answer}
            fallback_text: Feedback used when the service cannot be reached
            timeout_ms: Request timeout in milliseconds
            retry_attempts: Number of attempts on timeouts and 5xx responses
        """
        self.api_url = api_url
        self.fallback_text = fallback_text
        self.retry_attempts = retry_attempts
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_ms / 1000.0),
            follow_redirects=True,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def evaluate(self, question: Question, answer_text: str) -> Feedback:
        """
        Score an answer.

        Never raises for transport problems or malformed responses: after the
        last attempt the fallback text is returned without a score, so a flaky
        scorer cannot block a submission.
        """
        payload = {"question_id": question.id, "question": question.text, "answer": answer_text}
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                response = await self.client.post(self.api_url, json=payload)
                response.raise_for_status()
                return Feedback.from_dict(response.json(), default_text=self.fallback_text)

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code < 500:
                    logger.error(f"Scoring service rejected request: {e.response.status_code}")
                    break
                logger.warning(
                    f"Scoring service error {e.response.status_code} on attempt "
                    f"{attempt + 1}/{self.retry_attempts}"
                )

            except (httpx.RequestError, ValueError) as e:
                last_error = e
                logger.warning(f"Scoring request failed on attempt {attempt + 1}/{self.retry_attempts}: {e}")

            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(2 ** attempt)

        logger.error(f"Scoring unavailable, using fallback feedback: {last_error}")
        return Feedback(feedback=self.fallback_text)
