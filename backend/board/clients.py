"""
HTTP clients for the external AI collaborators.

- ToxicityClassifier: Perspective-style comment analysis, text -> [0, 1]
- Summarizer: Gemini-style generateContent, text -> summary

Both make a single request bounded by a timeout. There are no retries and
no caching. Any transport, status or parse problem is raised as
ClassifierUnavailable / SummarizerUnavailable; callers decide how to degrade.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from django.conf import settings

from .exceptions import ClassifierUnavailable, SummarizerUnavailable

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = "Summarize this discussion in 3-4 concise sentences:\n\n{text}"
EMPTY_SUMMARY = "No summary generated."


@dataclass
class ClientConfig:
    """Connection settings for one AI endpoint."""

    url: str
    api_key: str
    timeout: float = 10.0


class ToxicityClassifier:
    """
    Client for the comment-analysis API.

    Request:  {"comment": {"text": ...}, "languages": ["en"],
               "requestedAttributes": {"TOXICITY": {}}}
    Response: attributeScores.TOXICITY.summaryScore.value
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "ToxicityClassifier":
        return cls(ClientConfig(
            url=settings.PERSPECTIVE_API_URL,
            api_key=settings.PERSPECTIVE_API_KEY,
            timeout=settings.AI_REQUEST_TIMEOUT,
        ))

    def score(self, text: str) -> float:
        """Return the toxicity score of ``text``. Raises ClassifierUnavailable."""
        if not self.config.api_key:
            raise ClassifierUnavailable("PERSPECTIVE_API_KEY is not configured")

        payload = {
            "comment": {"text": text},
            "languages": ["en"],
            "requestedAttributes": {"TOXICITY": {}},
        }
        try:
            with httpx.Client(timeout=self.config.timeout, transport=self._transport) as client:
                response = client.post(
                    self.config.url,
                    params={"key": self.config.api_key},
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ClassifierUnavailable(f"Toxicity request failed: {exc}") from exc
        except ValueError as exc:
            raise ClassifierUnavailable("Toxicity response is not JSON") from exc

        return self._parse_score(data)

    @staticmethod
    def _parse_score(data: Any) -> float:
        try:
            value = data["attributeScores"]["TOXICITY"]["summaryScore"]["value"]
        except (KeyError, TypeError) as exc:
            raise ClassifierUnavailable("Toxicity response is missing the summary score") from exc

        if value is None:
            return 0.0
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ClassifierUnavailable(f"Toxicity score is not a number: {value!r}")
        if not 0.0 <= value <= 1.0:
            raise ClassifierUnavailable(f"Toxicity score out of range: {value}")
        return float(value)


class Summarizer:
    """Client for the generative-text API."""

    def __init__(
        self,
        config: ClientConfig,
        model: str = "gemini-2.5-flash",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config
        self.model = model
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "Summarizer":
        return cls(
            ClientConfig(
                url=settings.GEMINI_API_BASE,
                api_key=settings.GEMINI_API_KEY,
                timeout=settings.AI_REQUEST_TIMEOUT,
            ),
            model=settings.GEMINI_MODEL,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.config.url.rstrip('/')}/models/{self.model}:generateContent"

    def summarize(self, text: str) -> str:
        """Summarize ``text``. Raises SummarizerUnavailable."""
        if not self.config.api_key:
            raise SummarizerUnavailable("GEMINI_API_KEY is not configured")

        payload = {
            "contents": [
                {"parts": [{"text": SUMMARY_PROMPT.format(text=text)}]},
            ],
        }
        try:
            with httpx.Client(timeout=self.config.timeout, transport=self._transport) as client:
                response = client.post(
                    self.endpoint,
                    params={"key": self.config.api_key},
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise SummarizerUnavailable(f"Summary request failed: {exc}") from exc
        except ValueError as exc:
            raise SummarizerUnavailable("Summary response is not JSON") from exc

        return self._extract_text(data)

    @staticmethod
    def _extract_text(data: Any) -> str:
        # A well-formed reply with no text is a valid (empty) summary
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return EMPTY_SUMMARY
        if not isinstance(text, str):
            return EMPTY_SUMMARY
        return text.strip() or EMPTY_SUMMARY
