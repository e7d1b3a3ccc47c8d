"""
Answer providers: Gemini (vision) and OpenRouter (text, OpenAI-compatible API).

Every provider exposes ``send(message, image) -> ProviderOutcome`` and never
raises for transport problems: timeouts, HTTP errors and malformed bodies come
back as an empty outcome, HTTP 429 as ``overloaded=True``. Responses are
streamed and abandoned once the call has run past its timeout, so a server
that trickles bytes cannot hold a request thread open.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import httpx
from openai import APIError, APIStatusError, OpenAI, RateLimitError

from app.core.config import (
    APP_REFERER,
    APP_TITLE,
    GEMINI_API_KEY,
    GEMINI_API_URL,
    GEMINI_MODEL,
    OPENROUTER_API_KEY,
    OPENROUTER_BASE_URL,
    OPENROUTER_MODEL,
    TEXT_MAX_TOKENS,
    TEXT_TIMEOUT,
    VISION_TIMEOUT,
)
from app.services.image_validator import ValidatedImage

logger = logging.getLogger(__name__)

VISION_INSTRUCTIONS = (
    "Please provide:\n"
    "1. A full detailed description of the image.\n"
    "2. Extract all visible text.\n"
    "3. Extract all numbers.\n"
    "4. If this looks like a receipt/invoice, calculate the total."
)


@dataclass(frozen=True)
class ProviderOutcome:
    answer: str | None = None
    overloaded: bool = False

    @property
    def ok(self) -> bool:
        return bool(self.answer)


EMPTY = ProviderOutcome()
OVERLOADED = ProviderOutcome(overloaded=True)


class AnswerProvider(Protocol):
    name: str

    def send(self, message: str, image: ValidatedImage | None = None) -> ProviderOutcome: ...


class GeminiVisionProvider:
    """Google Gemini generateContent over REST, with the image sent as inline_data."""

    name = "gemini"

    def __init__(
        self,
        api_key: str = GEMINI_API_KEY,
        model: str = GEMINI_MODEL,
        api_url: str = GEMINI_API_URL,
        timeout: float = VISION_TIMEOUT,
        http_client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client
        self._clock = clock

    def _payload(self, message: str, image: ValidatedImage | None) -> dict[str, Any]:
        parts: list[dict[str, Any]] = [{"text": f"{message}\n\n{VISION_INSTRUCTIONS}"}]
        if image is not None:
            parts.append({"inline_data": {"mime_type": image.media_type, "data": image.to_base64()}})
        return {"contents": [{"parts": parts}]}

    def send(self, message: str, image: ValidatedImage | None = None) -> ProviderOutcome:
        if not self.api_key:
            logger.warning("[provider:gemini] no GEMINI_API_KEY, skipping")
            return EMPTY
        url = f"{self.api_url}/{self.model}:generateContent"
        logger.info("[provider:gemini] IN  message_len=%d image=%s", len(message), image is not None)
        deadline = self._clock() + self.timeout
        client = self._http_client or httpx.Client(timeout=self.timeout)
        try:
            with client.stream(
                "POST", url, params={"key": self.api_key}, json=self._payload(message, image), timeout=self.timeout
            ) as response:
                if response.status_code == 429:
                    logger.warning("[provider:gemini] overloaded (429)")
                    return OVERLOADED
                body = bytearray()
                for chunk in response.iter_bytes():
                    body.extend(chunk)
                    if self._clock() > deadline:
                        logger.warning("[provider:gemini] timed out after %.1fs", self.timeout)
                        return EMPTY
                status = response.status_code
        except httpx.HTTPError as e:
            logger.warning("[provider:gemini] request failed: %s", e)
            return EMPTY
        finally:
            if self._http_client is None:
                client.close()
        if status != 200:
            logger.warning("[provider:gemini] HTTP error %s: %s", status, body[:200].decode("utf-8", "replace"))
            return EMPTY
        try:
            data = json.loads(body)
        except ValueError as e:
            logger.warning("[provider:gemini] invalid JSON body: %s", e)
            return EMPTY
        out = _gemini_text(data)
        logger.info("[provider:gemini] OUT response_len=%d", len(out))
        return ProviderOutcome(answer=out) if out else EMPTY


def _gemini_text(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    candidates = data.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    if not parts or not isinstance(parts[0], dict):
        return ""
    return (parts[0].get("text") or "").strip()


class OpenRouterTextProvider:
    """Text-only chat completion via OpenRouter using the OpenAI client, streamed so the call has a total time limit."""

    name = "openrouter"

    def __init__(
        self,
        api_key: str = OPENROUTER_API_KEY,
        model: str = OPENROUTER_MODEL,
        base_url: str = OPENROUTER_BASE_URL,
        max_tokens: int = TEXT_MAX_TOKENS,
        timeout: float = TEXT_TIMEOUT,
        client: OpenAI | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = client
        self._clock = clock
        if self._client is None and api_key:
            headers = {"X-Title": APP_TITLE}
            if APP_REFERER:
                headers["HTTP-Referer"] = APP_REFERER
            self._client = OpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
                default_headers=headers,
            )

    def send(self, message: str, image: ValidatedImage | None = None) -> ProviderOutcome:
        if self._client is None:
            logger.warning("[provider:openrouter] no OPENROUTER_API_KEY, skipping")
            return EMPTY
        logger.info("[provider:openrouter] IN  message_len=%d model=%s", len(message), self.model)
        deadline = self._clock() + self.timeout
        pieces: list[str] = []
        try:
            stream = self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": message}],
                max_tokens=self.max_tokens,
                stream=True,
            )
            try:
                for chunk in stream:
                    if chunk.choices:
                        pieces.append(chunk.choices[0].delta.content or "")
                    if self._clock() > deadline:
                        logger.warning("[provider:openrouter] timed out after %.1fs", self.timeout)
                        return EMPTY
            finally:
                stream.close()
        except RateLimitError:
            logger.warning("[provider:openrouter] overloaded (429)")
            return OVERLOADED
        except APIStatusError as e:
            logger.warning("[provider:openrouter] HTTP error %s: %s", e.status_code, str(e)[:200])
            return EMPTY
        except (APIError, httpx.HTTPError) as e:
            logger.warning("[provider:openrouter] request failed: %s", e)
            return EMPTY
        out = "".join(pieces).strip()
        logger.info("[provider:openrouter] OUT response_len=%d", len(out))
        return ProviderOutcome(answer=out) if out else EMPTY
