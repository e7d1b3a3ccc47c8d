"""
Tests for provider adapters: outcome mapping for success, empty, overload and
transport failures. No network: Gemini uses httpx.MockTransport, OpenRouter a
stand-in for the OpenAI client.
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai

from app.agent.providers import GeminiVisionProvider, OpenRouterTextProvider, ProviderOutcome
from app.services.image_validator import ValidatedImage

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


def _gemini(handler, api_key: str = "test-key", **kwargs) -> GeminiVisionProvider:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GeminiVisionProvider(
        api_key=api_key, model="gemini-test", api_url="https://gemini.test/models", http_client=client, **kwargs
    )


class _FakeStream:
    """Iterable of completion chunks with the close() the OpenAI stream has."""

    def __init__(self, chunks) -> None:
        self.chunks = chunks
        self.closed = False

    def __iter__(self):
        return iter(self.chunks)

    def close(self) -> None:
        self.closed = True


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


def _completion(*contents):
    return _FakeStream([_chunk(c) for c in contents])


def _openrouter(create, **kwargs) -> OpenRouterTextProvider:
    client = MagicMock()
    client.chat.completions.create.side_effect = create
    return OpenRouterTextProvider(api_key="test-key", model="llama-test", client=client, **kwargs)


class TestGeminiVisionProvider:
    def test_answer_with_inline_image(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": " Total: $12.50 "}]}}]})

        image = ValidatedImage(content=b"\x01\x02\x03", media_type="image/png")
        outcome = _gemini(handler).send("What is the total?", image)

        assert outcome == ProviderOutcome(answer="Total: $12.50")
        assert seen["url"] == "https://gemini.test/models/gemini-test:generateContent?key=test-key"
        parts = seen["body"]["contents"][0]["parts"]
        assert parts[0]["text"].startswith("What is the total?")
        assert "receipt/invoice" in parts[0]["text"]
        assert parts[1] == {"inline_data": {"mime_type": "image/png", "data": "AQID"}}

    def test_429_is_overload(self) -> None:
        outcome = _gemini(lambda request: httpx.Response(429)).send("hi")
        assert outcome.overloaded is True
        assert outcome.ok is False

    def test_server_error_is_empty(self) -> None:
        outcome = _gemini(lambda request: httpx.Response(500, text="boom")).send("hi")
        assert outcome == ProviderOutcome()

    def test_missing_candidates_is_empty(self) -> None:
        outcome = _gemini(lambda request: httpx.Response(200, json={"candidates": []})).send("hi")
        assert outcome == ProviderOutcome()

    def test_non_json_body_is_empty(self) -> None:
        outcome = _gemini(lambda request: httpx.Response(200, text="<html>")).send("hi")
        assert outcome == ProviderOutcome()

    def test_timeout_is_empty(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        assert _gemini(handler).send("hi") == ProviderOutcome()

    def test_no_api_key_skips_call(self) -> None:
        handler = MagicMock()
        outcome = _gemini(handler, api_key="").send("hi")
        assert outcome == ProviderOutcome()
        handler.assert_not_called()

    def test_slow_body_abandoned_at_timeout(self, clock) -> None:
        sent = []

        def drip():
            for byte in b'{"candidates": []}':
                clock.advance(0.4)
                sent.append(byte)
                yield bytes([byte])

        provider = _gemini(lambda request: httpx.Response(200, content=drip()), timeout=1.0, clock=clock)
        assert provider.send("hi") == ProviderOutcome()
        assert len(sent) == 3

    def test_body_within_timeout_is_read(self, clock) -> None:
        body = json.dumps({"candidates": [{"content": {"parts": [{"text": "slow but fine"}]}}]}).encode()

        def chunks():
            for i in range(0, len(body), 16):
                clock.advance(0.1)
                yield body[i:i + 16]

        provider = _gemini(lambda request: httpx.Response(200, content=chunks()), timeout=30.0, clock=clock)
        assert provider.send("hi") == ProviderOutcome(answer="slow but fine")


class TestOpenRouterTextProvider:
    def test_answer(self) -> None:
        provider = _openrouter(lambda **kwargs: _completion("  Sure, happy to help.  "))
        assert provider.send("hello") == ProviderOutcome(answer="Sure, happy to help.")

    def test_request_shape(self) -> None:
        provider = _openrouter(lambda **kwargs: _completion("ok"))
        provider.send("hello")
        kwargs = provider._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama-test"
        assert kwargs["messages"] == [{"role": "user", "content": "hello"}]
        assert kwargs["max_tokens"] == provider.max_tokens
        assert kwargs["stream"] is True

    def test_empty_content_is_empty(self) -> None:
        assert _openrouter(lambda **kwargs: _completion(None)).send("hi") == ProviderOutcome()
        assert _openrouter(lambda **kwargs: _completion("   ")).send("hi") == ProviderOutcome()

    def test_no_choices_is_empty(self) -> None:
        provider = _openrouter(lambda **kwargs: _FakeStream([SimpleNamespace(choices=[])]))
        assert provider.send("hi") == ProviderOutcome()

    def test_rate_limit_is_overload(self) -> None:
        request = httpx.Request("POST", OPENROUTER_URL)

        def create(**kwargs):
            raise openai.RateLimitError("rate limited", response=httpx.Response(429, request=request), body=None)

        outcome = _openrouter(create).send("hi")
        assert outcome.overloaded is True

    def test_status_error_is_empty(self) -> None:
        request = httpx.Request("POST", OPENROUTER_URL)

        def create(**kwargs):
            raise openai.InternalServerError("upstream", response=httpx.Response(502, request=request), body=None)

        assert _openrouter(create).send("hi") == ProviderOutcome()

    def test_timeout_is_empty(self) -> None:
        def create(**kwargs):
            raise openai.APITimeoutError(request=httpx.Request("POST", OPENROUTER_URL))

        assert _openrouter(create).send("hi") == ProviderOutcome()

    def test_no_api_key_skips_call(self) -> None:
        provider = OpenRouterTextProvider(api_key="")
        assert provider.send("hi") == ProviderOutcome()

    def test_answer_assembled_from_chunks(self) -> None:
        provider = _openrouter(lambda **kwargs: _completion("Sure, ", None, "happy to help."))
        assert provider.send("hello") == ProviderOutcome(answer="Sure, happy to help.")

    def test_slow_stream_abandoned_at_timeout(self, clock) -> None:
        produced = []

        def drip():
            for word in ["one ", "two ", "three ", "four ", "five ", "six "]:
                clock.advance(0.4)
                produced.append(word)
                yield _chunk(word)

        stream = _FakeStream(drip())
        provider = _openrouter(lambda **kwargs: stream, timeout=1.0, clock=clock)
        assert provider.send("hi") == ProviderOutcome()
        assert len(produced) == 3
        assert stream.closed is True

    def test_stream_read_error_is_empty(self) -> None:
        def broken():
            yield _chunk("partial")
            raise httpx.ReadError("connection reset")

        assert _openrouter(lambda **kwargs: _FakeStream(broken())).send("hi") == ProviderOutcome()
