"""
Tests for the OpenAI/Anthropic providers and the embedding service.

SDK clients are replaced with AsyncMock objects; no network calls are made.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest

from studyhub.embedding_service import EmbeddingService
from studyhub.exceptions import (
    ContextTooLargeError,
    MissingAPIKeyError,
    ProviderError,
    ProviderOverloadedError,
    ProviderRateLimitError,
)
from studyhub.llm_providers import AnthropicProvider, MockLLMProvider, OpenAIProvider, get_provider


def _status_error(cls, status_code, url, headers=None):
    response = httpx.Response(status_code, headers=headers or {}, request=httpx.Request("POST", url))
    return cls("request failed", response=response, body=None)


def _openai_response(content, prompt_tokens=12, completion_tokens=7):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def _anthropic_response(text):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=20, output_tokens=5),
        stop_reason="end_turn",
    )


# =============================================================================
# OpenAI
# =============================================================================

class TestOpenAIProvider:

    @pytest.fixture
    def provider(self):
        provider = OpenAIProvider(api_key="sk-test")
        provider.client = MagicMock()
        provider.client.chat.completions.create = AsyncMock()
        return provider

    def test_requires_key(self):
        with pytest.raises(MissingAPIKeyError):
            OpenAIProvider()

    @pytest.mark.asyncio
    async def test_chat_completion(self, provider):
        provider.client.chat.completions.create.return_value = _openai_response('{"questions": []}')

        response = await provider.chat_completion(
            [{"role": "user", "content": "Hi"}], model="gpt-4o-mini", max_tokens=100, system="Be brief"
        )

        assert response.content == '{"questions": []}'
        assert response.token_count == 19
        params = provider.client.chat.completions.create.call_args.kwargs
        assert params["messages"][0] == {"role": "system", "content": "Be brief"}
        assert params["max_tokens"] == 100

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, provider):
        provider.client.chat.completions.create.side_effect = _status_error(
            openai.RateLimitError, 429, "https://api.openai.com/v1/chat/completions", {"retry-after": "12"}
        )

        with pytest.raises(ProviderRateLimitError) as exc_info:
            await provider.chat_completion([{"role": "user", "content": "Hi"}], model="gpt-4o-mini")
        assert exc_info.value.retry_after == 12
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_other_errors_become_provider_errors(self, provider):
        provider.client.chat.completions.create.side_effect = _status_error(
            openai.InternalServerError, 500, "https://api.openai.com/v1/chat/completions"
        )

        with pytest.raises(ProviderError) as exc_info:
            await provider.chat_completion([{"role": "user", "content": "Hi"}], model="gpt-4o-mini")
        assert exc_info.value.status_code == 500


# =============================================================================
# Anthropic
# =============================================================================

class TestAnthropicProvider:

    @pytest.fixture
    def provider(self):
        provider = AnthropicProvider(api_key="sk-ant-test")
        provider.client = MagicMock()
        provider.client.messages.create = AsyncMock()
        return provider

    @pytest.mark.asyncio
    async def test_chat_completion(self, provider):
        provider.client.messages.create.return_value = _anthropic_response("[]")

        response = await provider.chat_completion(
            [{"role": "user", "content": "Hi"}], model="claude-3-haiku-20240307", system="Be brief"
        )

        assert response.content == "[]"
        assert response.provider == "anthropic"
        params = provider.client.messages.create.call_args.kwargs
        assert params["system"] == "Be brief"
        assert params["messages"] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_overloaded(self, provider):
        provider.client.messages.create.side_effect = _status_error(
            anthropic.APIStatusError, 529, "https://api.anthropic.com/v1/messages"
        )

        with pytest.raises(ProviderOverloadedError):
            await provider.chat_completion([{"role": "user", "content": "Hi"}], model="claude-3-haiku-20240307")

    @pytest.mark.asyncio
    async def test_prompt_too_long(self, provider):
        with pytest.raises(ContextTooLargeError):
            await provider.chat_completion(
                [{"role": "user", "content": "x" * (4 * 190_000)}], model="claude-3-haiku-20240307"
            )
        provider.client.messages.create.assert_not_called()

    def test_max_tokens_shrinks_to_fit(self):
        assert AnthropicProvider.fit_max_tokens("x" * (4 * 150_000), "claude-3-haiku-20240307", 60_000) == 50_000
        assert AnthropicProvider.fit_max_tokens("short prompt", "claude-3-haiku-20240307", 4000) == 4000


# =============================================================================
# Mock & Factory
# =============================================================================

@pytest.mark.asyncio
async def test_mock_provider_counts_questions():
    provider = MockLLMProvider()
    response = await provider.chat_completion(
        [{"role": "user", "content": "Create a quiz with 5 questions"}], model="mock-model"
    )
    assert response.content.startswith("```json")
    assert response.content.count('"question"') == 5
    assert len(provider.calls) == 1


def test_get_provider_without_key():
    with pytest.raises(MissingAPIKeyError):
        get_provider("anthropic")


# =============================================================================
# Embeddings
# =============================================================================

class TestEmbeddingService:

    @pytest.fixture
    def service(self):
        service = EmbeddingService(api_key="sk-test")
        service.client = MagicMock()
        service.client.embeddings.create = AsyncMock(
            side_effect=lambda model, input: SimpleNamespace(
                data=[SimpleNamespace(embedding=[float(len(text)), 1.0]) for text in input]
            )
        )
        return service

    @pytest.mark.asyncio
    async def test_embed_batch_splits_requests(self, service):
        vectors = await service.embed_batch(["a", "bb", "ccc"], batch_size=2)
        assert vectors == [[1.0, 1.0], [2.0, 1.0], [3.0, 1.0]]
        assert service.client.embeddings.create.call_count == 2

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, service):
        with pytest.raises(ValueError):
            await service.embed_text("   ")
        with pytest.raises(ValueError):
            await service.embed_batch(["ok", ""])

    @pytest.mark.asyncio
    async def test_rate_limit(self, service):
        service.client.embeddings.create.side_effect = _status_error(
            openai.RateLimitError, 429, "https://api.openai.com/v1/embeddings"
        )
        with pytest.raises(ProviderRateLimitError):
            await service.embed_text("photosynthesis")
