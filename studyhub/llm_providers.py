"""
Abstract LLM provider interface for decoupling from specific AI vendors.

Implementations:
- OpenAIProvider (chat completions via AsyncOpenAI)
- AnthropicProvider (messages API via AsyncAnthropic)
- MockLLMProvider (canned JSON, no network)

Provider SDK errors are translated into the StudyHub exception hierarchy
here, so callers never inspect provider error messages.
"""

import hashlib
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from . import cache
from .config import settings
from .constants import (
    CHARS_PER_TOKEN,
    CLAUDE_3_CONTEXT_LIMIT,
    CONTEXT_SAFETY_RATIO,
    DEFAULT_CONTEXT_LIMIT,
    OPENAI_CONTEXT_LIMITS,
)
from .exceptions import (
    ContextTooLargeError,
    MissingAPIKeyError,
    ProviderError,
    ProviderOverloadedError,
    ProviderRateLimitError,
)

logger = logging.getLogger(__name__)

# USD per 1K tokens (input, output)
PRICING = {
    "gpt-4o": (0.00250, 0.01000),
    "gpt-4o-mini": (0.00015, 0.00060),
    "gpt-4-turbo": (0.01000, 0.03000),
    "gpt-3.5-turbo": (0.00050, 0.00150),
    "claude-3-5-sonnet-20240620": (0.00300, 0.01500),
    "claude-3-haiku-20240307": (0.00025, 0.00125),
    "claude-3-opus-20240229": (0.01500, 0.07500),
}


@dataclass
class LLMResponse:
    """Normalized chat completion result."""
    content: str
    model: str
    provider: str
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def token_count(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 characters per token)."""
    return len(text or "") // CHARS_PER_TOKEN


def context_limit_for(provider: str, model: str) -> int:
    """Context window size in tokens for a provider/model pair."""
    if provider == "anthropic":
        return CLAUDE_3_CONTEXT_LIMIT if model.startswith("claude-3") else DEFAULT_CONTEXT_LIMIT
    if provider == "openai":
        for prefix, limit in OPENAI_CONTEXT_LIMITS.items():
            if model == prefix:
                return limit
        return DEFAULT_CONTEXT_LIMIT
    return DEFAULT_CONTEXT_LIMIT


PROMPT_OVERHEAD_TOKENS = 2000  # instructions, previous questions, format section


def content_budget_chars(provider: str, model: str, completion_tokens: int) -> int:
    """Characters of source content that fit in one request to provider/model."""
    limit = context_limit_for(provider, model)
    budget_tokens = int(limit * CONTEXT_SAFETY_RATIO) - completion_tokens - PROMPT_OVERHEAD_TOKENS
    return max(budget_tokens, 1000) * CHARS_PER_TOKEN


def split_content(content: str, max_chars: int) -> List[str]:
    """
    Split content into pieces of at most max_chars, preferring paragraph breaks.

    A single paragraph longer than max_chars is hard-split.
    """
    if len(content) <= max_chars:
        return [content]

    pieces: List[str] = []
    current = ""
    for paragraph in content.split("\n\n"):
        while len(paragraph) > max_chars:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(paragraph[:max_chars])
            paragraph = paragraph[max_chars:]

        candidate = f"{current}\n\n{paragraph}" if current else paragraph
        if len(candidate) > max_chars:
            pieces.append(current)
            current = paragraph
        else:
            current = candidate

    if current.strip():
        pieces.append(current)
    return [p for p in pieces if p.strip()]


def _log_usage(provider: str, model: str, prompt_tokens: int, completion_tokens: int) -> None:
    input_price, output_price = PRICING.get(model, (0.0, 0.0))
    cost_usd = (prompt_tokens / 1000 * input_price) + (completion_tokens / 1000 * output_price)
    logger.info(
        f"{provider} usage: model={model}, tokens={prompt_tokens}+{completion_tokens}="
        f"{prompt_tokens + completion_tokens}, cost=${cost_usd:.6f}"
    )


def _retry_after_seconds(error) -> Optional[int]:
    response = getattr(error, "response", None)
    if response is None:
        return None
    value = response.headers.get("retry-after")
    try:
        return int(float(value)) if value else None
    except ValueError:
        return None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name = "abstract"

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[Dict],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        system: Optional[str] = None,
    ) -> LLMResponse:
        """
        Run one chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Provider model name
            temperature: Sampling temperature (0-1)
            max_tokens: Completion token budget
            system: Optional system prompt

        Returns:
            LLMResponse with text and usage
        """
        pass


class OpenAIProvider(LLMProvider):
    """OpenAI implementation of LLM provider."""

    name = "openai"

    def __init__(self, api_key: str = None):
        self.api_key = api_key or settings.openai_api_key
        if not self.api_key:
            raise MissingAPIKeyError("openai")

        self.client = AsyncOpenAI(
            api_key=self.api_key,
            max_retries=0,  # retries are handled by tenacity
            timeout=settings.llm_timeout_seconds,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((openai.APIConnectionError,)),
        reraise=True
    )
    async def _call_openai(self, params: Dict):
        """Call OpenAI API with retry on transient connection errors."""
        logger.info(f"Calling OpenAI with model: {params['model']}")
        return await self.client.chat.completions.create(**params)

    async def chat_completion(
        self,
        messages: List[Dict],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        system: Optional[str] = None,
    ) -> LLMResponse:
        full_messages = ([{"role": "system", "content": system}] if system else []) + list(messages)
        params = {
            "model": model,
            "messages": full_messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        try:
            response = await self._call_openai(params)
        except openai.RateLimitError as e:
            logger.warning(f"OpenAI rate limit hit: {e}")
            raise ProviderRateLimitError("openai", retry_after=_retry_after_seconds(e)) from e
        except openai.BadRequestError as e:
            if getattr(e, "code", None) == "context_length_exceeded":
                prompt_chars = sum(len(m.get("content") or "") for m in full_messages)
                raise ContextTooLargeError(
                    prompt_chars // CHARS_PER_TOKEN, context_limit_for("openai", model)
                ) from e
            raise ProviderError("openai", str(e)) from e
        except openai.APIError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise ProviderError("openai", str(e)) from e

        content = response.choices[0].message.content or ""
        prompt_tokens = completion_tokens = 0
        if getattr(response, "usage", None):
            prompt_tokens = response.usage.prompt_tokens
            completion_tokens = response.usage.completion_tokens
            _log_usage("openai", model, prompt_tokens, completion_tokens)

        logger.info(
            f"API response - finish_reason: {response.choices[0].finish_reason}, "
            f"content length: {len(content)}"
        )
        return LLMResponse(
            content=content,
            model=model,
            provider=self.name,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )


class AnthropicProvider(LLMProvider):
    """Anthropic (Claude) implementation of LLM provider."""

    name = "anthropic"

    def __init__(self, api_key: str = None):
        self.api_key = api_key or settings.anthropic_api_key
        if not self.api_key:
            raise MissingAPIKeyError("anthropic")

        self.client = AsyncAnthropic(
            api_key=self.api_key,
            max_retries=0,
            timeout=settings.llm_timeout_seconds,
        )

    @staticmethod
    def fit_max_tokens(prompt_text: str, model: str, max_tokens: int) -> int:
        """
        Check the prompt against the model context window.

        Raises ContextTooLargeError when the prompt alone uses more than 90%
        of the window; otherwise shrinks max_tokens so prompt + completion fit.
        """
        limit = context_limit_for("anthropic", model)
        estimated = estimate_tokens(prompt_text)

        if estimated > limit * CONTEXT_SAFETY_RATIO:
            logger.error(f"Prompt too large for {model}: ~{estimated} tokens (limit {limit})")
            raise ContextTooLargeError(estimated, limit)

        if estimated + max_tokens > limit:
            adjusted = max(limit - estimated, 1)
            logger.warning(f"Reducing max_tokens from {max_tokens} to {adjusted} to fit context window")
            return adjusted
        return max_tokens

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((anthropic.APIConnectionError,)),
        reraise=True
    )
    async def _call_anthropic(self, params: Dict):
        """Call Anthropic API with retry on transient connection errors."""
        logger.info(f"Calling Anthropic with model: {params['model']}")
        return await self.client.messages.create(**params)

    async def chat_completion(
        self,
        messages: List[Dict],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        system: Optional[str] = None,
    ) -> LLMResponse:
        prompt_text = (system or "") + "".join(m.get("content") or "" for m in messages)
        max_tokens = self.fit_max_tokens(prompt_text, model, max_tokens)

        params = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [m for m in messages if m.get("role") != "system"],
        }
        if system:
            params["system"] = system

        try:
            response = await self._call_anthropic(params)
        except anthropic.RateLimitError as e:
            logger.warning(f"Anthropic rate limit hit: {e}")
            raise ProviderRateLimitError("anthropic", retry_after=_retry_after_seconds(e)) from e
        except anthropic.BadRequestError as e:
            if "prompt is too long" in str(e).lower():
                limit = context_limit_for("anthropic", model)
                raise ContextTooLargeError(estimate_tokens(prompt_text), limit) from e
            raise ProviderError("anthropic", str(e)) from e
        except anthropic.APIStatusError as e:
            if e.status_code == 529:
                logger.warning("Anthropic reported overloaded (529)")
                raise ProviderOverloadedError("anthropic", retry_after=_retry_after_seconds(e)) from e
            logger.error(f"Anthropic request failed: {e}")
            raise ProviderError("anthropic", str(e)) from e
        except anthropic.APIError as e:
            logger.error(f"Anthropic request failed: {e}")
            raise ProviderError("anthropic", str(e)) from e

        content = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        prompt_tokens = response.usage.input_tokens if response.usage else 0
        completion_tokens = response.usage.output_tokens if response.usage else 0
        _log_usage("anthropic", model, prompt_tokens, completion_tokens)

        logger.info(f"API response - stop_reason: {response.stop_reason}, content length: {len(content)}")
        return LLMResponse(
            content=content,
            model=model,
            provider=self.name,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )


class MockLLMProvider(LLMProvider):
    """
    Mock LLM provider for testing.

    Returns canned JSON shaped for the prompt it receives, without API calls.
    """

    name = "mock"

    def __init__(self):
        self.calls: List[Dict] = []

    async def chat_completion(
        self,
        messages: List[Dict],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        system: Optional[str] = None,
    ) -> LLMResponse:
        prompt = "\n".join(m.get("content") or "" for m in messages)
        self.calls.append({"model": model, "prompt": prompt, "max_tokens": max_tokens})

        if "EXAM PATTERN ANALYSIS" in prompt:
            content = json.dumps(self._pattern())
        elif "SUBJECT EXTRACTION" in prompt:
            content = json.dumps([{"name": "Mock Subject A"}, {"name": "Mock Subject B"}])
        else:
            match = re.search(r"with (\d+) questions", prompt)
            count = int(match.group(1)) if match else 3
            content = "```json\n" + json.dumps({"questions": self._questions(count, prompt)}) + "\n```"

        return LLMResponse(
            content=content,
            model=model,
            provider=self.name,
            prompt_tokens=estimate_tokens(prompt),
            completion_tokens=estimate_tokens(content),
        )

    @staticmethod
    def _questions(count: int, prompt: str) -> List[Dict]:
        # distinct texts per prompt so duplicate filtering keeps them
        def text(i):
            return hashlib.sha256(f"{prompt}|{i}".encode()).hexdigest()[:40]

        return [
            {
                "question": f"Define {text(i)}?",
                "options": [
                    {"id": "a", "text": f"Answer {i}A"},
                    {"id": "b", "text": f"Answer {i}B"},
                    {"id": "c", "text": f"Answer {i}C"},
                    {"id": "d", "text": f"Answer {i}D"},
                ],
                "correctAnswer": "a",
                "explanation": f"Explanation {i}",
            }
            for i in range(1, count + 1)
        ]

    @staticmethod
    def _pattern() -> Dict:
        return {
            "question_formats": {"multiple_choice": 60, "short_answer": 30, "calculation": 10, "essay": 0, "other": 0},
            "topic_distribution": {"Mock Topic": {"frequency": 100, "importance_score": 0.9}},
            "exam_structure": {
                "section_breakdown": {"Part A": 100},
                "difficulty_progression": {"beginning": "easy", "middle": "medium", "end": "hard"},
            },
            "key_insights": {
                "high_value_topics": ["Mock Topic"],
                "common_keywords": [{"word": "mock", "importance": 0.8}],
                "recurring_concepts": [{"concept": "Mocking", "frequency": 3}],
            },
            "confusion_points": {"misleading_questions": [], "watch_out_for": [], "common_mistakes": []},
            "confidence_metrics": {"overall_exam_predictability": 0.8, "format_prediction_confidence": 0.7},
        }


# =============================================================================
# Provider Factory
# =============================================================================

def get_provider(provider_type: str) -> LLMProvider:
    """
    Factory function for LLM providers.

    Args:
        provider_type: "openai", "anthropic" or "mock"

    Raises:
        ValueError: If provider type is unknown
        MissingAPIKeyError: If the provider has no API key configured
    """
    if provider_type == "openai":
        return OpenAIProvider()
    elif provider_type == "anthropic":
        return AnthropicProvider()
    elif provider_type == "mock":
        return MockLLMProvider()
    else:
        raise ValueError(f"Unknown LLM provider: {provider_type}. Supported: openai, anthropic, mock")


# =============================================================================
# Cached Completion
# =============================================================================

async def cached_chat_completion(
    provider: LLMProvider,
    messages: List[Dict],
    model: str,
    temperature: float = 0.7,
    max_tokens: int = 2000,
    system: Optional[str] = None,
) -> LLMResponse:
    """
    chat_completion with the Redis response cache in front of it.

    The mock provider and disabled caching go straight to the provider.
    """
    provider_name = getattr(provider, "name", None)
    if not settings.ai_cache_enabled or provider_name in (None, "mock", "abstract"):
        return await provider.chat_completion(
            messages=messages, model=model, temperature=temperature, max_tokens=max_tokens, system=system
        )

    key = cache.generate_cache_key(
        cache.AI_RESPONSE_PREFIX,
        json.dumps(messages, sort_keys=True),
        provider=provider_name,
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        system=system,
    )
    cached = cache.get_cached_result(key)
    if cached:
        logger.info(f"Cache hit: returning cached {provider_name}/{model} response")
        return LLMResponse(**cached)

    response = await provider.chat_completion(
        messages=messages, model=model, temperature=temperature, max_tokens=max_tokens, system=system
    )
    cache.set_cached_result(key, asdict(response))
    return response
