"""
AI Configuration for StudyHub.

Maps each AI feature (quiz generation, subject extraction, ...) to the
provider, model and sampling settings it should use, and resolves which
provider actually serves a request based on which API keys are present.

The configuration lives in process memory. Admins can change it at runtime
through /admin/ai-config; a restart restores the defaults.
"""

import logging
import threading
from copy import deepcopy
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from .config import settings
from .exceptions import MissingAPIKeyError, ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "anthropic")

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-20240620",
    "mock": "mock-model",
}


@dataclass
class FeatureConfig:
    """Provider settings for a single AI feature."""
    provider: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 2000

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["maxTokens"] = data.pop("max_tokens")
        return data


DEFAULT_FEATURE_CONFIGS: Dict[str, FeatureConfig] = {
    "quiz_generation": FeatureConfig("anthropic", "claude-3-5-sonnet-20240620", 0.7, 4000),
    "subject_extraction": FeatureConfig("anthropic", "claude-3-haiku-20240307", 0.3, 2000),
    "content_summarization": FeatureConfig("anthropic", "claude-3-5-sonnet-20240620", 0.4, 2000),
    "pattern_extraction": FeatureConfig("anthropic", "claude-3-5-sonnet-20240620", 0.2, 3000),
    "quiz_explanation": FeatureConfig("openai", "gpt-4o-mini", 0.7, 1000),
    "code_analysis": FeatureConfig("openai", "gpt-4o", 0.2, 2000),
    "general_chat": FeatureConfig("openai", "gpt-3.5-turbo", 0.9, 1000),
    "default": FeatureConfig("openai", "gpt-4o-mini", 0.7, 2000),
}


@dataclass
class ResolvedProvider:
    """Outcome of provider resolution for one request."""
    name: str
    model: str
    temperature: float
    max_tokens: int


class AIConfig:
    """In-memory feature to provider mapping."""

    def __init__(self):
        self._lock = threading.Lock()
        self._configs: Dict[str, FeatureConfig] = deepcopy(DEFAULT_FEATURE_CONFIGS)

    def get_feature_config(self, feature: Optional[str]) -> FeatureConfig:
        """Config for feature, falling back to 'default' for unknown names."""
        with self._lock:
            return self._configs.get(feature or "default", self._configs["default"])

    def get_all_configs(self) -> Dict[str, Dict]:
        with self._lock:
            return {name: config.to_dict() for name, config in self._configs.items()}

    def update_feature_config(self, feature: str, config: Dict) -> FeatureConfig:
        """
        Update (or add) the configuration of one feature.

        Args:
            feature: Feature name
            config: Dict with provider (required), model, temperature, maxTokens

        Raises:
            ValidationError: If the provider is missing or unsupported
        """
        if not feature:
            raise ValidationError("Feature name is required")

        provider = (config or {}).get("provider")
        if not provider:
            raise ValidationError("Provider is required in config")
        if provider not in SUPPORTED_PROVIDERS:
            raise ValidationError(
                f"Unsupported provider: {provider}. Supported: {', '.join(SUPPORTED_PROVIDERS)}"
            )

        with self._lock:
            current = self._configs.get(feature, self._configs["default"])
            updated = FeatureConfig(
                provider=provider,
                model=config.get("model") or (
                    current.model if current.provider == provider else DEFAULT_MODELS[provider]
                ),
                temperature=float(config.get("temperature", current.temperature)),
                max_tokens=int(config.get("maxTokens", config.get("max_tokens", current.max_tokens))),
            )
            self._configs[feature] = updated

        logger.info(f"AI config updated: {feature} -> {updated.provider}/{updated.model}")
        return updated

    def reset_feature_config(self, feature: str) -> Optional[FeatureConfig]:
        """Restore a feature's default. Features without a default are removed."""
        with self._lock:
            if feature in DEFAULT_FEATURE_CONFIGS:
                self._configs[feature] = deepcopy(DEFAULT_FEATURE_CONFIGS[feature])
                restored = self._configs[feature]
            else:
                self._configs.pop(feature, None)
                restored = None

        logger.info(f"AI config reset: {feature}")
        return restored


ai_config = AIConfig()


# =============================================================================
# Provider Resolution
# =============================================================================

def has_api_key(provider: Optional[str]) -> bool:
    if provider == "openai":
        return bool(settings.openai_api_key)
    if provider == "anthropic":
        return bool(settings.anthropic_api_key)
    return False


def _usable(name: str) -> bool:
    # mock is only reachable through the deployment-wide setting
    if name == "mock":
        return settings.preferred_ai_provider == "mock"
    return has_api_key(name)


def resolve_provider(requested: Optional[str] = None, feature: Optional[str] = None) -> ResolvedProvider:
    """
    Decide which provider serves a request.

    Order:
        1. An explicitly requested provider (openai or anthropic), if its key exists
        2. The deployment-wide preferred provider (STUDYHUB_AI_PROVIDER, may be mock)
        3. The feature's configured provider, if its key exists
        4. Anthropic, then OpenAI, whichever has a key

    When resolution falls back away from the feature's configured provider
    the model becomes that provider's default model.

    Raises:
        ValidationError: If the requested provider is not a supported one
        MissingAPIKeyError: If no provider has a key
    """
    if requested and requested not in SUPPORTED_PROVIDERS:
        raise ValidationError(
            f"Unsupported AI provider: {requested}. Supported: {', '.join(SUPPORTED_PROVIDERS)}"
        )

    config = ai_config.get_feature_config(feature)

    candidates = []
    if requested:
        candidates.append(requested)
    if settings.preferred_ai_provider:
        candidates.append(settings.preferred_ai_provider)
    candidates.extend([config.provider, "anthropic", "openai"])

    for name in candidates:
        if not _usable(name):
            if name == requested:
                logger.warning(f"Requested provider '{name}' has no API key, falling back")
            continue

        model = config.model if name == config.provider else DEFAULT_MODELS.get(name, config.model)
        logger.debug(f"Resolved provider for {feature or 'default'}: {name}/{model}")
        return ResolvedProvider(
            name=name,
            model=model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

    raise MissingAPIKeyError(requested or config.provider)
