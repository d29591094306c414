"""AI provider clients.

Each provider wraps two PydanticAI agents (classification and analysis) built
from a model string. Provider-level failures are translated into the typed
errors in errors.py so the fallback manager can decide whether to retry the
same provider or fail over:

    ModelHTTPError 429            -> ProviderRateLimited
    ModelHTTPError other 4xx      -> ProviderRejected
    ModelHTTPError 5xx            -> ProviderUnavailable
    UnexpectedModelBehavior       -> ProviderMalformedResponse (bad or invalid output)
    ValidationError               -> ProviderMalformedResponse
    anything else (network, etc.) -> ProviderUnavailable

Agent-level retries are disabled: retry and failover belong to the fallback
manager, which sees every attempt.

Supported model strings:
    - Gemini:    'google-gla:gemini-2.0-flash'
    - OpenAI:    'openai:gpt-4o-mini'
    - Anthropic: 'anthropic:claude-3-5-haiku-latest'
    - Local OpenAI-compatible server: 'openai:{model_name}@http://127.0.0.1:8080/v1'
"""

import asyncio
import logging
from enum import Enum
from typing import Protocol, runtime_checkable

from openai import AsyncOpenAI
from pydantic import ValidationError
from pydantic_ai import Agent, PromptedOutput
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.profiles.openai import OpenAIModelProfile
from pydantic_ai.providers.openai import OpenAIProvider

from config import Config
from errors import (
    ProviderError,
    ProviderMalformedResponse,
    ProviderRateLimited,
    ProviderRejected,
    ProviderUnavailable,
)
from models.analysis import AnalysisRequest, AnalysisResult
from models.classification import CategoryResult, ClassificationRequest
from providers.prompts import ANALYZER_PROMPT, CLASSIFIER_PROMPT

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    """Supported AI providers."""

    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@runtime_checkable
class Provider(Protocol):
    """Anything that can classify and analyze bounded text."""

    name: str
    model: str

    async def classify(self, request: ClassificationRequest) -> CategoryResult: ...

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult: ...


def _parse_local_model(model_str: str) -> tuple[str, str] | None:
    """Parse local model string into (model_name, base_url) or None if not local."""
    if model_str.startswith("openai:") and "@" in model_str:
        rest = model_str[7:]  # Remove "openai:" prefix
        model_name, base_url = rest.split("@", 1)
        return model_name, base_url
    return None


def _create_model(model_str: str):
    """Create the appropriate model based on the model string.

    Args:
        model_str: Model identifier string

    Returns:
        PydanticAI model instance or model string
    """
    parsed = _parse_local_model(model_str)
    if parsed:
        model_name, base_url = parsed
        logger.info("Using local model | model=%s base_url=%s", model_name, base_url)
        # Local servers don't need authentication - use placeholder
        client = AsyncOpenAI(base_url=base_url, api_key="local-model")
        profile = OpenAIModelProfile(supports_json_object_output=False)
        return OpenAIModel(
            model_name=model_name,
            provider=OpenAIProvider(openai_client=client),
            profile=profile,
        )
    # Remote model; PydanticAI reads the API key from the environment
    return model_str


def map_provider_error(exc: Exception, provider: str) -> ProviderError:
    """Translate a provider-side exception into the typed error taxonomy."""
    if isinstance(exc, ProviderError):
        if not exc.provider:
            exc.provider = provider
        return exc
    if isinstance(exc, ModelHTTPError):
        status = exc.status_code
        message = f"HTTP {status}: {exc.body if exc.body is not None else exc}"
        if status == 429:
            return ProviderRateLimited(message, provider)
        if 400 <= status < 500:
            return ProviderRejected(message, provider)
        return ProviderUnavailable(message, provider)
    if isinstance(exc, (UnexpectedModelBehavior, ValidationError)):
        return ProviderMalformedResponse(f"Schema validation failed: {exc}", provider)
    if isinstance(exc, asyncio.TimeoutError):
        return ProviderUnavailable("Provider call timed out", provider)
    return ProviderUnavailable(f"{type(exc).__name__}: {exc}", provider)


class ProviderClient:
    """PydanticAI-backed provider.

    Agents are created on first use, so constructing a client for a provider
    whose SDK or key is missing fails at call time with ProviderUnavailable
    rather than at startup.

    Example:
        >>> client = ProviderClient(ProviderKind.GEMINI, "google-gla:gemini-2.0-flash")
        >>> result = await client.classify(ClassificationRequest(title="..."))
    """

    def __init__(self, kind: ProviderKind, model: str):
        self.kind = kind
        self.name = kind.value
        self.model = model
        self._classify_agent: Agent[None, CategoryResult] | None = None
        self._analyze_agent: Agent[None, AnalysisResult] | None = None

    def _agent(self, output_type, system_prompt: str) -> Agent:
        return Agent(
            _create_model(self.model),
            output_type=PromptedOutput(output_type),
            system_prompt=system_prompt,
            retries=0,
        )

    async def classify(self, request: ClassificationRequest) -> CategoryResult:
        try:
            if self._classify_agent is None:
                self._classify_agent = self._agent(CategoryResult, CLASSIFIER_PROMPT)
            result = await self._classify_agent.run(request.to_prompt())
        except Exception as e:
            raise map_provider_error(e, self.name) from e
        self._log_usage("classify", result)
        return result.output

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        try:
            if self._analyze_agent is None:
                self._analyze_agent = self._agent(AnalysisResult, ANALYZER_PROMPT)
            result = await self._analyze_agent.run(request.to_prompt())
        except Exception as e:
            raise map_provider_error(e, self.name) from e
        self._log_usage("analyze", result)
        return result.output

    def _log_usage(self, operation: str, result) -> None:
        usage = result.usage()
        logger.debug(
            "Provider call | provider=%s op=%s requests=%d tokens=%d/%d",
            self.name,
            operation,
            usage.requests,
            usage.request_tokens or 0,
            usage.response_tokens or 0,
        )

    def __repr__(self) -> str:
        return f"ProviderClient({self.name}, {self.model})"


def _is_configured(kind: ProviderKind, config: Config) -> bool:
    if kind == ProviderKind.GEMINI:
        return bool(config.gemini_api_key)
    if kind == ProviderKind.OPENAI:
        return bool(config.openai_api_key) or _parse_local_model(config.openai_model) is not None
    return bool(config.anthropic_api_key)


def build_providers(config: Config) -> dict[str, Provider]:
    """Create a client for every configured provider, keyed by name."""
    models = {
        ProviderKind.GEMINI: config.gemini_model,
        ProviderKind.OPENAI: config.openai_model,
        ProviderKind.ANTHROPIC: config.anthropic_model,
    }
    providers: dict[str, Provider] = {}
    for kind, model in models.items():
        if _is_configured(kind, config):
            providers[kind.value] = ProviderClient(kind, model)
        else:
            logger.debug("Provider not configured | provider=%s", kind.value)
    logger.info("Providers configured | providers=%s", ",".join(providers) or "none")
    return providers
