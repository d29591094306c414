"""Provider fallback manager.

Executes one operation (classify or analyze) against an ordered list of
providers until one returns a schema-valid result:

    for provider in [primary, *fallback_order]:
        for attempt in range(max_retries_per_provider):
            call (with timeout) -> success: return
            malformed / rejected -> next provider immediately
            unavailable / rate limited -> sleep base_backoff_ms * 2^attempt, retry
    raise AllProvidersFailed

Backoff suspends only the calling task, so other items keep progressing.
Cancellation is never intercepted.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from config import Config
from errors import (
    AllProvidersFailed,
    ProviderError,
    ProviderFailure,
    ProviderUnavailable,
)
from providers.client import Provider, map_provider_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass
class FallbackPolicy:
    """Provider order and retry settings.

    Attributes:
        primary: First provider to try
        fallback_order: Providers tried after the primary, in order
        max_retries_per_provider: Attempts per provider (not extra retries)
        base_backoff_ms: Backoff base; delay before attempt n+1 is base * 2^n
        timeout_seconds: Timeout for one provider call
    """

    primary: str = "gemini"
    fallback_order: tuple[str, ...] = ("openai", "anthropic")
    max_retries_per_provider: int = 3
    base_backoff_ms: int = 500
    timeout_seconds: float = 30.0

    @classmethod
    def from_config(cls, config: Config) -> "FallbackPolicy":
        return cls(
            primary=config.primary_provider,
            fallback_order=tuple(config.fallback_order),
            max_retries_per_provider=config.max_retries_per_provider,
            base_backoff_ms=config.base_backoff_ms,
            timeout_seconds=config.provider_timeout_seconds,
        )

    @property
    def order(self) -> list[str]:
        """Primary followed by fallbacks, duplicates removed."""
        return list(dict.fromkeys([self.primary, *self.fallback_order]))

    def backoff_seconds(self, attempt: int) -> float:
        return self.base_backoff_ms * (2 ** attempt) / 1000.0


@dataclass(frozen=True)
class ProviderOutcome(Generic[T]):
    """Successful result and where it came from."""

    result: T
    provider: str
    attempts: int
    model: str = ""


class FallbackManager:
    """Runs provider operations with retry, backoff and failover.

    Example:
        >>> manager = FallbackManager(providers, FallbackPolicy.from_config(config))
        >>> outcome = await manager.execute("classify", request)
        >>> outcome.provider, outcome.result.category
    """

    def __init__(
        self,
        providers: dict[str, Provider],
        policy: FallbackPolicy | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.providers = providers
        self.policy = policy or FallbackPolicy()
        self._sleep = sleep

    def ordered_providers(self) -> list[Provider]:
        """Configured providers in policy order; unknown names are skipped."""
        ordered = []
        for name in self.policy.order:
            provider = self.providers.get(name)
            if provider is None:
                logger.debug("Skipping unconfigured provider | provider=%s", name)
                continue
            ordered.append(provider)
        return ordered

    async def execute(
        self,
        operation: str,
        request,
        validate: Callable[[Any], Any] | None = None,
    ) -> ProviderOutcome:
        """Run `operation` ('classify' or 'analyze') until a provider succeeds.

        Args:
            operation: Provider method name
            request: Request object passed to the provider method
            validate: Optional check run on each result; raising
                ProviderMalformedResponse from it fails over to the next provider

        Returns:
            ProviderOutcome with the first valid result

        Raises:
            AllProvidersFailed: If every provider exhausted its attempts
        """
        failures: list[ProviderFailure] = []
        attempts_total = 0

        for provider in self.ordered_providers():
            call = getattr(provider, operation)
            for attempt in range(self.policy.max_retries_per_provider):
                attempts_total += 1
                try:
                    result = await asyncio.wait_for(call(request), timeout=self.policy.timeout_seconds)
                    if validate is not None:
                        validate(result)
                except asyncio.TimeoutError:
                    error: ProviderError = ProviderUnavailable(
                        f"Timed out after {self.policy.timeout_seconds:.1f}s", provider.name
                    )
                except Exception as e:
                    error = map_provider_error(e, provider.name)
                else:
                    if failures:
                        logger.info(
                            "Provider recovered | op=%s provider=%s attempts=%d",
                            operation,
                            provider.name,
                            attempts_total,
                        )
                    return ProviderOutcome(
                        result=result, provider=provider.name, attempts=attempts_total, model=provider.model
                    )

                failures.append(ProviderFailure(
                    provider=provider.name,
                    attempt=attempt + 1,
                    error_type=type(error).__name__,
                    message=str(error),
                ))
                logger.warning(
                    "Provider attempt failed | op=%s provider=%s attempt=%d/%d error=%s: %s",
                    operation,
                    provider.name,
                    attempt + 1,
                    self.policy.max_retries_per_provider,
                    type(error).__name__,
                    error,
                )

                if not error.retryable:
                    break
                if attempt + 1 < self.policy.max_retries_per_provider:
                    await self._sleep(self.policy.backoff_seconds(attempt))

        logger.error(
            "All providers failed | op=%s attempts=%d providers=%s",
            operation,
            attempts_total,
            ",".join(dict.fromkeys(f.provider for f in failures)) or "none",
        )
        raise AllProvidersFailed(operation, failures)
