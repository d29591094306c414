"""Typed failures for the Dailies classification and digest pipeline.

Provider errors are raised by individual provider clients and consumed by the
fallback manager:

    ProviderUnavailable        network error, timeout, 5xx (retried, then fail over)
    ProviderRateLimited        429 (retried, then fail over)
    ProviderMalformedResponse  response failed schema validation (immediate fail over)
    ProviderRejected           any other 4xx (immediate fail over)

Everything the fallback manager cannot recover from surfaces as
AllProvidersFailed. Digest and storage failures have their own types so the
scheduler can report them without crashing the process.
"""

from dataclasses import dataclass


class DailiesError(Exception):
    """Base class for all pipeline errors."""


# === Provider errors ===


class ProviderError(DailiesError):
    """A single provider call failed.

    Attributes:
        provider: Name of the provider that failed
        retryable: Whether the same provider may be attempted again
    """

    retryable: bool = True

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class ProviderUnavailable(ProviderError):
    """Network failure, timeout or server-side error."""


class ProviderRateLimited(ProviderError):
    """Provider refused the call because of rate limiting."""


class ProviderMalformedResponse(ProviderError):
    """Provider answered, but the answer failed schema validation."""

    retryable = False


class ProviderRejected(ProviderError):
    """Provider rejected the request itself (4xx other than 429)."""

    retryable = False


@dataclass(frozen=True)
class ProviderFailure:
    """One failed attempt, kept for the AllProvidersFailed report."""

    provider: str
    attempt: int
    error_type: str
    message: str

    def __str__(self) -> str:
        return f"{self.provider}#{self.attempt}: {self.error_type}: {self.message}"


class AllProvidersFailed(DailiesError):
    """Every configured provider exhausted its attempts."""

    def __init__(self, operation: str, failures: list[ProviderFailure]):
        self.operation = operation
        self.failures = list(failures)
        detail = "; ".join(str(f) for f in self.failures) or "no providers configured"
        super().__init__(f"All providers failed for {operation}: {detail}")

    @property
    def providers_tried(self) -> list[str]:
        """Providers in the order they were attempted (deduplicated)."""
        return list(dict.fromkeys(f.provider for f in self.failures))


# === Content errors ===


class DuplicateContent(DailiesError):
    """Content with the same hash was already captured."""

    def __init__(self, content_hash: str, existing_id: int):
        super().__init__(f"Duplicate content | hash={content_hash[:12]} existing_id={existing_id}")
        self.content_hash = content_hash
        self.existing_id = existing_id


class InvalidStatusTransition(DailiesError):
    """A processing status change would break status monotonicity."""

    def __init__(self, content_id: int | None, current: str, target: str):
        super().__init__(f"Invalid status transition | id={content_id} {current} -> {target}")
        self.content_id = content_id
        self.current = current
        self.target = target


class AnalysisNotPermitted(DailiesError):
    """Political analysis requested for an item that is not accepted flagged content."""


class SummaryNotPermitted(DailiesError):
    """General summary requested for an item that is not completed non-flagged content."""


# === Digest errors ===


class DigestAlreadyExists(DailiesError):
    """A digest for this date exists (or is being generated) and no override was given."""

    def __init__(self, digest_date):
        super().__init__(f"Digest already exists for {digest_date}")
        self.digest_date = digest_date


class DigestPersistenceError(DailiesError):
    """The digest was built but could not be stored."""
