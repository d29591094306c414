"""Configuration management for the Dailies pipeline.

This module provides centralized configuration for all pipeline components.
All settings are loaded from environment variables with sensible defaults.

Environment Variables:
    Providers (at least one key required):
        GEMINI_API_KEY: Google Gemini API key
        OPENAI_API_KEY: OpenAI API key
        ANTHROPIC_API_KEY: Anthropic API key

    Models (PydanticAI format - provider:model):
        GEMINI_MODEL: Gemini model (default: google-gla:gemini-2.0-flash)
        OPENAI_MODEL: OpenAI model, or openai:<model>@<base_url> for a local server
        ANTHROPIC_MODEL: Anthropic model

    Fallback:
        PRIMARY_PROVIDER: First provider to try (gemini, openai, anthropic)
        FALLBACK_ORDER: Comma-separated providers tried after the primary
        MAX_RETRIES_PER_PROVIDER: Attempts per provider before failing over
        BASE_BACKOFF_MS: Base delay for exponential backoff between attempts
        PROVIDER_TIMEOUT_SECONDS: Timeout for a single provider call

    Classification & Analysis:
        CONFIDENCE_THRESHOLD: Below this, items go to manual review
        FLAGGED_CATEGORY: Category that receives political analysis
        CLASSIFY_MAX_CHARS: Body characters sent for classification
        ANALYZE_MAX_CHARS: Body characters sent for analysis

    Digest:
        DIGEST_WINDOW_HOURS: Window of content eligible for a digest
        DIGEST_TIME: Daily digest time, HH:MM in UTC
        FRESHNESS_HALF_LIFE_HOURS: Half-life of the freshness decay
        DIGEST_MAX_CLUSTERS: Maximum sections per digest
        DIVERSITY_THRESHOLD: Centroid similarity above which clusters share a topic group

    Embeddings:
        EMBEDDING_MODEL: sentence-transformers model used for clustering vectors
        EMBEDDING_BATCH_SIZE: Texts per encode batch

    Clustering:
        CLUSTER_EPSILON, CLUSTER_MIN_POINTS: DBSCAN parameters (cosine distance)
        CLUSTER_TARGET_MIN, CLUSTER_TARGET_MAX: Soft band for the cluster count
        CLUSTER_MAX_ADJUSTMENTS, CLUSTER_EPSILON_STEP: Epsilon adjustment loop
        CLUSTER_AGGREGATION: 'mean' or 'max' member importance

    Output:
        DB_PATH: SQLite database file path
        REPORTS_DIR: Directory for markdown digests
        LOG_DIR: Directory for log files
        MAX_WORKERS: Maximum concurrent item operations

    Notifications:
        NOTIFICATION_WEBHOOK_URL: HTTP endpoint for digest delivery
        ALERTS_FILE: Path for JSONL delivery log

    Optional Features:
        ENABLE_LOGFIRE: Enable Logfire/OpenTelemetry tracing

    Logging:
        LOG_LEVEL: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_BACKUP_COUNT: Number of rotated log files to keep
        LOG_MAX_BYTES: Max log file size in bytes (0 = time-based rotation)
        LOG_FORMAT: Log format ('text' or 'json' for structured logging)
"""

import os
import re
from dataclasses import dataclass, field
from datetime import time
from pathlib import Path

PROVIDER_NAMES = ("gemini", "openai", "anthropic")


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default.

    Args:
        key: Environment variable name
        default: Value to return if not set

    Returns:
        Environment variable value or default
    """
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Args:
        key: Environment variable name
        default: Value to return if not set or invalid

    Returns:
        Parsed integer or default value

    Raises:
        ValueError: If value is set but cannot be parsed as integer
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: '{val}'")


def _env_float(key: str, default: float) -> float:
    """Get float environment variable with default.

    Args:
        key: Environment variable name
        default: Value to return if not set or invalid

    Returns:
        Parsed float or default value

    Raises:
        ValueError: If value is set but cannot be parsed as float
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: '{val}'")


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable with default.

    Recognizes truthy values: '1', 'true', 'yes', 'on'
    Recognizes falsy values: '0', 'false', 'no', 'off'

    Args:
        key: Environment variable name
        default: Value to return if not set or unrecognized

    Returns:
        Parsed boolean or default value
    """
    val = os.environ.get(key, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


def _env_list(key: str, default: list[str]) -> list[str]:
    """Get comma-separated list environment variable (lowercased, blanks dropped)."""
    val = os.environ.get(key)
    if not val:
        return list(default)
    return [part.strip().lower() for part in val.split(",") if part.strip()]


def parse_digest_time(value: str) -> time:
    """Parse 'HH:MM' into a time.

    Raises:
        ValueError: If the value is not a valid 24h time
    """
    match = re.fullmatch(r"(\d{1,2}):(\d{2})", value.strip())
    if not match:
        raise ValueError(f"Invalid DIGEST_TIME '{value}' - expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid DIGEST_TIME '{value}' - expected HH:MM")
    return time(hour, minute)


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    All settings can be overridden via environment variables. Use Config.load()
    to create an instance with values from the environment.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Provider Keys ===
    gemini_api_key: str = ""  # GEMINI_API_KEY
    openai_api_key: str = ""  # OPENAI_API_KEY
    anthropic_api_key: str = ""  # ANTHROPIC_API_KEY

    # === AI Models ===
    # PydanticAI format: provider:model (e.g., 'google-gla:gemini-2.0-flash')
    gemini_model: str = "google-gla:gemini-2.0-flash"  # GEMINI_MODEL
    openai_model: str = "openai:gpt-4o-mini"  # OPENAI_MODEL
    anthropic_model: str = "anthropic:claude-3-5-haiku-latest"  # ANTHROPIC_MODEL

    # === Fallback ===
    primary_provider: str = "gemini"  # PRIMARY_PROVIDER
    fallback_order: list[str] = field(default_factory=lambda: ["openai", "anthropic"])  # FALLBACK_ORDER
    max_retries_per_provider: int = 3  # MAX_RETRIES_PER_PROVIDER - Attempts per provider
    base_backoff_ms: int = 500  # BASE_BACKOFF_MS - Backoff is base * 2^attempt
    provider_timeout_seconds: float = 30.0  # PROVIDER_TIMEOUT_SECONDS

    # === Classification ===
    confidence_threshold: float = 0.7  # CONFIDENCE_THRESHOLD - Below this -> manual_review
    flagged_category: str = "US_Politics_News"  # FLAGGED_CATEGORY
    classify_max_chars: int = 2000  # CLASSIFY_MAX_CHARS
    analyze_max_chars: int = 12000  # ANALYZE_MAX_CHARS

    # === Digest ===
    digest_window_hours: int = 24  # DIGEST_WINDOW_HOURS
    digest_time: str = "07:00"  # DIGEST_TIME - HH:MM UTC
    freshness_half_life_hours: float = 24.0  # FRESHNESS_HALF_LIFE_HOURS
    digest_max_clusters: int = 5  # DIGEST_MAX_CLUSTERS
    diversity_threshold: float = 0.85  # DIVERSITY_THRESHOLD

    # === Embeddings ===
    embedding_model: str = "BAAI/bge-small-en-v1.5"  # EMBEDDING_MODEL
    embedding_batch_size: int = 32  # EMBEDDING_BATCH_SIZE

    # === Clustering ===
    cluster_epsilon: float = 0.35  # CLUSTER_EPSILON - Cosine distance
    cluster_min_points: int = 2  # CLUSTER_MIN_POINTS
    cluster_target_min: int = 3  # CLUSTER_TARGET_MIN
    cluster_target_max: int = 5  # CLUSTER_TARGET_MAX
    cluster_max_adjustments: int = 4  # CLUSTER_MAX_ADJUSTMENTS
    cluster_epsilon_step: float = 0.05  # CLUSTER_EPSILON_STEP
    cluster_aggregation: str = "mean"  # CLUSTER_AGGREGATION - 'mean' or 'max'

    # === Database ===
    db_path: Path = field(default_factory=lambda: Path("dailies.db"))  # DB_PATH

    # === Pipeline Behavior ===
    max_workers: int = 8  # MAX_WORKERS - Concurrent item operations

    # === Notifications ===
    webhook_url: str = ""  # NOTIFICATION_WEBHOOK_URL - POST endpoint for digests
    alerts_file: str = ""  # ALERTS_FILE - JSONL file path for deliveries

    # === Output Directories ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR
    reports_dir: Path = field(default_factory=lambda: Path("reports"))  # REPORTS_DIR

    # === Logging Configuration ===
    log_level: str = "INFO"  # LOG_LEVEL - DEBUG, INFO, WARNING, ERROR
    log_backup_count: int = 30  # LOG_BACKUP_COUNT - Number of rotated logs to keep
    log_max_bytes: int = 0  # LOG_MAX_BYTES - Max file size (0 = time-based rotation)
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json' for structured logging

    # === Optional: Observability ===
    # Requires: pip install logfire
    enable_logfire: bool = False  # ENABLE_LOGFIRE - Enable distributed tracing
    logfire_token: str = ""  # LOGFIRE_TOKEN - Authentication token

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            gemini_api_key=_env("GEMINI_API_KEY"),
            openai_api_key=_env("OPENAI_API_KEY"),
            anthropic_api_key=_env("ANTHROPIC_API_KEY"),
            gemini_model=_env("GEMINI_MODEL", "google-gla:gemini-2.0-flash"),
            openai_model=_env("OPENAI_MODEL", "openai:gpt-4o-mini"),
            anthropic_model=_env("ANTHROPIC_MODEL", "anthropic:claude-3-5-haiku-latest"),
            primary_provider=_env("PRIMARY_PROVIDER", "gemini").lower(),
            fallback_order=_env_list("FALLBACK_ORDER", ["openai", "anthropic"]),
            max_retries_per_provider=_env_int("MAX_RETRIES_PER_PROVIDER", 3),
            base_backoff_ms=_env_int("BASE_BACKOFF_MS", 500),
            provider_timeout_seconds=_env_float("PROVIDER_TIMEOUT_SECONDS", 30.0),
            confidence_threshold=_env_float("CONFIDENCE_THRESHOLD", 0.7),
            flagged_category=_env("FLAGGED_CATEGORY", "US_Politics_News"),
            classify_max_chars=_env_int("CLASSIFY_MAX_CHARS", 2000),
            analyze_max_chars=_env_int("ANALYZE_MAX_CHARS", 12000),
            digest_window_hours=_env_int("DIGEST_WINDOW_HOURS", 24),
            digest_time=_env("DIGEST_TIME", "07:00"),
            freshness_half_life_hours=_env_float("FRESHNESS_HALF_LIFE_HOURS", 24.0),
            digest_max_clusters=_env_int("DIGEST_MAX_CLUSTERS", 5),
            diversity_threshold=_env_float("DIVERSITY_THRESHOLD", 0.85),
            embedding_model=_env("EMBEDDING_MODEL", "BAAI/bge-small-en-v1.5"),
            embedding_batch_size=_env_int("EMBEDDING_BATCH_SIZE", 32),
            cluster_epsilon=_env_float("CLUSTER_EPSILON", 0.35),
            cluster_min_points=_env_int("CLUSTER_MIN_POINTS", 2),
            cluster_target_min=_env_int("CLUSTER_TARGET_MIN", 3),
            cluster_target_max=_env_int("CLUSTER_TARGET_MAX", 5),
            cluster_max_adjustments=_env_int("CLUSTER_MAX_ADJUSTMENTS", 4),
            cluster_epsilon_step=_env_float("CLUSTER_EPSILON_STEP", 0.05),
            cluster_aggregation=_env("CLUSTER_AGGREGATION", "mean").lower(),
            db_path=Path(_env("DB_PATH", "dailies.db")),
            max_workers=_env_int("MAX_WORKERS", 8),
            webhook_url=_env("NOTIFICATION_WEBHOOK_URL"),
            alerts_file=_env("ALERTS_FILE"),
            log_dir=Path(_env("LOG_DIR", "log")),
            reports_dir=Path(_env("REPORTS_DIR", "reports")),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
        )

    @property
    def digest_clock(self) -> time:
        """DIGEST_TIME parsed as a time of day (UTC)."""
        return parse_digest_time(self.digest_time)

    def validate(self) -> str | None:
        """Validate configuration for required fields and valid values.

        Checks:
            - At least one provider key (or a local OpenAI-compatible model) is set
            - Provider names are known
            - Thresholds and windows are in range
            - Numeric values are positive

        Returns:
            Error message string if invalid, None if valid.
        """
        local_openai = self.openai_model.startswith("openai:") and "@" in self.openai_model
        if not (self.gemini_api_key or self.openai_api_key or self.anthropic_api_key or local_openai):
            return "At least one of GEMINI_API_KEY, OPENAI_API_KEY, ANTHROPIC_API_KEY is required"
        if self.primary_provider not in PROVIDER_NAMES:
            return f"Invalid PRIMARY_PROVIDER '{self.primary_provider}' - must be one of {', '.join(PROVIDER_NAMES)}"
        for name in self.fallback_order:
            if name not in PROVIDER_NAMES:
                return f"Invalid FALLBACK_ORDER entry '{name}' - must be one of {', '.join(PROVIDER_NAMES)}"
        if self.max_retries_per_provider <= 0:
            return "MAX_RETRIES_PER_PROVIDER must be positive"
        if self.base_backoff_ms < 0:
            return "BASE_BACKOFF_MS must be non-negative"
        if self.provider_timeout_seconds <= 0:
            return "PROVIDER_TIMEOUT_SECONDS must be positive"
        if not 0.0 <= self.confidence_threshold <= 1.0:
            return "CONFIDENCE_THRESHOLD must be between 0 and 1"
        if self.classify_max_chars <= 0 or self.analyze_max_chars <= 0:
            return "CLASSIFY_MAX_CHARS and ANALYZE_MAX_CHARS must be positive"
        if self.digest_window_hours <= 0 or self.digest_window_hours > 24:
            return "DIGEST_WINDOW_HOURS must be between 1 and 24"
        try:
            parse_digest_time(self.digest_time)
        except ValueError as e:
            return str(e)
        if self.freshness_half_life_hours <= 0:
            return "FRESHNESS_HALF_LIFE_HOURS must be positive"
        if self.digest_max_clusters <= 0:
            return "DIGEST_MAX_CLUSTERS must be positive"
        if not 0.0 < self.diversity_threshold <= 1.0:
            return "DIVERSITY_THRESHOLD must be in (0, 1]"
        if not 0.0 < self.cluster_epsilon < 2.0:
            return "CLUSTER_EPSILON must be in (0, 2)"
        if self.cluster_min_points <= 0:
            return "CLUSTER_MIN_POINTS must be positive"
        if self.cluster_target_min > self.cluster_target_max:
            return "CLUSTER_TARGET_MIN must not exceed CLUSTER_TARGET_MAX"
        if self.cluster_max_adjustments < 0:
            return "CLUSTER_MAX_ADJUSTMENTS must be non-negative"
        if self.cluster_aggregation not in ("mean", "max"):
            return f"Invalid CLUSTER_AGGREGATION '{self.cluster_aggregation}' - must be 'mean' or 'max'"
        if self.embedding_batch_size <= 0:
            return "EMBEDDING_BATCH_SIZE must be positive"
        if self.max_workers <= 0:
            return "MAX_WORKERS must be positive"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None
