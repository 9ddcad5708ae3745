# src/signalsink/core/config.py
"""
Configuration schema and loading for the signalsink exporter.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction. The delivery workers
never see these models directly; RuntimeExporterConfig.from_settings()
converts them into frozen runtime dataclasses.
"""

import os
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_ENDPOINT = "http://127.0.0.1:8080/ingest"
DEFAULT_TIMEOUT_SECONDS = 5.0


class RetrySettings(BaseModel):
    """Retry and backoff behavior for failed deliveries."""

    model_config = {"frozen": True}

    enabled: bool = Field(default=True, description="Retry retryable failures at all")
    initial_backoff_seconds: float = Field(default=5.0, ge=0, description="Delay after the first failure")
    multiplier: float = Field(default=1.5, ge=1.0, description="Exponential backoff base")
    max_backoff_seconds: float = Field(default=30.0, ge=0, description="Cap on a single delay")
    jitter_seconds: float = Field(default=1.0, ge=0, description="Upper bound of random delay added to each backoff")
    max_attempts: int | None = Field(default=None, gt=0, description="Total tries before dropping (None = unbounded)")
    max_elapsed_seconds: float | None = Field(default=300.0, gt=0, description="Give up once this much time has passed since enqueue")
    retryable_status_codes: list[int] | None = Field(
        default=None,
        description="HTTP statuses worth retrying (None = 408, 429 and all 5xx)",
    )

    @model_validator(mode="after")
    def validate_bounded(self) -> "RetrySettings":
        """An enabled policy must be bounded by attempts or elapsed time."""
        if self.enabled and self.max_attempts is None and self.max_elapsed_seconds is None:
            raise ValueError("retry needs max_attempts or max_elapsed_seconds (unbounded retry is not allowed)")
        return self

    @field_validator("retryable_status_codes")
    @classmethod
    def validate_status_codes(cls, v: list[int] | None) -> list[int] | None:
        if v is None:
            return v
        for code in v:
            if not 100 <= code <= 599:
                raise ValueError(f"invalid HTTP status code {code}")
            if 200 <= code < 300:
                raise ValueError(f"status {code} is a success code and cannot be retried")
        return v


class QueueSettings(BaseModel):
    """Delivery queue for one signal."""

    model_config = {"frozen": True}

    capacity: int = Field(default=1000, gt=0, description="Queued plus in-flight batches")
    overflow_policy: Literal["block", "drop_newest", "drop_oldest"] = Field(
        default="drop_newest",
        description="What to do with a batch when the queue is full",
    )
    num_workers: int = Field(default=2, gt=0, description="Concurrent senders for this signal")
    enqueue_timeout_seconds: float = Field(default=30.0, gt=0, description="How long 'block' waits for capacity")

    @field_validator("overflow_policy", mode="before")
    @classmethod
    def normalize_policy(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.lower().replace("-", "_")
        return v


class SignalQueueSettings(BaseModel):
    """Per-signal queue settings. Signals are independent pipelines."""

    model_config = {"frozen": True}

    traces: QueueSettings = Field(default_factory=QueueSettings)
    metrics: QueueSettings = Field(default_factory=QueueSettings)
    logs: QueueSettings = Field(default_factory=QueueSettings)


class ExporterSettings(BaseModel):
    """Top-level exporter configuration.

    Endpoint precedence per signal: the signal-specific endpoint if set,
    else ``<endpoint>/v1/<signal>``, else the signal has no destination.
    Emptiness of the whole set is checked by RuntimeExporterConfig, not
    here, so the error names every empty input.
    """

    model_config = {"frozen": True}

    endpoint: str | None = Field(default=None, description="Global base endpoint")
    traces_endpoint: str | None = Field(default=None, description="Full traces URL (overrides endpoint)")
    metrics_endpoint: str | None = Field(default=None, description="Full metrics URL (overrides endpoint)")
    logs_endpoint: str | None = Field(default=None, description="Full logs URL (overrides endpoint)")
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0, description="Per-request timeout")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra request headers (override defaults)")
    retry: RetrySettings = Field(default_factory=RetrySettings)
    queues: SignalQueueSettings = Field(default_factory=SignalQueueSettings)
    shutdown_grace_seconds: float = Field(default=5.0, ge=0, description="Time given to in-flight and queued work at shutdown")
    drain_on_shutdown: bool = Field(default=True, description="Give queued batches one final attempt at shutdown")

    @field_validator("headers")
    @classmethod
    def validate_headers(cls, v: dict[str, str]) -> dict[str, str]:
        for name in v:
            if not name or name.strip() != name or ":" in name:
                raise ValueError(f"invalid header name {name!r}")
        return v


def create_default_settings() -> ExporterSettings:
    """Settings used when the host supplies no configuration."""
    return ExporterSettings(endpoint=DEFAULT_ENDPOINT, timeout_seconds=DEFAULT_TIMEOUT_SECONDS)


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Args:
        config: Configuration dict (may contain nested structures)

    Returns:
        New dict with environment variables expanded

    Raises:
        ValueError: If a referenced environment variable is unset and has
            no default
    """

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default = match.group(2)  # None if no default specified
            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            raise ValueError(f"Required environment variable '{var_name}' is not set")

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    """Lowercase setting keys, leaving header names untouched."""
    if isinstance(value, dict):
        return {k.lower(): (v if k.lower() == "headers" else _lower_keys(v)) for k, v in value.items()}
    return value


def load_settings(config_path: Path) -> ExporterSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (SIGNALSINK_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: SIGNALSINK_RETRY__MAX_ATTEMPTS for nested keys.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated ExporterSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
        ValueError: If a referenced environment variable is missing
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="SIGNALSINK",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _lower_keys(raw_config)
    raw_config = _expand_env_vars(raw_config)

    return ExporterSettings(**raw_config)


_REDACTED = "<redacted>"


def resolve_config(settings: ExporterSettings) -> dict[str, Any]:
    """Convert validated settings to a plain dict for display.

    Includes every setting (explicit + defaults). Header values are
    replaced because they commonly carry credentials; header names are kept.

    Args:
        settings: Validated ExporterSettings instance

    Returns:
        JSON/YAML-serializable dict with header values redacted
    """
    config_dict = settings.model_dump(mode="json")
    config_dict["headers"] = {name: _REDACTED for name in config_dict["headers"]}
    return config_dict
