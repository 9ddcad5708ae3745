"""Core infrastructure: configuration loading and logging setup."""

from signalsink.core.config import (
    ExporterSettings,
    QueueSettings,
    RetrySettings,
    SignalQueueSettings,
    create_default_settings,
    load_settings,
    resolve_config,
)
from signalsink.core.logging import configure_logging

__all__ = [
    "ExporterSettings",
    "QueueSettings",
    "RetrySettings",
    "SignalQueueSettings",
    "configure_logging",
    "create_default_settings",
    "load_settings",
    "resolve_config",
]
