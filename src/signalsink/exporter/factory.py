# src/signalsink/exporter/factory.py
"""Factory functions for creating a MonitoringExporter from configuration.

This is the glue between validated settings and the running exporter:
1. Fall back to the default settings when the host supplies none
2. Convert settings to RuntimeExporterConfig (endpoint resolution, fail fast)
3. Start the exporter with its per-signal pipelines

Usage:
    from signalsink.core.config import load_settings
    from signalsink.exporter.factory import create_exporter

    exporter = create_exporter(load_settings(Path("signalsink.yaml")))
"""

from __future__ import annotations

from typing import Any

import structlog

from signalsink.contracts.config import RuntimeExporterConfig
from signalsink.core.config import ExporterSettings, create_default_settings
from signalsink.exporter.exporter import MonitoringExporter

logger = structlog.get_logger(__name__)


def create_exporter(settings: ExporterSettings | None = None, **kwargs: Any) -> MonitoringExporter:
    """Create a started MonitoringExporter.

    Args:
        settings: Validated settings; create_default_settings() when None
        **kwargs: Passed to MonitoringExporter (transport, clock, on_drop)

    Returns:
        Running exporter. Call shutdown() (or use it as a context manager).

    Raises:
        ConfigurationError: If no endpoint resolves for any signal
    """
    if settings is None:
        settings = create_default_settings()
        logger.debug("No exporter settings supplied, using defaults", endpoint=settings.endpoint)
    config = RuntimeExporterConfig.from_settings(settings)
    return MonitoringExporter(config, **kwargs)
