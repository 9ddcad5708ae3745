# tests/conftest.py
"""Shared test fixtures.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Iterator

import pytest
from hypothesis import Phase, Verbosity, settings

from signalsink.contracts.config import RuntimeExporterConfig
from tests.helpers.builders import make_runtime_config

# =============================================================================
# MonitoringExporter Cleanup Fixture (Thread Leak Prevention)
# =============================================================================


@pytest.fixture(autouse=True)
def _auto_shutdown_exporters() -> Iterator[None]:
    """Shut down every MonitoringExporter created during a test.

    Each exporter starts non-daemon worker threads. A test that forgets
    shutdown() would otherwise keep pytest from exiting.
    """
    from signalsink.exporter.exporter import MonitoringExporter

    created: list[MonitoringExporter] = []
    original_init = MonitoringExporter.__init__

    def tracking_init(self: MonitoringExporter, *args, **kwargs) -> None:
        original_init(self, *args, **kwargs)
        created.append(self)

    MonitoringExporter.__init__ = tracking_init  # type: ignore[method-assign]
    try:
        yield
    finally:
        MonitoringExporter.__init__ = original_init  # type: ignore[method-assign]
        for exporter in created:
            exporter.shutdown(grace=0.5)


@pytest.fixture
def runtime_config() -> RuntimeExporterConfig:
    return make_runtime_config()


# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
