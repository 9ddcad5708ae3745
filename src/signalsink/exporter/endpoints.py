# src/signalsink/exporter/endpoints.py
"""Per-signal endpoint resolution.

A signal-specific endpoint is used verbatim (after trimming whitespace).
Otherwise a global base endpoint yields ``<base without trailing />/v1/<signal>``.
Otherwise the signal has no destination and its batches are dropped at the
transport boundary. If no signal resolves, construction fails.

Every resolved URL must be an absolute http(s) URL with a host.
"""

from __future__ import annotations

import httpx

from signalsink.contracts.config import EndpointSet
from signalsink.contracts.enums import Signal
from signalsink.contracts.errors import ConfigurationError

_ALLOWED_SCHEMES = frozenset({"http", "https"})


def _clean(value: str | None) -> str:
    return value.strip() if value else ""


def derive_signal_url(base: str, signal: Signal) -> str:
    """Append the conventional ``/v1/<signal>`` path to a base endpoint."""
    return f"{base.rstrip('/')}/v1/{signal.value}"


def _validate_url(name: str, url: str) -> None:
    """Reject anything httpx could not send to.

    Raises:
        ConfigurationError: If url has no http(s) scheme or no host
    """
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"{name}: invalid URL {url!r}: {e}") from e
    if parsed.scheme not in _ALLOWED_SCHEMES or not parsed.host:
        raise ConfigurationError(f"{name}: {url!r} is not an absolute http(s) URL")


def resolve_endpoints(
    *,
    endpoint: str | None = None,
    traces_endpoint: str | None = None,
    metrics_endpoint: str | None = None,
    logs_endpoint: str | None = None,
) -> EndpointSet:
    """Compute the effective traces/metrics/logs URLs.

    Args:
        endpoint: Optional global base endpoint
        traces_endpoint: Optional full traces URL
        metrics_endpoint: Optional full metrics URL
        logs_endpoint: Optional full logs URL

    Returns:
        EndpointSet with None for signals that have no destination

    Raises:
        ConfigurationError: If none of the three signals resolves (the
            message and ``empty_inputs`` name every empty input), or if a
            resolved URL is not an absolute http(s) URL.
    """
    # A base of only slashes counts as empty
    base = _clean(endpoint).rstrip("/")
    specific = {
        Signal.TRACES: ("traces_endpoint", _clean(traces_endpoint)),
        Signal.METRICS: ("metrics_endpoint", _clean(metrics_endpoint)),
        Signal.LOGS: ("logs_endpoint", _clean(logs_endpoint)),
    }

    resolved: dict[Signal, str | None] = {}
    for signal, (name, url) in specific.items():
        if url:
            _validate_url(name, url)
            resolved[signal] = url
        elif base:
            derived = derive_signal_url(base, signal)
            _validate_url("endpoint", derived)
            resolved[signal] = derived
        else:
            resolved[signal] = None

    if all(url is None for url in resolved.values()):
        empty = ("endpoint", "traces_endpoint", "metrics_endpoint", "logs_endpoint")
        raise ConfigurationError(
            f"missing endpoints: {', '.join(empty)} are all empty (set a specific *_endpoint or a global endpoint)",
            empty_inputs=empty,
        )

    return EndpointSet(
        traces=resolved[Signal.TRACES],
        metrics=resolved[Signal.METRICS],
        logs=resolved[Signal.LOGS],
    )
