"""
signalsink: Multi-signal telemetry export sink.

Accepts trace, metric and log batches from an instrumentation pipeline and
delivers them as JSON payloads to per-signal HTTP endpoints with bounded
queueing and exponential backoff.
"""

__version__ = "0.1.0"
