# src/signalsink/exporter/__init__.py
"""HTTP delivery of trace, metric and log batches.

Components:
- endpoints: resolve_endpoints() for the global/per-signal endpoint scheme
- encoders: tree -> JSON payload for each signal
- transport: HttpTransport (httpx) issuing one POST per payload
- retry: RetryManager (tenacity backoff) deciding retry vs drop
- queue: DeliveryItem and the bounded, ready-time-ordered DeliveryQueue
- pipeline: SignalPipeline, one queue plus worker pool per signal
- exporter: MonitoringExporter, the ingestion facade
- factory: create_exporter() from settings

Usage:
    from signalsink.exporter import MonitoringExporter, create_exporter
"""

from signalsink.exporter.encoders import encode, encode_logs, encode_metrics, encode_traces
from signalsink.exporter.endpoints import resolve_endpoints
from signalsink.exporter.exporter import MonitoringExporter
from signalsink.exporter.factory import create_exporter
from signalsink.exporter.pipeline import SignalPipeline
from signalsink.exporter.protocols import SignalTreeProtocol, TransportProtocol
from signalsink.exporter.queue import DeliveryItem, DeliveryQueue
from signalsink.exporter.retry import RetryDecision, RetryManager
from signalsink.exporter.transport import HttpTransport

__all__ = [
    "DeliveryItem",
    "DeliveryQueue",
    "HttpTransport",
    "MonitoringExporter",
    "RetryDecision",
    "RetryManager",
    "SignalPipeline",
    "SignalTreeProtocol",
    "TransportProtocol",
    "create_exporter",
    "encode",
    "encode_logs",
    "encode_metrics",
    "encode_traces",
    "resolve_endpoints",
]
