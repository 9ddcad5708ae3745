# src/signalsink/exporter/exporter.py
"""MonitoringExporter: the ingestion surface exposed to the host pipeline.

Three entry points, one per signal, each encode one telemetry tree and
enqueue it. They return as soon as the batch is admitted; delivery is
asynchronous. Under the "block" overflow policy admission itself waits for
queue capacity, which gives the host synchronous backpressure.

Only EncodingError and QueueOverflowError reach the caller. Delivery-time
failures are visible through logs, health_metrics and the on_drop callback;
a remote outage never raises into the host pipeline.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping
from types import TracebackType
from typing import TYPE_CHECKING, Any

import structlog

from signalsink.contracts.config import RuntimeExporterConfig
from signalsink.contracts.enums import Signal
from signalsink.contracts.errors import EncodingError, QueueClosedError
from signalsink.contracts.telemetry import LogData, MetricData, TraceData
from signalsink.exporter.encoders import encode
from signalsink.exporter.pipeline import DropCallback, SignalPipeline
from signalsink.exporter.protocols import SignalTreeProtocol, TransportProtocol
from signalsink.exporter.retry import RetryManager
from signalsink.exporter.transport import HttpTransport

if TYPE_CHECKING:
    from signalsink.core.config import ExporterSettings

logger = structlog.get_logger(__name__)

# How long workers get to return after the transport is closed
_FINAL_JOIN_TIMEOUT = 1.0


class MonitoringExporter:
    """Multi-signal HTTP export sink.

    Construction resolves nothing itself: RuntimeExporterConfig already
    holds the resolved EndpointSet. One SignalPipeline (queue + workers) is
    started per signal that has an endpoint; signals without one are
    accepted and silently discarded.

    Example:
        >>> config = RuntimeExporterConfig.from_settings(settings)
        >>> with MonitoringExporter(config) as exporter:
        ...     exporter.export_logs(log_data)
        ...     exporter.flush(timeout=10.0)
    """

    def __init__(
        self,
        config: RuntimeExporterConfig,
        *,
        transport: TransportProtocol | None = None,
        clock: Callable[[], float] = time.monotonic,
        on_drop: DropCallback | None = None,
    ) -> None:
        """Initialize and start the delivery pipelines.

        Args:
            config: Resolved runtime configuration
            transport: Transport shared by all pipelines; an HttpTransport
                built from config when omitted
            clock: Monotonic clock used for backoff scheduling
            on_drop: Called with a DeliveryDropped record for every batch
                that is permanently discarded
        """
        self._config = config
        self._transport: TransportProtocol = transport or HttpTransport(timeout=config.timeout, headers=config.headers)
        self._retry = RetryManager(config.retry)

        self._shutdown_lock = threading.Lock()
        self._shutdown = False
        self._ignored_after_shutdown = 0

        self._pipelines: dict[Signal, SignalPipeline] = {}
        for signal in config.endpoints.configured_signals():
            url = config.endpoints.for_signal(signal)
            assert url is not None  # configured_signals() only yields resolved URLs
            self._pipelines[signal] = SignalPipeline(
                signal,
                url,
                config.queue_for(signal),
                self._transport,
                self._retry,
                clock=clock,
                on_drop=on_drop,
            )
        for pipeline in self._pipelines.values():
            pipeline.start()

        logger.info(
            "Monitoring exporter started",
            traces_url=config.endpoints.traces,
            metrics_url=config.endpoints.metrics,
            logs_url=config.endpoints.logs,
            timeout=config.timeout,
            headers_count=len(config.headers),
        )

    @classmethod
    def from_settings(cls, settings: ExporterSettings, **kwargs: Any) -> MonitoringExporter:
        """Build from ExporterSettings.

        Raises:
            ConfigurationError: If no endpoint resolves
        """
        return cls(RuntimeExporterConfig.from_settings(settings), **kwargs)

    @property
    def config(self) -> RuntimeExporterConfig:
        return self._config

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def export_traces(self, data: TraceData | SignalTreeProtocol[Any], *, headers: Mapping[str, str] | None = None) -> None:
        """Encode and enqueue one trace batch.

        Raises:
            EncodingError: The tree could not be encoded
            QueueOverflowError: The traces queue rejected the batch
        """
        self._export(Signal.TRACES, data, headers)

    def export_metrics(self, data: MetricData | SignalTreeProtocol[Any], *, headers: Mapping[str, str] | None = None) -> None:
        """Encode and enqueue one metric batch.

        Raises:
            EncodingError: The tree could not be encoded
            QueueOverflowError: The metrics queue rejected the batch
        """
        self._export(Signal.METRICS, data, headers)

    def export_logs(self, data: LogData | SignalTreeProtocol[Any], *, headers: Mapping[str, str] | None = None) -> None:
        """Encode and enqueue one log batch.

        Raises:
            EncodingError: The tree could not be encoded
            QueueOverflowError: The logs queue rejected the batch
        """
        self._export(Signal.LOGS, data, headers)

    def _export(self, signal: Signal, data: SignalTreeProtocol[Any], headers: Mapping[str, str] | None) -> None:
        if self._shutdown:
            self._ignore_after_shutdown(signal)
            return

        pipeline = self._pipelines.get(signal)
        if pipeline is None:
            logger.debug("No endpoint for signal, batch discarded", signal=signal.value)
            return

        try:
            body = encode(signal, data)
        except EncodingError as e:
            logger.error("Failed to encode batch", signal=signal.value, error=e.message)
            raise

        try:
            pipeline.submit(body, headers)
        except QueueClosedError:
            # Lost the race with shutdown()
            self._ignore_after_shutdown(signal)

    def _ignore_after_shutdown(self, signal: Signal) -> None:
        with self._shutdown_lock:
            self._ignored_after_shutdown += 1
        logger.warning("Exporter is shut down, batch ignored", signal=signal.value)

    # ------------------------------------------------------------------
    # Flush & shutdown
    # ------------------------------------------------------------------

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every admitted batch is delivered or dropped.

        Args:
            timeout: Overall limit in seconds; None waits indefinitely

        Returns:
            True if all pipelines went idle in time
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        idle = True
        for pipeline in self._pipelines.values():
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            idle = pipeline.flush(remaining) and idle
        return idle

    def shutdown(self, grace: float | None = None) -> None:
        """Stop accepting batches and wind down delivery.

        Shutdown Sequence:
        1. Reject new batches on every pipeline
        2. Drain (one final attempt per queued batch) or discard, per config
        3. Wait for workers until the grace period ends; drop leftovers
        4. Close the transport, aborting stragglers, and join workers

        Idempotent: later calls return immediately.

        Args:
            grace: Seconds allowed for steps 2-3; defaults to config.shutdown_grace
        """
        with self._shutdown_lock:
            if self._shutdown:
                return
            self._shutdown = True

        grace = self._config.shutdown_grace if grace is None else grace
        deadline = time.monotonic() + grace

        for pipeline in self._pipelines.values():
            pipeline.begin_shutdown(drain=self._config.drain_on_shutdown)
        for pipeline in self._pipelines.values():
            pipeline.finish_shutdown(deadline)

        try:
            self._transport.close()
        except Exception as e:
            logger.warning("Transport close failed", error=str(e))

        for pipeline in self._pipelines.values():
            pipeline.join_workers(_FINAL_JOIN_TIMEOUT)

        logger.info("Monitoring exporter shut down", **self.health_metrics)

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown

    @property
    def health_metrics(self) -> dict[str, Any]:
        """Per-signal delivery counters plus exporter-level counts.

        Returns:
            {"traces": {...}, "metrics": {...}, "logs": {...},
             "ignored_after_shutdown": int}. Signals without an endpoint
            are omitted.
        """
        metrics: dict[str, Any] = {signal.value: pipeline.stats for signal, pipeline in self._pipelines.items()}
        with self._shutdown_lock:
            metrics["ignored_after_shutdown"] = self._ignored_after_shutdown
        return metrics

    def __enter__(self) -> MonitoringExporter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.shutdown()
