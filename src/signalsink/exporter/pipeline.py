# src/signalsink/exporter/pipeline.py
"""SignalPipeline: one signal's queue, worker pool and retry loop.

Each signal (traces, metrics, logs) runs as an independent pipeline so a
stalled endpoint for one signal never blocks the others.

Per item the workers drive:
    QUEUED -> IN_FLIGHT -> DELIVERED            (2xx)
                        -> QUEUED (with backoff) (retryable, budget left)
                        -> DROPPED               (fatal, budget spent, shutdown)

Thread Safety:
    submit() may be called from any thread. Workers only touch an item
    between get() and the mark_*/requeue call that hands it back, so no
    item is ever owned by two workers. Counters are guarded by _stats_lock
    and every outcome is counted and reported before its slot is released.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping
from typing import Any

import structlog

from signalsink.contracts.config import QueueConfig
from signalsink.contracts.enums import DeliveryState, Signal
from signalsink.contracts.errors import DeliveryDropped, QueueOverflowError
from signalsink.exporter.protocols import TransportProtocol
from signalsink.exporter.queue import DeliveryItem, DeliveryQueue
from signalsink.exporter.retry import RetryDecision, RetryManager

logger = structlog.get_logger(__name__)

DropCallback = Callable[[DeliveryDropped], None]


class SignalPipeline:
    """Delivers encoded batches of one signal to one URL.

    Example:
        pipeline = SignalPipeline(Signal.LOGS, url, QueueConfig(), transport, RetryManager(policy))
        pipeline.start()
        pipeline.submit(body)
        pipeline.begin_shutdown(drain=True)
        pipeline.finish_shutdown(deadline=time.monotonic() + 5.0)
    """

    def __init__(
        self,
        signal: Signal,
        url: str,
        config: QueueConfig,
        transport: TransportProtocol,
        retry: RetryManager,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_drop: DropCallback | None = None,
    ) -> None:
        self._signal = signal
        self._url = url
        self._config = config
        self._transport = transport
        self._retry = retry
        self._clock = clock
        self._on_drop = on_drop
        self._queue = DeliveryQueue(signal, config, clock=clock)
        self._workers: list[threading.Thread] = []

        self._stats_lock = threading.Lock()
        self._enqueued = 0
        self._delivered = 0
        self._retried = 0
        self._dropped = 0
        self._rejected = 0
        self._bytes_sent = 0

    @property
    def signal(self) -> Signal:
        return self._signal

    @property
    def url(self) -> str:
        return self._url

    @property
    def queue(self) -> DeliveryQueue:
        return self._queue

    def start(self) -> None:
        """Start the worker threads. Calling twice is a no-op."""
        if self._workers:
            return
        for index in range(self._config.num_workers):
            worker = threading.Thread(
                target=self._worker_loop,
                name=f"signalsink-{self._signal.value}-{index}",
                daemon=False,
            )
            self._workers.append(worker)
            worker.start()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def submit(self, body: bytes, headers: Mapping[str, str] | None = None) -> None:
        """Admit one encoded batch.

        Raises:
            QueueOverflowError: Rejected by the overflow policy
            QueueClosedError: Pipeline is shutting down
        """
        item = DeliveryItem(
            signal=self._signal,
            url=self._url,
            body=body,
            created_at=self._clock(),
            headers=headers,
        )
        try:
            evicted = self._queue.put(item)
        except QueueOverflowError:
            with self._stats_lock:
                self._rejected += 1
            raise
        with self._stats_lock:
            self._enqueued += 1
        if evicted is not None:
            self._report_drop(evicted, "evicted by drop_oldest overflow policy")

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def _worker_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                break
            try:
                self._attempt(item)
            except Exception as e:
                # Bookkeeping bug: never leave the slot reserved or kill the worker
                logger.error(
                    "Delivery worker failed unexpectedly",
                    signal=self._signal.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if item.state is DeliveryState.IN_FLIGHT:
                    self._report_drop(item, f"worker error: {e}")
                    self._queue.mark_dropped(item)

    def _attempt(self, item: DeliveryItem) -> None:
        try:
            self._transport.deliver(item.url, item.body, item.headers)
        except Exception as e:
            # Everything the transport raises is classified, including bugs,
            # which RetryManager treats as non-retryable
            self._handle_failure(item, e)
            return

        with self._stats_lock:
            self._delivered += 1
            self._bytes_sent += item.byte_count
        logger.debug(
            "Delivery attempt finished",
            signal=self._signal.value,
            url=item.url,
            outcome="delivered",
            bytes=item.byte_count,
            attempt=item.attempts,
        )
        # Counted before the slot release wakes flush()
        self._queue.mark_delivered(item)

    def _handle_failure(self, item: DeliveryItem, error: Exception) -> None:
        item.last_error = str(error)
        status_code = getattr(error, "status_code", None)

        if self._queue.draining:
            self._report_drop(item, "final attempt at shutdown failed", status_code=status_code)
            self._queue.mark_dropped(item)
            return

        elapsed = self._clock() - item.created_at
        attempt = item.attempts
        decision = self._retry.decide(attempts=attempt, elapsed=elapsed, error=error)

        # Once requeued the item may already belong to another worker, so the
        # retry is counted first and taken back if the queue refuses it
        if decision.retry:
            with self._stats_lock:
                self._retried += 1
            if not self._queue.requeue(item, decision.delay):
                with self._stats_lock:
                    self._retried -= 1
                decision = RetryDecision.drop("shutdown in progress")
        if decision.retry:
            logger.warning(
                "Delivery attempt failed, retrying",
                signal=self._signal.value,
                url=item.url,
                outcome="retry",
                bytes=item.byte_count,
                attempt=attempt,
                delay=round(decision.delay, 3),
                status_code=status_code,
                error=str(error),
            )
            return

        self._report_drop(item, decision.reason or "shutdown in progress", status_code=status_code)
        self._queue.mark_dropped(item)

    def _report_drop(self, item: DeliveryItem, reason: str, *, status_code: int | None = None) -> None:
        with self._stats_lock:
            self._dropped += 1
        logger.error(
            "Delivery attempt finished",
            signal=self._signal.value,
            url=item.url,
            outcome="dropped",
            bytes=item.byte_count,
            attempt=item.attempts,
            reason=reason,
            status_code=status_code,
            error=item.last_error,
        )
        if self._on_drop is None:
            return
        record = DeliveryDropped(
            signal=self._signal,
            url=item.url,
            attempts=item.attempts,
            reason=reason,
            byte_count=item.byte_count,
            last_error=item.last_error,
        )
        try:
            self._on_drop(record)
        except Exception as e:
            logger.warning("on_drop callback failed", signal=self._signal.value, error=str(e))

    # ------------------------------------------------------------------
    # Flush & shutdown
    # ------------------------------------------------------------------

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every admitted batch is delivered or dropped.

        Returns:
            True if the pipeline went idle before the timeout
        """
        return self._queue.wait_idle(timeout)

    def begin_shutdown(self, *, drain: bool) -> None:
        """Stop admission; drain (one final attempt each) or discard the queue."""
        self._queue.close_admission()
        if drain:
            self._queue.start_drain()
            return
        for item in self._queue.stop():
            self._report_drop(item, "discarded at shutdown")

    def finish_shutdown(self, deadline: float) -> None:
        """Wait for workers until deadline (time.monotonic), then stop them.

        Items still queued at the deadline are dropped. In-flight requests are
        bounded by the transport timeout and reported when they return.
        """
        for worker in self._workers:
            worker.join(timeout=max(0.0, deadline - time.monotonic()))
        for item in self._queue.stop():
            self._report_drop(item, "shutdown grace period expired")

    def join_workers(self, timeout: float) -> None:
        """Final join after the transport is closed."""
        for worker in self._workers:
            worker.join(timeout=timeout)
            if worker.is_alive():
                logger.error(
                    "Delivery worker did not exit cleanly within timeout",
                    signal=self._signal.value,
                    worker=worker.name,
                )

    @property
    def stats(self) -> dict[str, Any]:
        """Snapshot of delivery counters for this signal.

        Reads are approximately consistent across counters.
        """
        with self._stats_lock:
            snapshot: dict[str, Any] = {
                "enqueued": self._enqueued,
                "delivered": self._delivered,
                "retried": self._retried,
                "dropped": self._dropped,
                "rejected": self._rejected,
                "bytes_sent": self._bytes_sent,
            }
        snapshot["queue_depth"] = self._queue.depth
        snapshot["in_flight"] = self._queue.in_flight
        snapshot["queue_capacity"] = self._queue.capacity
        return snapshot
