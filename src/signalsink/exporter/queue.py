# src/signalsink/exporter/queue.py
"""Bounded per-signal delivery queue ordered by ready time.

Items are kept in a heap keyed by (ready_at, sequence). The sequence number
is assigned once at admission and kept across retries, so a retried batch
re-enters at its original position relative to its backoff time instead of
behind everything that arrived since.

Capacity counts queued AND in-flight items. A retry re-insert therefore
never needs a free slot and can never overflow.

Key design decisions:
- Workers block in get() until the earliest item is ready; a condition
  variable wakes them on admission, requeue and shutdown
- Overflow handling is fixed by QueueConfig.overflow_policy
- Aggregate logging: overflow warnings every 100 drops (first one included)
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

import structlog

from signalsink.contracts.config import QueueConfig
from signalsink.contracts.enums import DELIVERY_TRANSITIONS, DeliveryState, OverflowPolicy, Signal
from signalsink.contracts.errors import DeliveryStateError, QueueClosedError, QueueOverflowError

logger = structlog.get_logger(__name__)


@dataclass(eq=False, slots=True)
class DeliveryItem:
    """One encoded batch on its way to one endpoint.

    Owned by exactly one DeliveryQueue from admission until it is DELIVERED
    or DROPPED. Only attempts, ready_at, state and last_error ever change.

    Attributes:
        attempts: Delivery attempts started so far
        ready_at: Clock time at which the item may next be attempted
        sequence: Admission order, assigned by the queue
    """

    signal: Signal
    url: str
    body: bytes
    created_at: float
    headers: Mapping[str, str] | None = None
    sequence: int = -1
    attempts: int = 0
    ready_at: float = 0.0
    state: DeliveryState = DeliveryState.QUEUED
    last_error: str | None = field(default=None)

    @property
    def byte_count(self) -> int:
        return len(self.body)

    @property
    def is_terminal(self) -> bool:
        return not DELIVERY_TRANSITIONS[self.state]

    def transition(self, target: DeliveryState) -> None:
        """Move to target state.

        Raises:
            DeliveryStateError: If the transition is not allowed. A dropped
                or delivered item can never move again.
        """
        if target not in DELIVERY_TRANSITIONS[self.state]:
            raise DeliveryStateError(self.state, target)
        self.state = target


class DeliveryQueue:
    """Bounded, ready-time-ordered queue for one signal.

    Thread Safety:
        All state is guarded by one lock. Producers call put(), workers call
        get() and then exactly one of mark_delivered(), mark_dropped() or
        requeue() for every item they received.

    Example:
        queue = DeliveryQueue(Signal.LOGS, QueueConfig(capacity=100))
        queue.put(DeliveryItem(Signal.LOGS, url, body, created_at=time.monotonic()))
        item = queue.get()
        queue.mark_delivered(item)
    """

    # Log aggregate overflow every N drops
    _LOG_INTERVAL = 100

    def __init__(
        self,
        signal: Signal,
        config: QueueConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._signal = signal
        self._config = config
        self._clock = clock
        self._heap: list[tuple[float, int, DeliveryItem]] = []
        self._in_flight = 0
        self._sequence = itertools.count()

        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)
        self._idle = threading.Condition(self._lock)

        self._admission_closed = False
        self._draining = False
        self._stopped = False

        self._overflow_count = 0
        self._last_logged_overflow = 0

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def put(self, item: DeliveryItem) -> DeliveryItem | None:
        """Admit an item, applying the overflow policy when full.

        Returns:
            The item evicted to make room (DROP_OLDEST), otherwise None.
            The evicted item is already DROPPED.

        Raises:
            QueueOverflowError: Queue full under DROP_NEWEST, BLOCK timed out,
                or DROP_OLDEST found nothing queued to evict
            QueueClosedError: Queue no longer admits items
        """
        with self._lock:
            if self._admission_closed:
                raise QueueClosedError(self._signal)

            evicted: DeliveryItem | None = None
            if self._size() >= self._config.capacity:
                policy = self._config.overflow_policy
                if policy is OverflowPolicy.BLOCK:
                    self._wait_for_capacity()
                elif policy is OverflowPolicy.DROP_OLDEST and self._heap:
                    evicted = self._evict_oldest()
                else:
                    self._record_overflow()
                    raise QueueOverflowError(self._signal, self._config.capacity, policy)

            item.sequence = next(self._sequence)
            item.ready_at = self._clock()
            heapq.heappush(self._heap, (item.ready_at, item.sequence, item))
            self._not_empty.notify()
            return evicted

    def _wait_for_capacity(self) -> None:
        """Block until a slot frees up. Caller holds the lock."""
        deadline = time.monotonic() + self._config.enqueue_timeout
        while self._size() >= self._config.capacity:
            if self._admission_closed:
                raise QueueClosedError(self._signal)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._record_overflow()
                logger.error(
                    "Delivery queue put() timed out waiting for capacity",
                    signal=self._signal.value,
                    capacity=self._config.capacity,
                    timeout=self._config.enqueue_timeout,
                )
                raise QueueOverflowError(self._signal, self._config.capacity, OverflowPolicy.BLOCK)
            self._not_full.wait(remaining)

    def _evict_oldest(self) -> DeliveryItem:
        """Drop the earliest-admitted queued item. Caller holds the lock."""
        index = min(range(len(self._heap)), key=lambda i: self._heap[i][1])
        _, _, victim = self._heap[index]
        self._heap[index] = self._heap[-1]
        self._heap.pop()
        heapq.heapify(self._heap)
        victim.transition(DeliveryState.DROPPED)
        self._record_overflow()
        return victim

    def _record_overflow(self) -> None:
        """Count an overflow drop and log in aggregate. Caller holds the lock."""
        self._overflow_count += 1
        if self._overflow_count == 1 or self._overflow_count - self._last_logged_overflow >= self._LOG_INTERVAL:
            logger.warning(
                "Delivery queue overflow - batches dropped",
                signal=self._signal.value,
                dropped_since_last_log=self._overflow_count - self._last_logged_overflow,
                dropped_total=self._overflow_count,
                capacity=self._config.capacity,
                overflow_policy=self._config.overflow_policy.value,
                hint="Consider increasing queue capacity or workers",
            )
            self._last_logged_overflow = self._overflow_count

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def pop_ready(self) -> DeliveryItem | None:
        """Non-blocking pop of the earliest ready item, starting its attempt."""
        with self._lock:
            return self._pop_ready_locked()

    def _pop_ready_locked(self) -> DeliveryItem | None:
        if not self._heap:
            return None
        ready_at = self._heap[0][0]
        if not self._draining and ready_at > self._clock():
            return None
        _, _, item = heapq.heappop(self._heap)
        item.transition(DeliveryState.IN_FLIGHT)
        item.attempts += 1
        self._in_flight += 1
        return item

    def get(self) -> DeliveryItem | None:
        """Block until an item is ready and return it IN_FLIGHT.

        While draining, backoff times are ignored so every queued item gets
        one final attempt.

        Returns:
            The next item, or None once the queue is stopped, or drained and
            empty. A worker receiving None should exit.
        """
        with self._lock:
            while True:
                if self._stopped:
                    return None
                item = self._pop_ready_locked()
                if item is not None:
                    return item
                if self._heap:
                    wait: float | None = max(0.0, self._heap[0][0] - self._clock())
                elif self._draining:
                    return None
                else:
                    wait = None
                self._not_empty.wait(wait)

    def mark_delivered(self, item: DeliveryItem) -> None:
        with self._lock:
            item.transition(DeliveryState.DELIVERED)
            self._release_locked()

    def mark_dropped(self, item: DeliveryItem) -> None:
        with self._lock:
            item.transition(DeliveryState.DROPPED)
            self._release_locked()

    def requeue(self, item: DeliveryItem, delay: float) -> bool:
        """Put an in-flight item back with a future ready time.

        The item keeps its sequence number and its reserved slot.

        Returns:
            False when the queue is draining or stopped; the caller must
            then drop the item instead.
        """
        with self._lock:
            if self._draining or self._stopped:
                return False
            item.transition(DeliveryState.QUEUED)
            item.ready_at = self._clock() + delay
            heapq.heappush(self._heap, (item.ready_at, item.sequence, item))
            self._in_flight -= 1
            self._not_empty.notify()
            return True

    def _release_locked(self) -> None:
        self._in_flight -= 1
        self._not_full.notify()
        if self._size() == 0:
            self._idle.notify_all()
        if self._draining and not self._heap:
            self._not_empty.notify_all()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close_admission(self) -> None:
        """Reject further put() calls and wake blocked producers."""
        with self._lock:
            self._admission_closed = True
            self._not_full.notify_all()

    def start_drain(self) -> None:
        """Make every queued item ready now and stop accepting retries."""
        with self._lock:
            self._draining = True
            self._not_empty.notify_all()

    def discard_remaining(self) -> list[DeliveryItem]:
        """Remove and drop every queued (not in-flight) item."""
        with self._lock:
            return self._discard_locked()

    def _discard_locked(self) -> list[DeliveryItem]:
        discarded = [entry[2] for entry in sorted(self._heap)]
        self._heap.clear()
        for item in discarded:
            item.transition(DeliveryState.DROPPED)
        self._not_full.notify_all()
        if self._in_flight == 0:
            self._idle.notify_all()
        return discarded

    def stop(self) -> list[DeliveryItem]:
        """Stop handing out items and drop whatever is still queued.

        Workers blocked in get() return None, and requeue() is refused from
        here on. In-flight items stay with their workers, which still report
        an outcome for them.
        """
        with self._lock:
            discarded = self._discard_locked()
            self._stopped = True
            self._admission_closed = True
            self._not_empty.notify_all()
            self._not_full.notify_all()
        return discarded

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until nothing is queued or in flight.

        Returns:
            True if the queue became idle, False on timeout
        """
        with self._lock:
            return self._idle.wait_for(lambda: self._size() == 0, timeout)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def _size(self) -> int:
        return len(self._heap) + self._in_flight

    @property
    def signal(self) -> Signal:
        return self._signal

    @property
    def capacity(self) -> int:
        return self._config.capacity

    @property
    def depth(self) -> int:
        """Queued items, excluding in-flight ones."""
        with self._lock:
            return len(self._heap)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def overflow_count(self) -> int:
        """Batches lost to the overflow policy."""
        with self._lock:
            return self._overflow_count

    @property
    def draining(self) -> bool:
        with self._lock:
            return self._draining

    def __len__(self) -> int:
        """Queued plus in-flight items."""
        with self._lock:
            return self._size()
