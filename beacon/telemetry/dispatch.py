"""Background batching dispatcher, designed for hosts that must never wait.

Key constraints:
- ``enqueue`` is an in-memory append; it never blocks and never raises
- A single daemon worker batches entries and hands them to the transport
- ``flush`` is the only call that waits, and only up to its timeout
- Nothing happens at all when consent is not given
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Optional

from beacon.telemetry.consent import ConsentGate
from beacon.telemetry.models import DispatchQueueEntry, TelemetryEvent
from beacon.telemetry.transport import Transport

logger = logging.getLogger("beacon.telemetry.dispatch")

# Put on the queue to wake the worker early; never exported.
_WAKE = object()


@dataclass
class DispatchStats:
    enqueued: int = 0
    sent: int = 0
    dropped: int = 0
    failed: int = 0


class Dispatcher:
    """Hands shaped events to a transport from a background thread."""

    def __init__(
        self,
        transport: Optional[Transport],
        consent: ConsentGate,
        max_queue_size: int = 2048,
        max_batch_size: int = 50,
        schedule_delay: float = 1.0,
    ):
        self._transport = transport
        self._consent = consent
        self._max_batch_size = max(1, max_batch_size)
        self._schedule_delay = schedule_delay
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, max_queue_size))

        self._stats = DispatchStats()
        self._cond = threading.Condition()
        self._pending = 0
        self._flushing = threading.Event()
        self._closed = False
        self._worker: Optional[threading.Thread] = None

        if transport is not None and consent.is_enabled():
            self._worker = threading.Thread(target=self._run, name="beacon-dispatch", daemon=True)
            self._worker.start()

    @property
    def stats(self) -> DispatchStats:
        return self._stats

    @property
    def active(self) -> bool:
        return self._worker is not None and not self._closed

    def enqueue(self, event: TelemetryEvent) -> None:
        """Queue an event for transmission. Fire-and-forget."""
        if not self._consent.is_enabled() or not self.active:
            return
        entry = DispatchQueueEntry(event)
        with self._cond:
            if self._closed:
                return
            try:
                self._queue.put_nowait(entry)
            except queue.Full:
                self._stats.dropped += 1
                logger.debug("Telemetry queue full, dropping %s", event.name)
                return
            self._pending += 1
            self._stats.enqueued += 1

    def flush(self, timeout: float = 3.0) -> bool:
        """Drain the queue for at most ``timeout`` seconds, then shut down.

        Returns True if everything queued was handed to the transport.
        Whatever is still queued when the time runs out is abandoned.
        """
        if self._worker is None or self._closed:
            return True

        deadline = time.monotonic() + max(0.0, timeout)
        self._flushing.set()
        self._wake()
        with self._cond:
            drained = self._cond.wait_for(lambda: self._pending == 0, timeout=max(0.0, timeout))
            self._closed = True
        self._wake()

        if not drained:
            logger.debug("Telemetry flush timed out with %d events pending", self._pending)

        remaining = max(0.0, deadline - time.monotonic())
        try:
            self._transport.close(remaining)
        except Exception:
            logger.debug("Telemetry transport failed to close", exc_info=True)
        return drained

    def _wake(self) -> None:
        try:
            self._queue.put_nowait(_WAKE)
        except queue.Full:
            pass

    def _next_batch(self) -> list[DispatchQueueEntry]:
        try:
            first = self._queue.get(timeout=self._schedule_delay)
        except queue.Empty:
            return []

        batch = [] if first is _WAKE else [first]
        deadline = time.monotonic() + self._schedule_delay
        while len(batch) < self._max_batch_size:
            if self._flushing.is_set() or self._closed:
                wait = 0.0
            else:
                wait = deadline - time.monotonic()
            try:
                item = self._queue.get(timeout=wait) if wait > 0 else self._queue.get_nowait()
            except queue.Empty:
                break
            if item is not _WAKE:
                batch.append(item)
        return batch

    def _run(self) -> None:
        while not self._closed:
            batch = self._next_batch()
            if batch:
                self._export(batch)

    def _export(self, batch: list[DispatchQueueEntry]) -> None:
        try:
            self._transport.send(batch)
            self._stats.sent += len(batch)
        except Exception:
            self._stats.failed += len(batch)
            logger.debug("Failed to send %d telemetry events", len(batch), exc_info=True)
        finally:
            with self._cond:
                self._pending -= len(batch)
                self._cond.notify_all()
