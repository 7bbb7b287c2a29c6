"""Thread-per-event dispatch with a bounded concurrency gate.

Every accepted ``ChatEvent`` gets its own worker thread.  The worker blocks
on the ``ConcurrencyGate`` before running the handler, so at most
``MAX_IN_FLIGHT`` handlers (and therefore tool invocations) run at once while
the rest wait without being dropped.  Shutdown stops intake and waits on the
``WaitGroup`` until every accepted event has released its slot.
"""

from __future__ import annotations

import itertools
import logging
import signal
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from .config import DEFAULT_DISPATCHER_CONFIG, DispatcherConfig
from .messaging import ChatEvent, MessagingClient

logger = logging.getLogger(__name__)

Handler = Callable[[ChatEvent], None]


class ConcurrencyGate:
    """Counting semaphore with a fixed capacity and usage instrumentation."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._semaphore = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self._in_use = 0
        self._peak_in_use = 0

    def acquire(self, timeout: float | None = None) -> bool:
        if not self._semaphore.acquire(timeout=timeout):
            return False
        with self._lock:
            self._in_use += 1
            self._peak_in_use = max(self._peak_in_use, self._in_use)
        return True

    def release(self) -> None:
        with self._lock:
            if self._in_use == 0:
                raise RuntimeError("ConcurrencyGate released more times than acquired")
            self._in_use -= 1
        self._semaphore.release()

    @property
    def in_use(self) -> int:
        with self._lock:
            return self._in_use

    @property
    def peak_in_use(self) -> int:
        with self._lock:
            return self._peak_in_use

    def __enter__(self) -> ConcurrencyGate:
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


class WaitGroup:
    """Counter of outstanding tasks that can be waited on until it reaches zero."""

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    def add(self, delta: int = 1) -> None:
        with self._cond:
            if self._count + delta < 0:
                raise ValueError("WaitGroup counter cannot go negative")
            self._count += delta
            if self._count == 0:
                self._cond.notify_all()

    def done(self) -> None:
        self.add(-1)

    @property
    def pending(self) -> int:
        with self._cond:
            return self._count

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the counter is zero; False if *timeout* elapsed first."""
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout=timeout)


@dataclass(frozen=True)
class StatsSnapshot:
    processed_messages: int
    start_time: float
    uptime_seconds: float


class BotStats:
    """Processed-message counter and start time, shared by every worker.

    ``threading.Lock`` serializes both reads and writes; the critical sections
    are a single increment or copy.
    """

    def __init__(self, start_time: float | None = None):
        self.start_time = time.time() if start_time is None else start_time
        self._processed_messages = 0
        self._lock = threading.Lock()

    def record_message(self) -> int:
        with self._lock:
            self._processed_messages += 1
            return self._processed_messages

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            processed = self._processed_messages
        return StatsSnapshot(
            processed_messages=processed,
            start_time=self.start_time,
            uptime_seconds=max(0.0, time.time() - self.start_time),
        )


class Dispatcher:
    """Run a handler for each chat event under a bounded concurrency gate.

    Args:
        handler: Called once per accepted event on its worker thread.
        client: Messaging collaborator; disconnected after shutdown drains.
        config: Gate capacity and shutdown timeout.
        stats: Shared counters; a fresh ``BotStats`` when omitted.
    """

    def __init__(
        self,
        handler: Handler,
        client: MessagingClient | None = None,
        config: DispatcherConfig | None = None,
        stats: BotStats | None = None,
    ):
        self.handler = handler
        self.client = client
        self.config = config or DEFAULT_DISPATCHER_CONFIG
        self.stats = stats or BotStats()
        self.gate = ConcurrencyGate(self.config.MAX_IN_FLIGHT)
        self.wait_group = WaitGroup()
        self._state_lock = threading.Lock()
        self._closing = False
        self._disconnected = False
        self._stop_requested = threading.Event()
        self._thread_ids = itertools.count(1)

    @property
    def is_shutting_down(self) -> bool:
        with self._state_lock:
            return self._closing

    def record_message(self) -> int:
        return self.stats.record_message()

    def submit(self, event: ChatEvent) -> bool:
        """Accept *event* and start its worker; False when rejected."""
        if event.is_from_me:
            logger.debug(f"Ignoring own message {event.message_id}")
            return False

        # closing check and wait-group increment happen under one lock
        with self._state_lock:
            if self._closing:
                logger.warning(f"⏹️  Rejecting event {event.message_id}: shutting down")
                return False
            self.wait_group.add()

        self.record_message()
        worker = threading.Thread(
            target=self._work,
            args=(event,),
            name=f"dispatch-{next(self._thread_ids)}",
            daemon=True,
        )
        try:
            worker.start()
        except RuntimeError:
            self.wait_group.done()
            raise
        return True

    def _work(self, event: ChatEvent) -> None:
        try:
            self.gate.acquire()
            try:
                self.handler(event)
            except Exception:
                logger.exception(f"❌ Handler failed for event {event.message_id}")
            finally:
                self.gate.release()
        finally:
            self.wait_group.done()

    def shutdown(self, timeout: float | None = None) -> bool:
        """Stop accepting events and wait for in-flight ones to finish.

        Args:
            timeout: Seconds to wait; defaults to ``SHUTDOWN_TIMEOUT_SECONDS``
                (``None`` waits indefinitely).

        Returns:
            True if every in-flight task finished before the client was closed.
        """
        with self._state_lock:
            self._closing = True
        self._stop_requested.set()

        if timeout is None:
            timeout = self.config.SHUTDOWN_TIMEOUT_SECONDS
        pending = self.wait_group.pending
        if pending:
            logger.info(f"⏳ Waiting for {pending} in-flight task(s)")
        drained = self.wait_group.wait(timeout)
        if not drained:
            logger.warning(
                f"⚠️  Shutdown timed out with {self.wait_group.pending} task(s) still running"
            )

        self._disconnect()
        return drained

    def _disconnect(self) -> None:
        with self._state_lock:
            if self._disconnected or self.client is None:
                return
            self._disconnected = True
        try:
            self.client.disconnect()
        except Exception as e:
            logger.warning(f"⚠️  Messaging client disconnect failed: {e}")
        else:
            logger.info("👋 Messaging client disconnected")

    def request_stop(self) -> None:
        """Wake :meth:`run_until_signal` as if a signal had arrived."""
        self._stop_requested.set()

    def run_until_signal(self, signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)) -> bool:
        """Block until SIGINT/SIGTERM (or :meth:`request_stop`), then shut down.

        Must be called from the main thread; signal handlers are restored on return.
        """

        def _on_signal(signum, frame):
            logger.info(f"🛑 Received {signal.Signals(signum).name}, shutting down")
            self._stop_requested.set()

        previous = {sig: signal.signal(sig, _on_signal) for sig in signals}
        try:
            while not self._stop_requested.wait(0.5):
                pass
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
        return self.shutdown()
