"""Polling loops that drive the rate engines."""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from functools import partial
from queue import Queue
from typing import Any

from netspeed.config import MonitorConfig
from netspeed.interval import AdaptiveInterval
from netspeed.models import ProcessPoll, RateReading
from netspeed.processes import ProcessRateEngine
from netspeed.rates import InterfaceRateEngine

logger = logging.getLogger(__name__)

Dispatch = Callable[..., Any]

# Upper bound on how long the poll loop waits for one refresh.
REFRESH_TIMEOUT = 10.0


def call_inline(callback: Callable[..., Any], *args: Any) -> Any:
    """Default dispatcher: run the callback on the calling thread."""
    return callback(*args)


class InterfacePoller:
    """
    Periodically refreshes an InterfaceRateEngine.

    Runs in a separate daemon thread. Each reading feeds the adaptive
    interval, is pushed to ``update_queue`` if one is given and is handed
    to ``on_reading`` through ``dispatch`` (e.g. ``App.call_from_thread``).
    """

    def __init__(
        self,
        engine: InterfaceRateEngine,
        config: MonitorConfig | None = None,
        update_queue: Queue[RateReading] | None = None,
        on_reading: Callable[[RateReading], None] | None = None,
        dispatch: Dispatch = call_inline,
    ) -> None:
        """
        Initialize the InterfacePoller.

        Args:
            engine: Engine to refresh on every tick.
            config: Interval settings. Defaults to MonitorConfig().
            update_queue: Optional thread-safe queue receiving every reading.
            on_reading: Optional callback receiving every reading.
            dispatch: Runs ``on_reading`` on the consumer's thread.
        """
        self._engine = engine
        self._interval = AdaptiveInterval(config)
        self._queue = update_queue
        self._on_reading = on_reading
        self._dispatch = dispatch
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def engine(self) -> InterfaceRateEngine:
        return self._engine

    @property
    def poll_rate(self) -> float:
        """Current poll interval in seconds."""
        return self._interval.seconds

    @property
    def is_fast(self) -> bool:
        return self._interval.is_fast

    @property
    def is_running(self) -> bool:
        """Check if the poller thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the polling thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="NetSpeedMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the polling thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def poll_once(self) -> RateReading | None:
        """Run one refresh and deliver its reading; None if it failed."""
        future = self._engine.refresh()
        try:
            reading = future.result(timeout=REFRESH_TIMEOUT)
        except FutureTimeoutError:
            logger.warning("Interface refresh did not finish within %.0fs", REFRESH_TIMEOUT)
            return None
        if self._stop_event.is_set():
            return None

        if self._interval.observe(reading.upload, reading.download):
            logger.debug("Poll interval is now %.2fs", self._interval.seconds)
        if self._queue is not None:
            self._queue.put(reading)
        if self._on_reading is not None:
            self._dispatch(self._on_reading, reading)
        return reading

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("Interface poll failed")

            self._stop_event.wait(timeout=self._interval.seconds)


class ProcessPoller:
    """
    Periodically computes the top network consumers while someone watches.

    Ticks that arrive while a poll is still running are dropped, never
    queued. Each ProcessPoll is handed to ``on_result`` through ``dispatch``;
    a result that finishes after ``stop()`` is discarded.
    """

    def __init__(
        self,
        engine: ProcessRateEngine,
        on_result: Callable[[ProcessPoll], None],
        config: MonitorConfig | None = None,
        dispatch: Dispatch = call_inline,
    ) -> None:
        config = config or MonitorConfig()
        self._engine = engine
        self._on_result = on_result
        self._dispatch = dispatch
        self._interval = config.process_interval
        self._limit = config.process_limit
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="netspeed-process")
        self._flag_lock = threading.Lock()
        self._in_flight = False
        self._generation = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def in_flight(self) -> bool:
        with self._flag_lock:
            return self._in_flight

    def start(self) -> None:
        """Begin a fresh observation session and start ticking."""
        if self.is_running:
            return

        self._engine.reset()
        with self._flag_lock:
            self._generation += 1
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._tick_loop,
            daemon=True,
            name="NetSpeedProcesses",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop ticking; a poll still in flight finishes without effect."""
        self._stop_event.set()
        with self._flag_lock:
            self._generation += 1
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def close(self, wait: bool = True) -> None:
        """Stop ticking and shut the worker down."""
        self.stop()
        self._executor.shutdown(wait=wait)

    def tick(self) -> bool:
        """
        Submit one poll to the worker.

        Returns:
            False if the tick was dropped because a poll is in flight.
        """
        with self._flag_lock:
            if self._in_flight:
                logger.debug("Process poll still running, dropping tick")
                return False
            self._in_flight = True
            generation = self._generation

        try:
            future = self._executor.submit(self._engine.poll, self._limit)
        except RuntimeError:
            # executor already shut down
            with self._flag_lock:
                self._in_flight = False
            return False
        future.add_done_callback(partial(self._finish, generation))
        return True

    def _finish(self, generation: int, future: Future[ProcessPoll]) -> None:
        with self._flag_lock:
            self._in_flight = False
            current = generation == self._generation

        try:
            result = future.result()
        except Exception:
            logger.exception("Process poll failed")
            return
        if not current:
            logger.debug("Discarding process poll from a stopped session")
            return
        self._dispatch(self._on_result, result)

    def _tick_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Process tick failed")

            self._stop_event.wait(timeout=self._interval)
