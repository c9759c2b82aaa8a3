"""Interface rate engine: counter deltas, smoothing and scope selection."""

import logging
import time
from collections import deque
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol

from netspeed.config import MonitorConfig
from netspeed.counters import CounterSource, delta_bytes, primary_interface_name
from netspeed.models import InterfaceCounters, RateReading, RefreshOutcome, Scope
from netspeed.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)


class SnapshotSource(Protocol):
    def snapshot(self) -> dict[str, InterfaceCounters]: ...


def smoothed(window: deque[float], size: int) -> float:
    """Mean of the most recent ``size`` samples in ``window``."""
    count = min(size, len(window))
    if count == 0:
        return 0.0
    recent = list(window)[-count:]
    return sum(recent) / count


class InterfaceRateEngine:
    """
    Turns successive counter snapshots into smoothed upload/download rates.

    State is guarded by a reader/exclusive-writer lock: ``current_upload`` and
    ``current_download`` never block each other, while ``update`` holds the
    write lock for its whole read-modify-write sequence.
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        source: SnapshotSource | None = None,
        primary_resolver: Callable[[], str | None] = primary_interface_name,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or MonitorConfig()
        self._source = source or CounterSource()
        self._primary_resolver = primary_resolver
        self._clock = clock
        self._lock = ReadWriteLock()
        self._executor: ThreadPoolExecutor | None = None

        self._previous: dict[str, InterfaceCounters] = {}
        self._last_sample_time = 0.0
        self._upload_window: deque[float] = deque(maxlen=self._config.window_capacity)
        self._download_window: deque[float] = deque(maxlen=self._config.window_capacity)
        self._current_upload = 0.0
        self._current_download = 0.0
        self._initialized = False
        self._scope = self._config.scope

    @property
    def scope(self) -> Scope:
        with self._lock.read():
            return self._scope

    def set_scope(self, scope: Scope) -> None:
        """Select which interfaces feed the aggregate from the next refresh on."""
        with self._lock.write():
            if scope is not self._scope:
                logger.info("Interface scope changed to %s", scope.value)
            self._scope = scope

    @property
    def initialized(self) -> bool:
        with self._lock.read():
            return self._initialized

    def current_upload(self) -> float:
        with self._lock.read():
            return self._current_upload

    def current_download(self) -> float:
        with self._lock.read():
            return self._current_download

    def history(self) -> tuple[list[float], list[float]]:
        """Copies of the upload and download sample windows."""
        with self._lock.read():
            return list(self._upload_window), list(self._download_window)

    def reset(self) -> None:
        """Forget all state; the next update captures a new baseline."""
        with self._lock.write():
            self._previous = {}
            self._upload_window.clear()
            self._download_window.clear()
            self._current_upload = 0.0
            self._current_download = 0.0
            self._initialized = False

    def refresh(
        self, on_complete: Callable[[RateReading], None] | None = None
    ) -> Future[RateReading]:
        """
        Compute new rates on the engine's worker thread.

        ``on_complete`` receives the reading once the new state is visible to
        readers. Dropping the returned future has no effect on the update.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="netspeed-refresh")
        return self._executor.submit(self._refresh, on_complete)

    def _refresh(self, on_complete: Callable[[RateReading], None] | None) -> RateReading:
        reading = self.update()
        if on_complete is not None:
            on_complete(reading)
        return reading

    def close(self) -> None:
        """Stop the worker thread, letting a queued refresh finish."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def update(self) -> RateReading:
        """Take a snapshot and fold it into the rate state synchronously."""
        with self._lock.write():
            if not self._initialized:
                self._previous = self._source.snapshot()
                self._last_sample_time = self._clock()
                self._initialized = True
                return RateReading(0.0, 0.0, RefreshOutcome.BASELINE)

            now = self._clock()
            diff = now - self._last_sample_time
            if diff <= 0:
                logger.debug("Skipping refresh: non-positive elapsed time %.6f", diff)
                return RateReading(
                    self._current_upload, self._current_download, RefreshOutcome.CLOCK_ANOMALY
                )

            snapshot = self._source.snapshot()
            matched = self._select(snapshot)

            up_total = 0
            down_total = 0
            for name in matched:
                counters = snapshot[name]
                # an interface seen for the first time only sets its baseline
                prev = self._previous.get(name, counters)
                up_total += delta_bytes(prev.tx_bytes, counters.tx_bytes)
                down_total += delta_bytes(prev.rx_bytes, counters.rx_bytes)

            self._previous = snapshot
            self._last_sample_time = now

            if not matched:
                self._upload_window.clear()
                self._download_window.clear()
                self._current_upload = 0.0
                self._current_download = 0.0
                return RateReading(0.0, 0.0, RefreshOutcome.NO_SIGNAL)

            new_up = max(0.0, up_total / diff)
            new_down = max(0.0, down_total / diff)
            self._upload_window.append(new_up)
            self._download_window.append(new_down)

            self._current_upload = smoothed(self._upload_window, self._window_size(new_up))
            self._current_download = smoothed(self._download_window, self._window_size(new_down))
            return RateReading(
                self._current_upload,
                self._current_download,
                RefreshOutcome.UPDATED,
                tuple(sorted(matched)),
            )

    def _window_size(self, rate: float) -> int:
        if rate >= self._config.high_rate_threshold:
            return self._config.high_rate_window
        return self._config.low_rate_window

    def _select(self, snapshot: dict[str, InterfaceCounters]) -> list[str]:
        """Names of the interfaces in scope."""
        if self._scope is Scope.ALL:
            return list(snapshot)

        primary = self._primary_resolver()
        if primary is not None:
            return [name for name in snapshot if name == primary]
        prefixes = self._config.fallback_prefixes
        return [name for name in snapshot if name.startswith(prefixes)]
