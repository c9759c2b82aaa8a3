"""Per-process rate engine: deltas between accounting snapshots."""

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol

from netspeed.config import MonitorConfig
from netspeed.counters import delta_bytes
from netspeed.models import ProcessPoll, ProcessRecord, ProcessUsage
from netspeed.nettop import NettopSource

logger = logging.getLogger(__name__)


class AccountingSource(Protocol):
    def snapshot(self) -> list[ProcessRecord]: ...


class ProcessRateEngine:
    """
    Tracks cumulative per-process totals and reports the top consumers.

    A pid seen for the first time only establishes its baseline. A pid
    missing from a snapshot is forgotten immediately, so a reused pid never
    inherits the totals of an exited process.

    Every ``reset()`` starts a new session. A poll whose snapshot was taken
    in an earlier session leaves the totals alone and reports nothing.
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        source: AccountingSource | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        config = config or MonitorConfig()
        self._source = source or NettopSource(config)
        self._clock = clock
        self._totals: dict[int, tuple[int, int]] = {}
        self._last_poll_time: float | None = None
        self._session = 0
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Start a fresh observation session."""
        with self._lock:
            self._totals.clear()
            self._last_poll_time = None
            self._session += 1

    def tracked_pids(self) -> set[int]:
        with self._lock:
            return set(self._totals)

    def compute_top_consumers(self, limit: int) -> list[ProcessUsage]:
        """
        Take a snapshot and return at most ``limit`` processes with traffic
        since the previous call, busiest first.
        """
        return self.poll(limit).usages

    def poll(self, limit: int) -> ProcessPoll:
        """Like compute_top_consumers, also reporting the time the deltas span."""
        with self._lock:
            session = self._session
        records = self._source.snapshot()
        now = self._clock()

        usages: list[ProcessUsage] = []
        with self._lock:
            if session != self._session:
                logger.debug("Discarding process snapshot taken before a reset")
                return ProcessPoll(usages=[], elapsed=0.0)

            elapsed = 0.0 if self._last_poll_time is None else now - self._last_poll_time
            self._last_poll_time = now

            seen: set[int] = set()
            for record in records:
                seen.add(record.pid)
                prev = self._totals.get(record.pid)
                if prev is None:
                    rx_delta = tx_delta = 0
                else:
                    rx_delta = delta_bytes(prev[0], record.rx_bytes)
                    tx_delta = delta_bytes(prev[1], record.tx_bytes)
                self._totals[record.pid] = (record.rx_bytes, record.tx_bytes)
                usages.append(
                    ProcessUsage(
                        pid=record.pid,
                        name=record.name,
                        rx_delta=rx_delta,
                        tx_delta=tx_delta,
                    )
                )

            for pid in set(self._totals) - seen:
                del self._totals[pid]

        active = [u for u in usages if u.total > 0]
        # sorted() is stable, ties keep report order
        active = sorted(active, key=lambda u: u.total, reverse=True)
        logger.debug("%d processes reported, %d with traffic", len(records), len(active))
        return ProcessPoll(usages=active[: max(0, limit)], elapsed=elapsed)
