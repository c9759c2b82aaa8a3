"""Data models for netspeed."""

from dataclasses import dataclass
from enum import Enum


class Scope(Enum):
    """Which interfaces feed the aggregate rate."""

    PRIMARY = "primary"
    ALL = "all"


class RefreshOutcome(Enum):
    """What a single refresh did to the monitor state."""

    BASELINE = "baseline"  # first snapshot captured, no rate yet
    CLOCK_ANOMALY = "clock_anomaly"  # non-positive elapsed time, state untouched
    NO_SIGNAL = "no_signal"  # zero interfaces matched the scope
    UPDATED = "updated"


@dataclass(slots=True, frozen=True)
class InterfaceCounters:
    """Cumulative byte counters of one interface at one instant."""

    name: str
    tx_bytes: int
    rx_bytes: int


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Raw cumulative per-process counters from the accounting tool."""

    pid: int
    name: str
    rx_bytes: int
    tx_bytes: int


@dataclass(slots=True, frozen=True)
class ProcessUsage:
    """Traffic of one process over the most recent poll interval."""

    pid: int
    name: str
    rx_delta: int
    tx_delta: int

    @property
    def total(self) -> int:
        return self.rx_delta + self.tx_delta


@dataclass(slots=True, frozen=True)
class RateReading:
    """Result of one interface refresh."""

    upload: float  # bytes/s
    download: float  # bytes/s
    outcome: RefreshOutcome
    interfaces: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class ProcessPoll:
    """Top consumers of one poll and the seconds their deltas span."""

    usages: list[ProcessUsage]
    elapsed: float  # 0.0 when the poll only set a baseline
