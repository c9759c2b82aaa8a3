"""Shared fakes for netspeed tests."""

import pytest

from netspeed.models import InterfaceCounters, ProcessRecord


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCounterSource:
    """Returns queued interface snapshots, repeating the last one."""

    def __init__(self, *snapshots: dict[str, tuple[int, int]]) -> None:
        self._snapshots = list(snapshots)
        self._last: dict[str, tuple[int, int]] = {}
        self.calls = 0

    def push(self, snapshot: dict[str, tuple[int, int]]) -> None:
        self._snapshots.append(snapshot)

    def snapshot(self) -> dict[str, InterfaceCounters]:
        self.calls += 1
        if self._snapshots:
            self._last = self._snapshots.pop(0)
        return {
            name: InterfaceCounters(name=name, tx_bytes=tx, rx_bytes=rx)
            for name, (tx, rx) in self._last.items()
        }


class FakeAccountingSource:
    """Returns queued process snapshots given as (pid, name, rx, tx) tuples."""

    def __init__(self, *snapshots: list[tuple[int, str, int, int]]) -> None:
        self._snapshots = list(snapshots)
        self.calls = 0

    def push(self, snapshot: list[tuple[int, str, int, int]]) -> None:
        self._snapshots.append(snapshot)

    def snapshot(self) -> list[ProcessRecord]:
        self.calls += 1
        rows = self._snapshots.pop(0) if self._snapshots else []
        return [ProcessRecord(pid=p, name=n, rx_bytes=rx, tx_bytes=tx) for p, n, rx, tx in rows]


@pytest.fixture
def clock():
    return FakeClock()
