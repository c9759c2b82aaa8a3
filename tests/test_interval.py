"""Tests for the adaptive poll interval."""

from netspeed.config import MIB, MonitorConfig
from netspeed.interval import AdaptiveInterval


def test_starts_slow():
    interval = AdaptiveInterval()
    assert not interval.is_fast
    assert interval.seconds == 1.0


def test_rates_inside_band_never_switch():
    """Oscillating between 1.0 and 1.05 MiB/s stays on the slow interval."""
    interval = AdaptiveInterval()

    switches = [interval.observe(rate, 0.0) for rate in [1.0 * MIB, 1.05 * MIB] * 20]

    assert not any(switches)
    assert not interval.is_fast


def test_inside_band_keeps_fast_interval():
    interval = AdaptiveInterval()
    interval.observe(1.2 * MIB, 0.0)

    switches = [interval.observe(0.0, rate) for rate in [1.0 * MIB, 1.05 * MIB] * 20]

    assert not any(switches)
    assert interval.is_fast
    assert interval.seconds == 0.5


def test_switches_once_each_way():
    interval = AdaptiveInterval()
    rates = [0.2, 1.2, 1.3, 1.0, 1.2, 0.95, 0.8, 0.5, 0.85]

    switches = [interval.observe(rate * MIB, 0.0) for rate in rates]

    assert switches.count(True) == 2
    assert switches.index(True) == 1
    assert switches[6] is True
    assert not interval.is_fast


def test_uses_busier_direction():
    interval = AdaptiveInterval()
    assert interval.observe(0.0, 1.1 * MIB)
    assert interval.is_fast


def test_thresholds_are_inclusive():
    interval = AdaptiveInterval()
    assert interval.observe(1.1 * MIB, 0.0)
    assert interval.observe(0.9 * MIB, 0.0)


def test_custom_intervals():
    config = MonitorConfig(fast_interval=0.25, slow_interval=2.0)
    interval = AdaptiveInterval(config)
    interval.observe(5 * MIB, 0.0)

    assert interval.seconds == 0.25

    interval.reset()
    assert interval.seconds == 2.0
