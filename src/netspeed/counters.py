"""Interface byte-counter snapshots and primary-route lookup."""

import logging
import subprocess
import sys
from collections.abc import Iterable

import psutil

from netspeed.models import InterfaceCounters

logger = logging.getLogger(__name__)

LOOPBACK_NAMES = frozenset({"lo", "lo0"})

PROC_ROUTE = "/proc/net/route"
PROC_IPV6_ROUTE = "/proc/net/ipv6_route"


def delta_bytes(prev: int, curr: int) -> int:
    """
    Bytes transferred between two readings of a cumulative counter.

    A decrease means the counter was reset (or wrapped); the new value is
    then taken as the traffic since the reset, never a negative amount.
    """
    if curr >= prev:
        return curr - prev
    return curr


def _is_loopback(name: str, flags: str) -> bool:
    return name in LOOPBACK_NAMES or "loopback" in flags.split(",")


def _is_live(stats) -> bool:
    """Interface is administratively up and, where reported, link-running."""
    if stats is None or not stats.isup:
        return False
    # ``flags`` exists on psutil >= 5.9.3 for Linux and macOS
    flags = getattr(stats, "flags", "")
    if not flags:
        return True
    parts = flags.split(",")
    return "up" in parts and "running" in parts


class CounterSource:
    """
    Reads cumulative per-interface byte counters from the OS.

    Never raises: an OS failure is logged and an empty map returned, so the
    rate engine degrades to zero rates instead of crashing.
    """

    def snapshot(self) -> dict[str, InterfaceCounters]:
        """Capture counters of every live, non-loopback interface."""
        try:
            io_counters = psutil.net_io_counters(pernic=True)
            if_stats = psutil.net_if_stats()
        except (OSError, RuntimeError) as e:
            logger.warning("Interface counter query failed: %s", e)
            return {}

        result: dict[str, InterfaceCounters] = {}
        for name, io in io_counters.items():
            stats = if_stats.get(name)
            if _is_loopback(name, getattr(stats, "flags", "") or ""):
                continue
            if not _is_live(stats):
                continue
            result[name] = InterfaceCounters(
                name=name,
                tx_bytes=int(io.bytes_sent),
                rx_bytes=int(io.bytes_recv),
            )
        return result


def _default_from_proc_route(lines: Iterable[str]) -> str | None:
    """Pick the IPv4 default-route interface with the lowest metric."""
    best: tuple[int, str] | None = None
    for line in lines:
        parts = line.split()
        # Iface Destination Gateway Flags RefCnt Use Metric Mask ...
        if len(parts) < 8 or parts[0] == "Iface":
            continue
        if parts[1] != "00000000" or parts[7] != "00000000":
            continue
        try:
            metric = int(parts[6])
        except ValueError:
            continue
        if best is None or metric < best[0]:
            best = (metric, parts[0])
    return best[1] if best else None


def _default_from_proc_ipv6_route(lines: Iterable[str]) -> str | None:
    """Pick the IPv6 ``::/0`` route interface with the lowest metric."""
    best: tuple[int, str] | None = None
    for line in lines:
        parts = line.split()
        # dest dest_len src src_len next_hop metric refcnt use flags iface
        if len(parts) < 10:
            continue
        if parts[0] != "0" * 32 or parts[1] != "00":
            continue
        name = parts[9]
        if name in LOOPBACK_NAMES:
            continue
        try:
            metric = int(parts[5], 16)
        except ValueError:
            continue
        if best is None or metric < best[0]:
            best = (metric, name)
    return best[1] if best else None


def _read_lines(path: str) -> list[str]:
    try:
        with open(path) as f:
            return f.readlines()
    except OSError:
        return []


def _route_get(args: list[str]) -> str | None:
    """Run ``route -n get`` and return the ``interface:`` value."""
    try:
        proc = subprocess.run(
            ["route", "-n", "get", *args],
            capture_output=True,
            text=True,
            timeout=2.0,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("route lookup failed: %s", e)
        return None

    if proc.returncode != 0:
        return None
    for line in proc.stdout.splitlines():
        line = line.strip()
        if line.startswith("interface:"):
            return line.split(":", 1)[1].strip() or None
    return None


def primary_interface_name() -> str | None:
    """
    Name of the OS's preferred outbound interface, IPv4 first then IPv6.

    Returns None when no default route exists or the lookup fails.
    """
    if sys.platform.startswith("linux"):
        return _default_from_proc_route(_read_lines(PROC_ROUTE)) or _default_from_proc_ipv6_route(
            _read_lines(PROC_IPV6_ROUTE)
        )
    return _route_get(["default"]) or _route_get(["-inet6", "default"])
