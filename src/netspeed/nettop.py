"""
Per-process traffic accounting via the ``nettop`` tool.

``nettop -P -L 1 -n -x -J bytes_in,bytes_out`` prints one CSV header line and
then one line per process::

    time,,bytes_in,bytes_out,
    12:00:01.123456,Safari.512,1048576,20480,

The second field is ``name.pid`` (the name may itself contain dots, so the
pid is everything after the last one); the byte fields are cumulative since
nettop first saw the process.
"""

import logging
import os
import subprocess
from collections.abc import Iterable

from netspeed.config import MonitorConfig
from netspeed.errors import ParseSkippedError, SourceUnavailableError
from netspeed.models import ProcessRecord

logger = logging.getLogger(__name__)

NETTOP_ARGS = ("-P", "-L", "1", "-n", "-x", "-J", "bytes_in,bytes_out")


def parse_line(line: str) -> ProcessRecord:
    """
    Parse one report line.

    Raises:
        ParseSkippedError: If the line does not match the field layout.
    """
    fields = [f.strip() for f in line.strip().split(",")]
    if len(fields) < 4:
        raise ParseSkippedError(line, "too few fields")

    name, dot, pid_str = fields[1].rpartition(".")
    if not dot or not name:
        raise ParseSkippedError(line, "no name.pid field")
    try:
        pid = int(pid_str)
        rx_bytes = int(fields[2])
        tx_bytes = int(fields[3])
    except ValueError:
        raise ParseSkippedError(line, "non-numeric field") from None
    if pid < 0 or rx_bytes < 0 or tx_bytes < 0:
        raise ParseSkippedError(line, "negative value")

    return ProcessRecord(pid=pid, name=name, rx_bytes=rx_bytes, tx_bytes=tx_bytes)


def parse_report(lines: Iterable[str]) -> list[ProcessRecord]:
    """
    Parse every line of a report, skipping the ones that do not parse.

    Lines for the same pid are summed into one record.
    """
    by_pid: dict[int, ProcessRecord] = {}
    skipped = 0
    for line in lines:
        if not line.strip():
            continue
        try:
            record = parse_line(line)
        except ParseSkippedError as e:
            skipped += 1
            logger.debug("Skipping nettop line: %s", e)
            continue
        seen = by_pid.get(record.pid)
        if seen is not None:
            record = ProcessRecord(
                pid=record.pid,
                name=seen.name,
                rx_bytes=seen.rx_bytes + record.rx_bytes,
                tx_bytes=seen.tx_bytes + record.tx_bytes,
            )
        by_pid[record.pid] = record

    if skipped:
        logger.debug("Skipped %d unparseable nettop lines", skipped)
    return list(by_pid.values())


def resolve_binary(candidates: Iterable[str]) -> str | None:
    """First candidate path that exists and is executable."""
    for path in candidates:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path
    return None


class NettopSource:
    """Takes one per-process snapshot per call by running nettop."""

    def __init__(self, config: MonitorConfig | None = None) -> None:
        self._config = config or MonitorConfig()

    def run(self) -> str:
        """
        Run nettop once and return its stdout.

        Raises:
            SourceUnavailableError: If the tool is missing, times out, or
                exits with an error before printing anything.
        """
        binary = resolve_binary(self._config.nettop_paths)
        if binary is None:
            raise SourceUnavailableError("nettop not found in " + ", ".join(self._config.nettop_paths))

        try:
            proc = subprocess.run(
                [binary, *NETTOP_ARGS],
                capture_output=True,
                text=True,
                timeout=self._config.nettop_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise SourceUnavailableError(f"nettop timed out after {e.timeout}s") from e
        except OSError as e:
            raise SourceUnavailableError(f"nettop failed to start: {e}") from e

        if proc.returncode != 0 and not proc.stdout:
            raise SourceUnavailableError(
                f"nettop exited with {proc.returncode}: {proc.stderr.strip()}"
            )
        return proc.stdout

    def snapshot(self) -> list[ProcessRecord]:
        """Cumulative counters per process; empty if nettop is unavailable."""
        try:
            output = self.run()
        except SourceUnavailableError as e:
            logger.warning("Process accounting unavailable: %s", e)
            return []
        return parse_report(output.splitlines())
