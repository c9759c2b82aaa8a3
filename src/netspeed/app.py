"""netspeed - Textual front end and command-line entry point."""

import argparse
import logging
import sys
import time
from enum import Enum
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from netspeed.config import DISPLAY_MODES, LOG_LEVELS, MonitorConfig, load_config
from netspeed.errors import ConfigError
from netspeed.models import ProcessPoll, ProcessUsage, RateReading, RefreshOutcome, Scope
from netspeed.monitor import InterfacePoller, ProcessPoller
from netspeed.processes import ProcessRateEngine
from netspeed.rates import InterfaceRateEngine

logger = logging.getLogger(__name__)


class DisplayMode(Enum):
    """Which rates the header shows."""

    BOTH = "both"
    UPLOAD = "upload"
    DOWNLOAD = "download"
    TOTAL = "total"


def format_rate(bytes_per_sec: float) -> str:
    """Format a rate as a human-readable string, 1024 based."""
    if bytes_per_sec <= 0:
        return "0 B/s"

    units = ["B/s", "KB/s", "MB/s", "GB/s"]
    speed = bytes_per_sec
    index = 0
    while speed >= 1024 and index < len(units) - 1:
        speed /= 1024
        index += 1

    if index <= 1:
        return f"{speed:.0f}{units[index]}"
    return f"{speed:.2f}{units[index]}"


def render_rates(upload: float, download: float, mode: DisplayMode) -> tuple[str, str]:
    """The (upper, lower) lines shown for a display mode."""
    if mode is DisplayMode.UPLOAD:
        return f"↑ {format_rate(upload)}", ""
    if mode is DisplayMode.DOWNLOAD:
        return "", f"↓ {format_rate(download)}"
    if mode is DisplayMode.TOTAL:
        return f"⇅ {format_rate(upload + download)}", ""
    return f"↑ {format_rate(upload)}", f"↓ {format_rate(download)}"


def rate_cells(usage: ProcessUsage, elapsed: float) -> tuple[str, str, str]:
    """Formatted down, up and total rates of one process."""
    seconds = max(1e-6, elapsed)
    return (
        format_rate(usage.rx_delta / seconds),
        format_rate(usage.tx_delta / seconds),
        format_rate(usage.total / seconds),
    )


class RateHeader(Static):
    """Header widget showing the current rates."""

    DEFAULT_CSS = """
    RateHeader {
        height: auto;
        min-height: 4;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._upload = 0.0
        self._download = 0.0
        self._outcome: RefreshOutcome | None = None
        self._scope = Scope.PRIMARY
        self._interval = 1.0
        self._mode = DisplayMode.BOTH

    @property
    def mode(self) -> DisplayMode:
        return self._mode

    def set_mode(self, mode: DisplayMode) -> None:
        self._mode = mode
        self._refresh_display()

    def set_scope(self, scope: Scope) -> None:
        self._scope = scope
        self._refresh_display()

    def update_rates(self, reading: RateReading, interval: float) -> None:
        """Update the header from a rate reading."""
        self._upload = reading.upload
        self._download = reading.download
        self._outcome = reading.outcome
        self._interval = interval
        self._refresh_display()

    def on_mount(self) -> None:
        self._refresh_display()

    def _refresh_display(self) -> None:
        self.update(self.render_text())

    def render_text(self) -> str:
        if self._outcome is None or self._outcome is RefreshOutcome.BASELINE:
            return "Measuring..."
        upper, lower = render_rates(self._upload, self._download, self._mode)
        lines = [line for line in (upper, lower) if line] or ["-"]
        status = f"[dim]scope: {self._scope.value}  interval: {self._interval:.1f}s"
        if self._outcome is RefreshOutcome.NO_SIGNAL:
            status += "  no active interface"
        return "\n".join(lines) + "\n" + status + "[/dim]"


class ProcessTable(Container):
    """Container for the per-process traffic table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._current_pids: list[int] = []

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("Process", key="name", width=24)
        table.add_column("Down", key="down", width=12)
        table.add_column("Up", key="up", width=12)
        table.add_column("Total", key="total", width=12)

    def clear_processes(self) -> None:
        self.query_one("#process-table", DataTable).clear()
        self._current_pids = []

    def update_processes(self, usages: list[ProcessUsage], elapsed: float) -> None:
        """
        Replace the table rows with the latest top consumers.

        Rows are rebuilt in order since ranking changes every poll.
        ``elapsed`` is the time the deltas span, which grows past one poll
        interval when ticks were dropped.
        """
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for usage in usages:
            table.add_row(
                str(usage.pid),
                usage.name[:24],
                *rate_cells(usage, elapsed),
                key=str(usage.pid),
            )
        self._current_pids = [usage.pid for usage in usages]


class NetSpeedApp(App):
    """Main netspeed application."""

    TITLE = "netspeed"
    SUB_TITLE = "Network Throughput Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #rate-header {
        dock: top;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("p", "toggle_processes", "Processes"),
        ("s", "toggle_scope", "Scope"),
        ("m", "cycle_mode", "Mode"),
    ]

    def __init__(
        self,
        config: MonitorConfig | None = None,
        interface_engine: InterfaceRateEngine | None = None,
        process_engine: ProcessRateEngine | None = None,
    ) -> None:
        super().__init__()
        self._config = config or MonitorConfig()
        self._update_queue: Queue[RateReading] = Queue()
        self._engine = interface_engine or InterfaceRateEngine(self._config)
        self._monitor = InterfacePoller(self._engine, self._config, update_queue=self._update_queue)
        self._process_engine = process_engine or ProcessRateEngine(self._config)
        self._process_poller = ProcessPoller(
            self._process_engine,
            on_result=self._on_processes,
            config=self._config,
            dispatch=self.call_from_thread,
        )

    def compose(self) -> ComposeResult:
        yield RateHeader(id="rate-header")
        yield ProcessTable(id="process-panel")
        yield Footer()

    def on_mount(self) -> None:
        """Start the interface poller when the app is mounted."""
        header = self.query_one("#rate-header", RateHeader)
        header.set_scope(self._engine.scope)
        header.set_mode(DisplayMode(self._config.display_mode))
        self.query_one(ProcessTable).display = False
        self._monitor.start()
        self.set_interval(0.25, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent reading."""
        reading = None
        while True:
            try:
                reading = self._update_queue.get_nowait()
            except Empty:
                break

        if reading is not None:
            self.query_one("#rate-header", RateHeader).update_rates(reading, self._monitor.poll_rate)

    def _on_processes(self, result: ProcessPoll) -> None:
        panel = self.query_one(ProcessTable)
        if panel.display:
            panel.update_processes(result.usages, result.elapsed)

    def action_toggle_processes(self) -> None:
        """Open or close the per-process detail view."""
        panel = self.query_one(ProcessTable)
        if panel.display:
            self._process_poller.stop()
            panel.display = False
        else:
            panel.clear_processes()
            panel.display = True
            self._process_poller.start()

    def action_toggle_scope(self) -> None:
        new_scope = Scope.ALL if self._engine.scope is Scope.PRIMARY else Scope.PRIMARY
        self._engine.set_scope(new_scope)
        self.query_one("#rate-header", RateHeader).set_scope(new_scope)
        self.notify(f"Scope: {new_scope.value}")

    def action_cycle_mode(self) -> None:
        header = self.query_one("#rate-header", RateHeader)
        modes = list(DisplayMode)
        new_mode = modes[(modes.index(header.mode) + 1) % len(modes)]
        header.set_mode(new_mode)
        self.notify(f"Display: {new_mode.value}")

    def shutdown(self) -> None:
        """Stop both pollers and their workers."""
        # the worker may be blocked handing a result to this thread
        self._process_poller.close(wait=False)
        self._monitor.stop()
        self._engine.close()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self.shutdown()
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="netspeed", description="Network throughput monitor")
    parser.add_argument("--config", default=None, help="Path to a TOML configuration file")
    parser.add_argument("--scope", choices=[s.value for s in Scope], default=None,
                        help="Interfaces to measure (default: primary)")
    parser.add_argument("--display-mode", choices=DISPLAY_MODES, default=None,
                        help="Rates to show (default: both)")
    parser.add_argument("--top", type=int, default=None, dest="process_limit",
                        help="Number of processes in the detail view")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=None, type=str.upper)
    parser.add_argument("--log-file", default=None, help="Write logs to this file")
    parser.add_argument("--headless", action="store_true",
                        help="Print one line per reading instead of the TUI")
    return parser


def run_headless(config: MonitorConfig) -> None:
    """Print readings until interrupted."""
    mode = DisplayMode(config.display_mode)
    engine = InterfaceRateEngine(config)

    def show(reading: RateReading) -> None:
        if reading.outcome is RefreshOutcome.BASELINE:
            return
        print("  ".join(line for line in render_rates(reading.upload, reading.download, mode) if line),
              flush=True)

    poller = InterfacePoller(engine, config, on_reading=show)
    poller.start()
    try:
        while poller.is_running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        poller.stop()
        engine.close()


def main(argv: list[str] | None = None) -> None:
    """Entry point for netspeed."""
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config).with_overrides(
            scope=args.scope,
            display_mode=args.display_mode,
            process_limit=args.process_limit,
            log_level=args.log_level,
        )
    except ConfigError as e:
        print(f"netspeed: {e}", file=sys.stderr)
        sys.exit(2)

    if args.log_file or args.headless:
        logging.basicConfig(
            level=config.log_level.upper(),
            filename=args.log_file,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    if args.headless:
        run_headless(config)
        return

    if not args.log_file:
        logging.getLogger("netspeed").addHandler(logging.NullHandler())
        logging.getLogger("netspeed").propagate = False

    app = NetSpeedApp(config)
    app.run()


if __name__ == "__main__":
    main()
