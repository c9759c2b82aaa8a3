"""Tests for the netspeed application."""

import pytest

from conftest import FakeAccountingSource, FakeCounterSource
from netspeed.app import (
    DisplayMode,
    NetSpeedApp,
    ProcessTable,
    RateHeader,
    build_parser,
    format_rate,
    rate_cells,
    render_rates,
)
from netspeed.config import MonitorConfig
from netspeed.models import ProcessUsage, RateReading, RefreshOutcome, Scope
from netspeed.processes import ProcessRateEngine
from netspeed.rates import InterfaceRateEngine


def test_format_rate_zero():
    assert format_rate(0) == "0 B/s"
    assert format_rate(-5) == "0 B/s"


def test_format_rate_bytes_and_kilobytes():
    assert format_rate(512) == "512B/s"
    assert format_rate(2048) == "2KB/s"


def test_format_rate_megabytes():
    assert format_rate(1.5 * 1024 * 1024) == "1.50MB/s"


def test_format_rate_gigabytes():
    assert format_rate(3 * 1024**3) == "3.00GB/s"


class TestRenderRates:
    def test_both(self):
        assert render_rates(1024, 2048, DisplayMode.BOTH) == ("↑ 1KB/s", "↓ 2KB/s")

    def test_upload_only(self):
        assert render_rates(1024, 2048, DisplayMode.UPLOAD) == ("↑ 1KB/s", "")

    def test_download_only(self):
        assert render_rates(1024, 2048, DisplayMode.DOWNLOAD) == ("", "↓ 2KB/s")

    def test_total(self):
        assert render_rates(1024, 2048, DisplayMode.TOTAL) == ("⇅ 3KB/s", "")


def test_rate_cells_divide_by_elapsed_time():
    """Test per-process rates use the time the deltas actually span."""
    usage = ProcessUsage(pid=1, name="curl", rx_delta=8000, tx_delta=0)

    assert rate_cells(usage, 4.0) == ("2KB/s", "0 B/s", "2KB/s")
    assert rate_cells(usage, 2.0) == ("4KB/s", "0 B/s", "4KB/s")


def test_rate_cells_zero_elapsed():
    """Test a zero elapsed time never divides by zero."""
    usage = ProcessUsage(pid=1, name="curl", rx_delta=0, tx_delta=0)

    assert rate_cells(usage, 0.0) == ("0 B/s", "0 B/s", "0 B/s")


def test_parser_options():
    args = build_parser().parse_args(["--scope", "all", "--top", "3", "--log-level", "debug"])

    assert args.scope == "all"
    assert args.process_limit == 3
    assert args.log_level == "DEBUG"
    assert not args.headless


def make_app(processes=None):
    config = MonitorConfig(process_interval=0.2)
    engine = InterfaceRateEngine(
        config,
        source=FakeCounterSource({"en0": (0, 0)}),
        primary_resolver=lambda: "en0",
    )
    process_engine = ProcessRateEngine(config, source=processes or FakeAccountingSource())
    return NetSpeedApp(config, interface_engine=engine, process_engine=process_engine)


@pytest.mark.asyncio
async def test_app_creation():
    """Test NetSpeedApp can be instantiated."""
    app = make_app()
    assert app.title == "netspeed"
    assert app.sub_title == "Network Throughput Monitor"


@pytest.mark.asyncio
async def test_app_compose():
    """Test NetSpeedApp composes correctly."""
    app = make_app()
    async with app.run_test() as pilot:
        assert pilot.app.query_one("#rate-header") is not None
        assert pilot.app.query_one("#process-table") is not None
        assert pilot.app.query_one(ProcessTable).display is False
        assert app._monitor.is_running
        await pilot.press("q")


@pytest.mark.asyncio
async def test_app_quit_binding():
    """Test that 'q' binding triggers quit and stops the pollers."""
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.press("q")
        assert not app._monitor.is_running
        assert not app._process_poller.is_running


@pytest.mark.asyncio
async def test_scope_binding():
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.press("s")
        assert app._engine.scope is Scope.ALL
        await pilot.press("s")
        assert app._engine.scope is Scope.PRIMARY
        await pilot.press("q")


@pytest.mark.asyncio
async def test_mode_binding_cycles():
    app = make_app()
    async with app.run_test() as pilot:
        header = pilot.app.query_one("#rate-header", RateHeader)
        assert header.mode is DisplayMode.BOTH

        await pilot.press("m")
        assert header.mode is DisplayMode.UPLOAD

        for _ in range(3):
            await pilot.press("m")
        assert header.mode is DisplayMode.BOTH
        await pilot.press("q")


@pytest.mark.asyncio
async def test_process_view_toggle_starts_and_stops_poller():
    source = FakeAccountingSource(*[[(1, "curl", i * 4096, i * 1024)] for i in range(50)])
    app = make_app(source)
    async with app.run_test() as pilot:
        await pilot.press("p")
        assert pilot.app.query_one(ProcessTable).display is True
        assert app._process_poller.is_running

        await pilot.pause(0.6)
        table = pilot.app.query_one(ProcessTable)
        assert table._current_pids == [1]

        await pilot.press("p")
        assert pilot.app.query_one(ProcessTable).display is False
        assert not app._process_poller.is_running
        await pilot.press("q")


@pytest.mark.asyncio
async def test_header_update():
    """Test that the header renders a reading."""
    app = make_app()
    async with app.run_test() as pilot:
        header = pilot.app.query_one("#rate-header", RateHeader)

        header.update_rates(RateReading(2048.0, 1024.0, RefreshOutcome.UPDATED, ("en0",)), 1.0)

        text = header.render_text()
        assert "↑ 2KB/s" in text
        assert "↓ 1KB/s" in text

        header.update_rates(RateReading(0.0, 0.0, RefreshOutcome.NO_SIGNAL), 1.0)
        assert "no active interface" in header.render_text()
        await pilot.press("q")


@pytest.mark.asyncio
async def test_process_table_update():
    app = make_app()
    async with app.run_test() as pilot:
        table = pilot.app.query_one(ProcessTable)
        table.update_processes(
            [
                ProcessUsage(pid=200, name="ssh", rx_delta=500, tx_delta=500),
                ProcessUsage(pid=100, name="curl", rx_delta=100, tx_delta=0),
            ],
            elapsed=1.0,
        )
        assert table._current_pids == [200, 100]

        table.update_processes([ProcessUsage(pid=100, name="curl", rx_delta=10, tx_delta=0)], 1.0)
        assert table._current_pids == [100]
        await pilot.press("q")


def test_main_rejects_bad_config(tmp_path, capsys):
    from netspeed.app import main

    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(tmp_path / "missing.toml")])

    assert excinfo.value.code == 2
    assert "not found" in capsys.readouterr().err
