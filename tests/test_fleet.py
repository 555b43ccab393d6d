import asyncio

import pytest

from conftest import HEALTHY_OUTPUTS, FakeConnection, FakeExecutor, probe_result
from fleet_monitor.errors import HostNotFoundError
from fleet_monitor.models.alerts import AlertCategory, AlertLevel
from fleet_monitor.services.fleet import FleetMonitor
from fleet_monitor.services.telemetry_collector import CPU_USAGE_COMMAND


def _busy_outputs():
    outputs = dict(HEALTHY_OUTPUTS)
    outputs[CPU_USAGE_COMMAND] = "95.0"
    return outputs


def test_unknown_host_raises(settings):
    monitor = FleetMonitor(settings, executor=FakeExecutor())

    with pytest.raises(HostNotFoundError):
        monitor.get_host_detail("nope")
    with pytest.raises(HostNotFoundError):
        asyncio.run(monitor.execute_command("nope", "uptime"))
    with pytest.raises(HostNotFoundError):
        monitor.get_alerts("nope")


def test_execute_command_records_history(settings):
    monitor = FleetMonitor(settings, executor=FakeExecutor({"hostname": "web01"}))

    result = asyncio.run(monitor.execute_command("web", "hostname"))

    assert result.success is True
    assert result.stdout == "web01"
    history = monitor.get_command_history()
    assert len(history) == 1
    entry = history[0]
    assert entry.host_id == "web"
    assert entry.host_name == "Web Server"
    assert entry.command == "hostname"
    assert entry.result == result


def test_execute_command_transport_failure_is_recorded(settings):
    monitor = FleetMonitor(settings, executor=FakeExecutor(unreachable={"db"}))

    result = asyncio.run(monitor.execute_command("db", "uptime"))

    assert result.success is False
    assert result.exit_code is None
    assert "ECONNREFUSED" in result.error
    assert monitor.get_command_history(host_id="db")[0].result.error == result.error


def test_execute_script_stops_at_first_failure(settings):
    executor = FakeExecutor({}, exit_codes={"false": 1})
    monitor = FleetMonitor(settings, executor=executor)

    script = asyncio.run(monitor.execute_script("web", ["true", "false", "reboot"]))

    assert script.success is False
    assert [step.command for step in script.results] == ["true", "false"]
    assert script.results[1].result.exit_code == 1
    assert [c for _, c in executor.calls] == ["true", "false"]
    assert [e.command for e in monitor.get_command_history()] == ["false", "true"]


def test_execute_script_success(settings):
    monitor = FleetMonitor(settings, executor=FakeExecutor({}))

    script = asyncio.run(monitor.execute_script("web", ["true", "true"]))

    assert script.success is True
    assert len(script.results) == 2


def test_probe_results_publish_ping_updates_and_status_changes(settings):
    async def scenario():
        monitor = FleetMonitor(settings, executor=FakeExecutor())
        await monitor.hub.start()
        conn = FakeConnection()
        await monitor.hub.connect(conn)

        monitor.on_probe_result(probe_result("web", alive=True))
        monitor.on_probe_result(probe_result("web", alive=True, seconds=1))
        monitor.on_probe_result(probe_result("web", alive=False, seconds=2))
        await monitor.hub.drain()
        await monitor.hub.stop()
        return conn

    conn = asyncio.run(scenario())

    assert conn.types() == [
        "connected",
        "ping_update",
        "ping_update",
        "ping_update",
        "status_change",
    ]
    change = conn.messages[-1]["data"]
    assert change == {"host_id": "web", "status": "offline", "previous": "online"}


def test_telemetry_pass_publishes_stats_and_alerts(settings):
    async def scenario():
        monitor = FleetMonitor(settings, executor=FakeExecutor(_busy_outputs(), unreachable={"db"}))
        await monitor.hub.start()
        conn = FakeConnection()
        subscriber = await monitor.hub.connect(conn)
        await monitor.hub.handle_message(subscriber, '{"action": "subscribe", "host_id": "web"}')

        outcomes = await monitor.run_telemetry_pass()
        await monitor.hub.drain()
        await monitor.hub.stop()
        return monitor, outcomes, conn

    monitor, outcomes, conn = asyncio.run(scenario())

    assert {o.host_id: o.success for o in outcomes} == {"web": True, "db": False}
    assert conn.types() == ["connected", "stats_update", "alert"]
    assert conn.messages[1]["data"]["host_id"] == "web"
    alert = conn.messages[2]["data"]
    assert alert["host_id"] == "web"
    assert alert["type"] == "critical"
    assert alert["category"] == "cpu"
    assert monitor.get_latest_stats("db") is None


def test_overview_reflects_latest_state(settings):
    monitor = FleetMonitor(settings, executor=FakeExecutor(_busy_outputs()))
    monitor.probes.record(probe_result("web", latency_ms=20.0))
    monitor.probes.record(probe_result("web", latency_ms=40.0, seconds=1))
    asyncio.run(monitor.collector.collect(monitor.get_host("web")))

    rows = {row.host_id: row for row in monitor.get_overview()}

    web = rows["web"]
    assert web.health == 70
    assert web.cpu == 95.0
    assert web.memory == 50.0
    assert web.disk == 50.0
    assert web.ping == 40.0
    assert web.ping_avg == 30.0
    assert web.alive is True
    assert web.alerts == 1
    assert web.critical_alerts == 1

    db = rows["db"]
    assert db.health == 0
    assert db.ping is None
    assert db.alive is False
    assert db.last_update is None


def test_alerts_follow_threshold_updates(settings):
    monitor = FleetMonitor(settings, executor=FakeExecutor())
    asyncio.run(monitor.collector.collect(monitor.get_host("web")))
    assert monitor.get_alerts("web") == []

    monitor.set_threshold("cpu", "warning", 10)

    alerts = monitor.get_alerts()
    assert len(alerts) == 1
    assert alerts[0].host_name == "Web Server"
    assert alerts[0].category is AlertCategory.CPU
    assert alerts[0].type is AlertLevel.WARNING
    assert monitor.get_thresholds().cpu.warning == 10


def test_host_detail_and_list(settings):
    monitor = FleetMonitor(settings, executor=FakeExecutor())
    asyncio.run(monitor.collector.collect(monitor.get_host("web")))

    detail = monitor.get_host_detail("web")
    assert detail.host.id == "web"
    assert detail.stats.success is True
    assert detail.probe.total_samples == 0
    assert detail.alerts == []

    summaries = {s.id: s for s in monitor.list_hosts()}
    assert summaries["web"].health == 100
    assert summaries["web"].last_update is not None
    assert summaries["db"].health == 0
    assert summaries["db"].tags == ["database"]


def test_start_and_stop_run_both_loops(settings, monkeypatch):
    async def scenario():
        monitor = FleetMonitor(settings, executor=FakeExecutor())

        async def fake_ping(host):
            return probe_result(host.id)

        monkeypatch.setattr(monitor.probes, "_ping", fake_ping)
        await monitor.start()
        for _ in range(50):
            if monitor.get_latest_stats("db") is not None:
                break
            await asyncio.sleep(0.01)
        await monitor.stop()
        return monitor

    monitor = asyncio.run(scenario())

    assert monitor.get_latest_stats("web") is not None
    assert monitor.get_latest_stats("db") is not None
    assert monitor.get_probe_stats("web").total_samples >= 1
