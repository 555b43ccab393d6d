from datetime import datetime, timedelta, timezone

import pytest

from fleet_monitor.config import Settings
from fleet_monitor.errors import TransportError
from fleet_monitor.models.commands import CommandResult
from fleet_monitor.models.host import Host
from fleet_monitor.models.probe import ProbeResult
from fleet_monitor.services.telemetry_collector import (
    CPU_USAGE_COMMAND,
    DISK_COMMAND,
    LOAD_AVERAGE_COMMAND,
    MEMORY_COMMAND,
    NETWORK_COMMAND,
    PROCESSES_COMMAND,
    UPTIME_COMMAND,
)

HEALTHY_OUTPUTS = {
    CPU_USAGE_COMMAND: "12.5",
    LOAD_AVERAGE_COMMAND: " 0.15, 0.10, 0.05",
    MEMORY_COMMAND: '{"total":2000,"used":1000,"free":500,"available":900}',
    DISK_COMMAND: '{"total":"20G","used":"10G","available":"10G","usedPercent":"50%"}',
    NETWORK_COMMAND: '{"rx":1234,"tx":5678}',
    UPTIME_COMMAND: "up 2 hours, 5 minutes",
    PROCESSES_COMMAND: "101|12.0|1.5|nginx\n202|3.1|0.7|python3\n",
}

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeExecutor:
    """
    Stand-in for RemoteExecutor.

    Hosts listed in `unreachable` raise TransportError, commands found in
    `exit_codes` return that exit status, everything else answers from
    `outputs`.
    """

    def __init__(self, outputs=None, unreachable=(), exit_codes=None):
        self.outputs = dict(HEALTHY_OUTPUTS if outputs is None else outputs)
        self.unreachable = set(unreachable)
        self.exit_codes = dict(exit_codes or {})
        self.calls = []

    async def execute(self, host, command, timeout=None):
        self.calls.append((host.id, command))
        if host.id in self.unreachable:
            raise TransportError("connect ECONNREFUSED")
        exit_code = self.exit_codes.get(command, 0)
        return CommandResult(
            success=exit_code == 0,
            exit_code=exit_code,
            stdout=self.outputs.get(command, ""),
            stderr="" if exit_code == 0 else "command failed",
            timestamp=datetime.now(timezone.utc),
        )

    async def test_connection(self, host):
        return host.id not in self.unreachable


def probe_result(host_id="web", alive=True, latency_ms=10.0, seconds=0):
    return ProbeResult(
        host_id=host_id,
        alive=alive,
        latency_ms=latency_ms if alive else None,
        timestamp=T0 + timedelta(seconds=seconds),
        error=None if alive else "ping failed with return code 1",
    )


@pytest.fixture
def hosts():
    return [
        Host(id="web", name="Web Server", address="10.0.0.1", tags=["web"]),
        Host(id="db", name="Database Server", address="10.0.0.2", tags=["database"]),
    ]


@pytest.fixture
def settings(hosts):
    return Settings(hosts=hosts, monitoring_enabled=False)


class FakeConnection:
    """In-memory subscriber transport for the broadcast hub."""

    def __init__(self, fail_send=False):
        self.messages = []
        self.pings = 0
        self.closed = False
        self.fail_send = fail_send

    async def send_json(self, message):
        if self.fail_send:
            raise ConnectionResetError("socket closed")
        self.messages.append(message)

    async def ping(self):
        self.pings += 1

    async def close(self):
        self.closed = True

    def types(self):
        return [m["type"] for m in self.messages]
