import asyncio
import json
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, Iterable, List, Optional

from fleet_monitor.errors import TransportError
from fleet_monitor.models.host import Host
from fleet_monitor.models.telemetry import (
    CollectionOutcome,
    CpuStats,
    DiskStats,
    MemoryStats,
    NetworkStats,
    ProbeSummary,
    ProcessInfo,
    TelemetrySnapshot,
)
from fleet_monitor.services.alert_evaluator import ThresholdStore
from fleet_monitor.services.health import compute_health
from fleet_monitor.services.probe_service import ProbeService

logger = logging.getLogger(__name__)

CPU_USAGE_COMMAND = r"""top -bn1 | grep "Cpu(s)" | awk '{print $2}' | cut -d'%' -f1"""
LOAD_AVERAGE_COMMAND = r"""uptime | awk -F'load average:' '{print $2}'"""
MEMORY_COMMAND = (
    r"""free -m | awk 'NR==2{printf "{\"total\":%s,\"used\":%s,\"free\":%s,"""
    r"""\"available\":%s}", $2,$3,$4,$7}'"""
)
DISK_COMMAND = (
    r"""df -h / | awk 'NR==2{printf "{\"total\":\"%s\",\"used\":\"%s\","""
    r"""\"available\":\"%s\",\"usedPercent\":\"%s\"}", $2,$3,$4,$5}'"""
)
NETWORK_COMMAND = (
    r"""cat /proc/net/dev | grep -E "eth0|ens|enp" | head -1 | """
    r"""awk '{printf "{\"rx\":%s,\"tx\":%s}", $2,$10}'"""
)
UPTIME_COMMAND = "uptime -p"
PROCESSES_COMMAND = (
    r"""ps aux --sort=-%cpu | head -6 | tail -5 | """
    r"""awk '{printf "%s|%s|%s|%s\n", $2,$3,$4,$11}'"""
)


def _to_float(value, default: float = 0.0) -> float:
    try:
        return float(str(value).strip().rstrip("%"))
    except (TypeError, ValueError):
        return default


def parse_cpu_usage(output: str) -> float:
    """Single percentage token, e.g. '12.5'. Defaults to 0."""
    tokens = output.split()
    return _to_float(tokens[0]) if tokens else 0.0


def parse_load_average(output: str) -> CpuStats:
    """Three comma separated floats, e.g. ' 0.15, 0.10, 0.05'."""
    loads = [_to_float(part) for part in output.split(",")]
    loads += [0.0] * (3 - len(loads))
    return CpuStats(load1=loads[0], load5=loads[1], load15=loads[2])


def parse_memory(output: str) -> MemoryStats:
    try:
        data = json.loads(output)
        total = float(data["total"])
        used = float(data["used"])
        return MemoryStats(
            total=total,
            used=used,
            free=float(data["free"]),
            available=float(data["available"]),
            used_percent=round(used / total * 100, 2),
        )
    except (ValueError, KeyError, TypeError, ZeroDivisionError):
        return MemoryStats()


def parse_disk(output: str) -> DiskStats:
    try:
        data = json.loads(output)
        return DiskStats(
            total=str(data["total"]),
            used=str(data["used"]),
            available=str(data["available"]),
            used_percent=float(str(data["usedPercent"]).rstrip("%")),
        )
    except (ValueError, KeyError, TypeError):
        return DiskStats()


def parse_network(output: str) -> NetworkStats:
    try:
        data = json.loads(output)
        return NetworkStats(rx_bytes=int(data["rx"]), tx_bytes=int(data["tx"]))
    except (ValueError, KeyError, TypeError):
        return NetworkStats()


def parse_processes(output: str) -> List[ProcessInfo]:
    """Newline separated 'pid|cpu|mem|name' rows; malformed rows are skipped."""
    processes = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.strip().split("|", 3)
        if len(parts) != 4:
            continue
        try:
            processes.append(
                ProcessInfo(
                    pid=int(parts[0]),
                    cpu=float(parts[1]),
                    memory=float(parts[2]),
                    name=parts[3],
                )
            )
        except ValueError:
            continue
    return processes


class TelemetryCollector:
    """
    Collects telemetry snapshots over the remote executor and keeps the
    latest snapshot plus a bounded history per host.

    Only successful snapshots touch the caches; a failed collection leaves
    the previous data in place.
    """

    def __init__(
        self,
        executor,
        probes: ProbeService,
        thresholds: ThresholdStore,
        history_size: int = 60,
    ):
        self.executor = executor
        self.probes = probes
        self.thresholds = thresholds
        self.history_size = history_size
        self._latest: Dict[str, TelemetrySnapshot] = {}
        self._history: Dict[str, Deque[TelemetrySnapshot]] = {}

    async def _run(self, host: Host, command: str) -> str:
        result = await self.executor.execute(host, command)
        return result.stdout

    async def collect(self, host: Host) -> TelemetrySnapshot:
        commands = (
            CPU_USAGE_COMMAND,
            LOAD_AVERAGE_COMMAND,
            MEMORY_COMMAND,
            DISK_COMMAND,
            NETWORK_COMMAND,
            UPTIME_COMMAND,
            PROCESSES_COMMAND,
        )
        outputs = await asyncio.gather(
            *(self._run(host, command) for command in commands),
            return_exceptions=True,
        )

        for output in outputs:
            if isinstance(output, TransportError):
                return TelemetrySnapshot(
                    host_id=host.id,
                    timestamp=datetime.now(timezone.utc),
                    success=False,
                    error=output.message,
                )
        for output in outputs:
            if isinstance(output, BaseException):
                raise output

        cpu_out, load_out, mem_out, disk_out, net_out, uptime_out, proc_out = outputs

        cpu = parse_load_average(load_out).model_copy(update={"usage": parse_cpu_usage(cpu_out)})
        memory = parse_memory(mem_out)
        disk = parse_disk(disk_out)

        latest_probe = self.probes.latest(host.id)
        probe = ProbeSummary(
            current=latest_probe.latency_ms if latest_probe else None,
            alive=latest_probe.alive if latest_probe else False,
            stats=self.probes.stats(host.id),
        )

        snapshot = TelemetrySnapshot(
            host_id=host.id,
            timestamp=datetime.now(timezone.utc),
            success=True,
            cpu=cpu,
            memory=memory,
            disk=disk,
            network=parse_network(net_out),
            uptime=uptime_out.strip() or "Unknown",
            processes=parse_processes(proc_out),
            probe=probe,
            health=compute_health(
                cpu.usage,
                memory.used_percent,
                disk.used_percent,
                latest_probe,
                self.thresholds.get(),
            ),
        )
        self._store(snapshot)
        return snapshot

    def _store(self, snapshot: TelemetrySnapshot) -> None:
        self._latest[snapshot.host_id] = snapshot
        history = self._history.get(snapshot.host_id)
        if history is None:
            history = deque(maxlen=self.history_size)
            self._history[snapshot.host_id] = history
        history.append(snapshot)

    async def collect_all(self, hosts: Iterable[Host]) -> List[CollectionOutcome]:
        """Collect every host; one host's failure never affects the others."""
        hosts = list(hosts)
        results = await asyncio.gather(
            *(self.collect(host) for host in hosts),
            return_exceptions=True,
        )

        outcomes = []
        for host, result in zip(hosts, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error("Error collecting stats for %s: %s", host.id, result)
                outcomes.append(
                    CollectionOutcome(host_id=host.id, success=False, error=str(result))
                )
            elif not result.success:
                logger.warning("Stats collection for %s failed: %s", host.id, result.error)
                outcomes.append(
                    CollectionOutcome(
                        host_id=host.id,
                        success=False,
                        snapshot=result,
                        error=result.error,
                    )
                )
            else:
                outcomes.append(CollectionOutcome(host_id=host.id, success=True, snapshot=result))
        return outcomes

    def latest(self, host_id: str) -> Optional[TelemetrySnapshot]:
        return self._latest.get(host_id)

    def history(self, host_id: str, limit: int = 20) -> List[TelemetrySnapshot]:
        """Most recent `limit` snapshots for a host, oldest first."""
        entries = list(self._history.get(host_id, ()))
        if limit <= 0:
            return []
        return entries[-limit:]
