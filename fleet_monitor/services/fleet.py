import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from fleet_monitor.config import Settings, get_settings
from fleet_monitor.errors import HostNotFoundError, TransportError
from fleet_monitor.models.alerts import Alert, AlertLevel, AlertThresholds, HostAlert
from fleet_monitor.models.commands import (
    CommandExecution,
    CommandResult,
    ScriptResult,
    ScriptStep,
    TemplateGroup,
)
from fleet_monitor.models.events import Event, EventType
from fleet_monitor.models.host import Host, HostSummary, OverviewRow
from fleet_monitor.models.probe import ProbeResult, ProbeStats
from fleet_monitor.models.telemetry import CollectionOutcome, HostDetail, TelemetrySnapshot
from fleet_monitor.services import command_templates
from fleet_monitor.services.alert_evaluator import ThresholdStore, evaluate_alerts
from fleet_monitor.services.broadcast_hub import BroadcastHub
from fleet_monitor.services.command_log import CommandAuditLog
from fleet_monitor.services.probe_service import ProbeService
from fleet_monitor.services.remote_executor import RemoteExecutor
from fleet_monitor.services.scheduler import PeriodicTask
from fleet_monitor.services.telemetry_collector import TelemetryCollector

logger = logging.getLogger(__name__)


class FleetMonitor:
    """
    Owns the monitoring state and wires the components together.

    Probe and telemetry loops publish their results to the broadcast hub;
    every fresh snapshot is also run through the alert evaluator. The
    operations below are what the REST layer exposes.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        executor=None,
        probes: Optional[ProbeService] = None,
        hub: Optional[BroadcastHub] = None,
    ):
        self.settings = settings or get_settings()
        self.hosts: Dict[str, Host] = {host.id: host for host in self.settings.hosts}
        self.executor = executor or RemoteExecutor(self.settings)
        self.thresholds = ThresholdStore()
        self.probes = probes or ProbeService(self.settings)
        self.collector = TelemetryCollector(
            self.executor,
            self.probes,
            self.thresholds,
            history_size=self.settings.telemetry_history_size,
        )
        self.hub = hub or BroadcastHub(
            heartbeat_interval=self.settings.heartbeat_interval,
            send_timeout=self.settings.send_timeout,
        )
        self.command_log = CommandAuditLog(capacity=self.settings.command_history_size)

        self._last_alive: Dict[str, bool] = {}
        self._probe_task = PeriodicTask("probe loop", self.settings.ping_interval, self.run_probe_pass)
        self._stats_task = PeriodicTask(
            "telemetry loop",
            self.settings.stats_interval,
            self.run_telemetry_pass,
        )

    # Lifecycle

    async def start(self) -> None:
        logger.info("Monitoring %d hosts", len(self.hosts))
        await self.hub.start()
        self._probe_task.start()
        self._stats_task.start()

    async def stop(self) -> None:
        await self._stats_task.stop()
        await self._probe_task.stop()
        await self.hub.stop()

    # Loop passes

    async def run_probe_pass(self) -> List[ProbeResult]:
        return await self.probes.run_pass(self.hosts.values(), self.on_probe_result)

    def on_probe_result(self, result: ProbeResult) -> None:
        self.hub.send_to_subscribers(result.host_id, Event.of(EventType.PING_UPDATE, result))

        previous = self._last_alive.get(result.host_id)
        self._last_alive[result.host_id] = result.alive
        if previous is not None and previous != result.alive:
            status = "online" if result.alive else "offline"
            logger.info("Host %s is now %s", result.host_id, status)
            self.hub.send_to_subscribers(
                result.host_id,
                Event.of(
                    EventType.STATUS_CHANGE,
                    {
                        "host_id": result.host_id,
                        "status": status,
                        "previous": "online" if previous else "offline",
                    },
                ),
            )

    async def run_telemetry_pass(self) -> List[CollectionOutcome]:
        outcomes = await self.collector.collect_all(self.hosts.values())
        self.on_batch(outcomes)
        return outcomes

    def on_batch(self, outcomes: Sequence[CollectionOutcome]) -> None:
        for outcome in outcomes:
            if not outcome.success or outcome.snapshot is None:
                continue
            self.hub.send_to_subscribers(
                outcome.host_id,
                Event.of(EventType.STATS_UPDATE, outcome.snapshot),
            )
            for alert in self.get_alerts(outcome.host_id):
                self.hub.send_to_subscribers(outcome.host_id, Event.of(EventType.ALERT, alert))

    # Hosts

    def list_hosts(self) -> List[HostSummary]:
        summaries = []
        for host in self.hosts.values():
            stats = self.collector.latest(host.id)
            probe = self.probes.latest(host.id)
            summaries.append(
                HostSummary(
                    **host.model_dump(),
                    health=stats.health if stats else 0,
                    ping=probe.latency_ms if probe else None,
                    alive=probe.alive if probe else False,
                    alerts=len(self._alerts_for(host.id)),
                    last_update=stats.timestamp if stats else None,
                )
            )
        return summaries

    def get_host(self, host_id: str) -> Host:
        try:
            return self.hosts[host_id]
        except KeyError:
            raise HostNotFoundError(host_id) from None

    def get_host_detail(self, host_id: str) -> HostDetail:
        host = self.get_host(host_id)
        return HostDetail(
            host=host,
            stats=self.collector.latest(host_id),
            probe=self.probes.stats(host_id),
            alerts=self._alerts_for(host_id),
        )

    def get_latest_stats(self, host_id: str) -> Optional[TelemetrySnapshot]:
        self.get_host(host_id)
        return self.collector.latest(host_id)

    def get_telemetry_history(self, host_id: str, limit: int = 20) -> List[TelemetrySnapshot]:
        self.get_host(host_id)
        return self.collector.history(host_id, limit)

    async def test_connection(self, host_id: str) -> bool:
        return await self.executor.test_connection(self.get_host(host_id))

    # Probes

    def get_probe_history(self, host_id: str, limit: int = 20) -> List[ProbeResult]:
        self.get_host(host_id)
        return self.probes.history(host_id, limit)

    def get_probe_stats(self, host_id: str) -> ProbeStats:
        self.get_host(host_id)
        return self.probes.stats(host_id)

    # Alerts and thresholds

    def _alerts_for(self, host_id: str) -> List[Alert]:
        return evaluate_alerts(self.collector.latest(host_id), self.thresholds.get())

    def get_alerts(self, host_id: Optional[str] = None) -> List[HostAlert]:
        """Current alerts for one host, or for the whole fleet if `host_id` is None."""
        hosts = [self.get_host(host_id)] if host_id is not None else list(self.hosts.values())
        now = datetime.now(timezone.utc)
        return [
            HostAlert(**alert.model_dump(), host_id=host.id, host_name=host.name, timestamp=now)
            for host in hosts
            for alert in self._alerts_for(host.id)
        ]

    def get_thresholds(self) -> AlertThresholds:
        return self.thresholds.get()

    def set_threshold(self, category: str, type_: str, value) -> AlertThresholds:
        return self.thresholds.set_threshold(category, type_, value)

    def get_overview(self) -> List[OverviewRow]:
        rows = []
        for host in self.hosts.values():
            stats = self.collector.latest(host.id)
            probe = self.probes.latest(host.id)
            alerts = self._alerts_for(host.id)
            rows.append(
                OverviewRow(
                    host_id=host.id,
                    host_name=host.name,
                    health=stats.health if stats else 0,
                    cpu=stats.cpu.usage if stats else 0,
                    memory=stats.memory.used_percent if stats else 0,
                    disk=stats.disk.used_percent if stats else 0,
                    ping=probe.latency_ms if probe else None,
                    ping_avg=self.probes.stats(host.id).avg,
                    alive=probe.alive if probe else False,
                    alerts=len(alerts),
                    critical_alerts=sum(1 for a in alerts if a.type is AlertLevel.CRITICAL),
                    last_update=stats.timestamp if stats else None,
                )
            )
        return rows

    # Commands

    async def execute_command(self, host_id: str, command: str) -> CommandResult:
        """
        Run an ad-hoc command and record it in the audit log.

        Transport failures do not raise; they come back as an unsuccessful
        result with `error` set and no exit code, and are logged as well.
        """
        host = self.get_host(host_id)
        issued = datetime.now(timezone.utc)
        try:
            result = await self.executor.execute(host, command)
        except TransportError as exc:
            result = CommandResult(
                success=False,
                exit_code=None,
                timestamp=exc.timestamp,
                error=exc.message,
            )

        self.command_log.record(
            CommandExecution(
                id=uuid.uuid4().hex,
                host_id=host.id,
                host_name=host.name,
                command=command,
                result=result,
                timestamp=issued,
            )
        )
        return result

    async def execute_script(self, host_id: str, commands: Sequence[str]) -> ScriptResult:
        """Run `commands` one after another, stopping at the first failure."""
        self.get_host(host_id)
        steps = []
        for command in commands:
            result = await self.execute_command(host_id, command)
            steps.append(ScriptStep(command=command, result=result))
            if not result.success:
                break
        return ScriptResult(
            success=len(steps) == len(commands) and all(s.result.success for s in steps),
            results=steps,
        )

    def get_command_history(self, limit: int = 20, host_id: Optional[str] = None) -> List[CommandExecution]:
        return self.command_log.query(limit, host_id)

    def get_templates(self) -> List[TemplateGroup]:
        return command_templates.get_templates()
