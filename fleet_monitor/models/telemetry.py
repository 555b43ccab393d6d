from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from fleet_monitor.models.alerts import Alert
from fleet_monitor.models.host import Host
from fleet_monitor.models.probe import ProbeStats


class CpuStats(BaseModel):
    usage: float = Field(0.0, description="CPU utilisation in percent")
    load1: float = 0.0
    load5: float = 0.0
    load15: float = 0.0


class MemoryStats(BaseModel):
    """Memory figures in MiB as reported by `free -m`."""

    total: float = 0
    used: float = 0
    free: float = 0
    available: float = 0
    used_percent: float = Field(0.0, description="used / total in percent, two decimals")


class DiskStats(BaseModel):
    """Root filesystem usage; sizes are the human readable strings of `df -h`."""

    total: str = "0G"
    used: str = "0G"
    available: str = "0G"
    used_percent: float = 0.0


class NetworkStats(BaseModel):
    rx_bytes: int = 0
    tx_bytes: int = 0


class ProcessInfo(BaseModel):
    pid: int
    cpu: float
    memory: float
    name: str


class ProbeSummary(BaseModel):
    """Probe state folded into a snapshot at collection time."""

    current: Optional[float] = Field(None, description="Latest probe latency in milliseconds")
    alive: bool = False
    stats: ProbeStats = Field(default_factory=ProbeStats)


class TelemetrySnapshot(BaseModel):
    """One complete telemetry reading for a host."""

    host_id: str
    timestamp: datetime
    success: bool
    error: Optional[str] = Field(
        None,
        description="Transport failure description when success is False",
    )
    cpu: CpuStats = Field(default_factory=CpuStats)
    memory: MemoryStats = Field(default_factory=MemoryStats)
    disk: DiskStats = Field(default_factory=DiskStats)
    network: NetworkStats = Field(default_factory=NetworkStats)
    uptime: str = "Unknown"
    processes: List[ProcessInfo] = Field(default_factory=list)
    probe: ProbeSummary = Field(default_factory=ProbeSummary)
    health: int = Field(0, ge=0, le=100)


class CollectionOutcome(BaseModel):
    """Settled result of collecting one host within a batch."""

    host_id: str
    success: bool
    snapshot: Optional[TelemetrySnapshot] = None
    error: Optional[str] = None


class HostDetail(BaseModel):
    host: Host
    stats: Optional[TelemetrySnapshot] = None
    probe: ProbeStats
    alerts: List[Alert]
