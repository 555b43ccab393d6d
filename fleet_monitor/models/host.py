from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Host(BaseModel):
    """Static description of one monitored machine. Never mutated at runtime."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique host key, e.g. server1")
    name: str = Field(..., description="Human readable name, e.g. Web Server 01")
    address: str = Field(
        ...,
        min_length=1,
        description="Hostname or IP used for SSH and ping",
    )
    description: Optional[str] = Field(None, description="Free text description")
    tags: List[str] = Field(default_factory=list, description="Labels such as 'production'")


class HostSummary(BaseModel):
    """One row of the host list: configuration plus the freshest status."""

    id: str
    name: str
    address: str
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    health: int = Field(..., ge=0, le=100, description="Latest health score, 0 if never collected")
    ping: Optional[float] = Field(None, description="Latest probe latency in milliseconds")
    alive: bool = Field(..., description="Latest probe result; False if never probed")
    alerts: int = Field(..., ge=0, description="Number of active alerts")
    last_update: Optional[datetime] = Field(
        None,
        description="Timestamp of the latest successful telemetry snapshot",
    )


class OverviewRow(BaseModel):
    """Compact per-host summary used by the dashboard overview."""

    host_id: str
    host_name: str
    health: int = Field(..., ge=0, le=100)
    cpu: float = Field(..., description="CPU usage in percent")
    memory: float = Field(..., description="Memory used in percent")
    disk: float = Field(..., description="Root filesystem used in percent")
    ping: Optional[float] = Field(None, description="Latest probe latency in milliseconds")
    ping_avg: float = Field(..., description="Average latency over the probe history")
    alive: bool
    alerts: int = Field(..., ge=0)
    critical_alerts: int = Field(..., ge=0)
    last_update: Optional[datetime] = None


class ServiceHealth(BaseModel):
    """Health of the monitoring service process itself."""

    status: str = Field(..., description="Always 'healthy' while the process serves requests")
    uptime_seconds: int = Field(..., ge=0, description="Seconds since the process started")
    memory_rss_bytes: int = Field(..., ge=0, description="Resident memory of the process")
    hosts: int = Field(..., ge=0, description="Number of configured hosts")
    connections: int = Field(..., ge=0, description="Number of live real-time subscribers")
    timestamp: datetime
