from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProbeResult(BaseModel):
    """Outcome of a single liveness probe (reachability and latency)."""

    model_config = ConfigDict(frozen=True)

    host_id: str = Field(..., description="Id of the probed host")
    alive: bool = Field(
        ...,
        description="True if the host answered the ping probe.",
    )
    latency_ms: Optional[float] = Field(
        None,
        ge=0.0,
        description="Roundtrip time in milliseconds, if measurable.",
    )
    timestamp: datetime
    error: Optional[str] = Field(
        None,
        description="Optional error message if the host is not reachable or the probe failed.",
    )


class ProbeStats(BaseModel):
    """Rolling statistics derived from a host's probe history."""

    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    packet_loss_percent: float = Field(100.0, ge=0, le=100)
    total_samples: int = Field(0, ge=0)
    successful_samples: int = Field(0, ge=0)


class ProbeHistory(BaseModel):
    host_id: str
    history: List[ProbeResult]
    stats: ProbeStats
