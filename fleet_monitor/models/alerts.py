from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AlertLevel(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class AlertCategory(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"


class ThresholdPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    warning: float
    critical: float


class AlertThresholds(BaseModel):
    """
    Warning/critical bounds per category.

    cpu, memory and disk are percentages; ping is a latency in milliseconds.
    Instances are never mutated, an update replaces the whole object.
    """

    model_config = ConfigDict(frozen=True)

    cpu: ThresholdPair = ThresholdPair(warning=70, critical=90)
    memory: ThresholdPair = ThresholdPair(warning=75, critical=90)
    disk: ThresholdPair = ThresholdPair(warning=80, critical=95)
    ping: ThresholdPair = ThresholdPair(warning=100, critical=500)


class Alert(BaseModel):
    type: AlertLevel
    category: AlertCategory
    message: str
    value: float = Field(..., description="Measured value that breached the threshold")
    threshold: float = Field(..., description="Threshold that was exceeded")


class HostAlert(Alert):
    """Alert annotated with its host, used in fleet-wide listings and push events."""

    host_id: str
    host_name: str
    timestamp: datetime


class ThresholdUpdate(BaseModel):
    category: str = Field(..., description="cpu, memory, disk or ping")
    type: str = Field(..., description="warning or critical")
    value: float
