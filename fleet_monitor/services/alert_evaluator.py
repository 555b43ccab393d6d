import logging
import math
from typing import List, Optional

from fleet_monitor.errors import (
    InvalidCategoryError,
    InvalidThresholdTypeError,
    InvalidThresholdValueError,
)
from fleet_monitor.models.alerts import (
    Alert,
    AlertCategory,
    AlertLevel,
    AlertThresholds,
    ThresholdPair,
)
from fleet_monitor.models.telemetry import TelemetrySnapshot

logger = logging.getLogger(__name__)

_LABELS = {
    AlertCategory.CPU: "CPU",
    AlertCategory.MEMORY: "Memory",
    AlertCategory.DISK: "Disk",
}


def _check(category: AlertCategory, value: float, bounds: ThresholdPair) -> Optional[Alert]:
    label = _LABELS[category]
    if value > bounds.critical:
        return Alert(
            type=AlertLevel.CRITICAL,
            category=category,
            message=f"{label} usage is critically high: {value:.2f}%",
            value=value,
            threshold=bounds.critical,
        )
    if value > bounds.warning:
        return Alert(
            type=AlertLevel.WARNING,
            category=category,
            message=f"{label} usage is high: {value:.2f}%",
            value=value,
            threshold=bounds.warning,
        )
    return None


def evaluate_alerts(
    snapshot: Optional[TelemetrySnapshot],
    thresholds: AlertThresholds,
) -> List[Alert]:
    """
    Derive the alerts for one snapshot, in the order cpu, memory, disk.

    At most one alert per category; critical wins over warning. Returns an
    empty list if there is no snapshot or the snapshot failed. The result
    depends only on the arguments.
    """
    if snapshot is None or not snapshot.success:
        return []

    checks = (
        (AlertCategory.CPU, snapshot.cpu.usage, thresholds.cpu),
        (AlertCategory.MEMORY, snapshot.memory.used_percent, thresholds.memory),
        (AlertCategory.DISK, snapshot.disk.used_percent, thresholds.disk),
    )
    alerts = []
    for category, value, bounds in checks:
        alert = _check(category, value, bounds)
        if alert is not None:
            alerts.append(alert)
    return alerts


class ThresholdStore:
    """
    Holds the current AlertThresholds.

    Readers get the immutable model; updates build a new model and swap it
    in, so a reader never sees a half-applied change.
    """

    CATEGORIES = ("cpu", "memory", "disk", "ping")
    TYPES = tuple(level.value for level in AlertLevel)

    def __init__(self, thresholds: Optional[AlertThresholds] = None):
        self._thresholds = thresholds or AlertThresholds()

    def get(self) -> AlertThresholds:
        return self._thresholds

    def set_threshold(self, category: str, type_: str, value) -> AlertThresholds:
        if category not in self.CATEGORIES:
            raise InvalidCategoryError(f"Invalid category {category!r}")
        if type_ not in self.TYPES:
            raise InvalidThresholdTypeError(f"Invalid threshold type {type_!r}")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidThresholdValueError(f"Threshold value must be a number, got {value!r}")
        if not math.isfinite(value) or value < 0:
            raise InvalidThresholdValueError(f"Threshold value must be finite and >= 0, got {value!r}")

        current = getattr(self._thresholds, category)
        pair = current.model_copy(update={type_: float(value)})
        if pair.warning >= pair.critical:
            logger.warning(
                "%s warning threshold (%s) is not below critical (%s); "
                "values above critical are reported as critical",
                category,
                pair.warning,
                pair.critical,
            )

        self._thresholds = self._thresholds.model_copy(update={category: pair})
        logger.info("Threshold %s.%s set to %s", category, type_, value)
        return self._thresholds
