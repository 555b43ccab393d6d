from typing import Optional

from fleet_monitor.models.alerts import AlertThresholds, ThresholdPair
from fleet_monitor.models.probe import ProbeResult

# (critical, warning) penalties per category
_CPU_PENALTY = (30, 15)
_MEMORY_PENALTY = (30, 15)
_DISK_PENALTY = (20, 10)
_LATENCY_PENALTY = (10, 5)
_UNREACHABLE_PENALTY = 50


def _penalty(value: float, bounds: ThresholdPair, penalties) -> int:
    critical, warning = penalties
    if value > bounds.critical:
        return critical
    if value > bounds.warning:
        return warning
    return 0


def compute_health(
    cpu: float,
    memory: float,
    disk: float,
    probe: Optional[ProbeResult],
    thresholds: AlertThresholds,
) -> int:
    """
    Score a host from 0 (bad) to 100 (healthy).

    Penalties are independent and add up: CPU 30/15, memory 30/15 and disk
    20/10 for a critical/warning breach, 50 if the latest probe found the
    host unreachable, otherwise 10/5 for probe latency over the ping
    thresholds. A host that has not been probed yet gets no probe penalty.
    """
    score = 100
    score -= _penalty(cpu, thresholds.cpu, _CPU_PENALTY)
    score -= _penalty(memory, thresholds.memory, _MEMORY_PENALTY)
    score -= _penalty(disk, thresholds.disk, _DISK_PENALTY)

    if probe is not None:
        if not probe.alive:
            score -= _UNREACHABLE_PENALTY
        elif probe.latency_ms is not None:
            score -= _penalty(probe.latency_ms, thresholds.ping, _LATENCY_PENALTY)

    return max(0, score)
