import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, Iterable, List, Optional

from fleet_monitor.config import Settings, get_settings
from fleet_monitor.models.host import Host
from fleet_monitor.models.probe import ProbeResult, ProbeStats

logger = logging.getLogger(__name__)

# Extra seconds granted on top of the ping reply timeout before the
# subprocess is killed
_PROCESS_GRACE_SECONDS = 5


def _parse_latency(output: str) -> Optional[float]:
    """
    Extract the roundtrip time from ping output.

    Example line: "64 bytes from 192.168.178.1: icmp_seq=1 ttl=64 time=2.34 ms"
    """
    for line in output.splitlines():
        if "time=" in line and " ms" in line:
            try:
                segment = line.split("time=", 1)[1]
                return float(segment.split(" ", 1)[0])
            except (IndexError, ValueError):
                return None
    return None


class ProbeService:
    """
    Liveness probes for the fleet plus a bounded per-host history.

    Unreachable hosts are recorded as results with alive=False; probing
    never raises.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._history: Dict[str, Deque[ProbeResult]] = {}

    async def _ping(self, host: Host) -> ProbeResult:
        """
        Ping a single host once.

        This implementation assumes a Linux-like 'ping' command with options:
          -c <count>  : number of echo requests
          -W <timeout>: timeout in seconds for each reply
        """
        timeout = self.settings.ping_timeout

        def failed(error: str) -> ProbeResult:
            return ProbeResult(
                host_id=host.id,
                alive=False,
                latency_ms=None,
                timestamp=datetime.now(timezone.utc),
                error=error,
            )

        try:
            process = await asyncio.create_subprocess_exec(
                "ping", "-c", "1", "-W", str(timeout), host.address,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return failed("ping binary not found on host system")
        except OSError as exc:
            return failed(f"ping could not be started: {exc}")

        try:
            stdout, _ = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout + _PROCESS_GRACE_SECONDS,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return failed(f"ping timed out after {timeout}s")

        if process.returncode != 0:
            return failed(f"ping failed with return code {process.returncode}")

        return ProbeResult(
            host_id=host.id,
            alive=True,
            latency_ms=_parse_latency(stdout.decode("utf-8", errors="replace")),
            timestamp=datetime.now(timezone.utc),
            error=None,
        )

    def record(self, result: ProbeResult) -> None:
        history = self._history.get(result.host_id)
        if history is None:
            history = deque(maxlen=self.settings.probe_history_size)
            self._history[result.host_id] = history
        history.append(result)

    async def probe(self, host: Host) -> ProbeResult:
        """Probe `host` once and append the result to its history."""
        result = await self._ping(host)
        self.record(result)
        if not result.alive:
            logger.debug("Probe for %s failed: %s", host.id, result.error)
        return result

    async def run_pass(
        self,
        hosts: Iterable[Host],
        on_result: Optional[Callable[[ProbeResult], None]] = None,
    ) -> List[ProbeResult]:
        """Probe every host concurrently; `on_result` fires once per result."""

        async def probe_and_report(host: Host) -> ProbeResult:
            result = await self.probe(host)
            if on_result is not None:
                try:
                    on_result(result)
                except Exception:
                    logger.exception("Probe callback failed for %s", host.id)
            return result

        return list(await asyncio.gather(*(probe_and_report(h) for h in hosts)))

    def history(self, host_id: str, limit: int = 20) -> List[ProbeResult]:
        """Most recent `limit` results for a host, oldest first."""
        entries = list(self._history.get(host_id, ()))
        if limit <= 0:
            return []
        return entries[-limit:]

    def latest(self, host_id: str) -> Optional[ProbeResult]:
        history = self._history.get(host_id)
        if not history:
            return None
        return history[-1]

    def stats(self, host_id: str) -> ProbeStats:
        history = list(self._history.get(host_id, ()))
        if not history:
            return ProbeStats()

        successful = [p for p in history if p.alive and p.latency_ms is not None]
        times = [p.latency_ms for p in successful]
        total = len(history)

        return ProbeStats(
            avg=round(sum(times) / len(times), 2) if times else 0.0,
            min=round(min(times), 2) if times else 0.0,
            max=round(max(times), 2) if times else 0.0,
            packet_loss_percent=round(100 * (total - len(successful)) / total, 2),
            total_samples=total,
            successful_samples=len(successful),
        )
