import time
from datetime import datetime, timezone

import psutil
from fastapi import APIRouter, Depends

from fleet_monitor.api.dependencies import get_monitor
from fleet_monitor.models.host import ServiceHealth
from fleet_monitor.services.fleet import FleetMonitor

router = APIRouter()


def get_service_health(monitor: FleetMonitor) -> ServiceHealth:
    """
    Describe the monitoring process itself.

    All psutil calls stay in here so the endpoint only returns the model.
    """
    process = psutil.Process()
    return ServiceHealth(
        status="healthy",
        uptime_seconds=int(time.time() - process.create_time()),
        memory_rss_bytes=process.memory_info().rss,
        hosts=len(monitor.hosts),
        connections=monitor.hub.subscriber_count,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("", response_model=ServiceHealth, summary="Service health")
async def service_health(monitor: FleetMonitor = Depends(get_monitor)) -> ServiceHealth:
    return get_service_health(monitor)
