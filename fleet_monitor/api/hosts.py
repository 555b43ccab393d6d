from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from fleet_monitor.api.dependencies import get_monitor, not_found
from fleet_monitor.errors import HostNotFoundError
from fleet_monitor.models.host import HostSummary
from fleet_monitor.models.telemetry import HostDetail, TelemetrySnapshot
from fleet_monitor.services.fleet import FleetMonitor

router = APIRouter()


@router.get("", response_model=List[HostSummary], summary="Monitored hosts")
async def list_hosts(monitor: FleetMonitor = Depends(get_monitor)) -> List[HostSummary]:
    """
    Return every configured host together with its latest health score,
    probe result and alert count.
    """
    return monitor.list_hosts()


@router.get("/{host_id}", response_model=HostDetail, summary="Host detail")
async def host_detail(host_id: str, monitor: FleetMonitor = Depends(get_monitor)) -> HostDetail:
    """Latest telemetry snapshot, probe statistics and active alerts of one host."""
    try:
        return monitor.get_host_detail(host_id)
    except HostNotFoundError as exc:
        raise not_found(exc) from exc


@router.get(
    "/{host_id}/stats",
    response_model=Optional[TelemetrySnapshot],
    summary="Latest telemetry",
)
async def host_stats(
    host_id: str,
    monitor: FleetMonitor = Depends(get_monitor),
) -> Optional[TelemetrySnapshot]:
    try:
        return monitor.get_latest_stats(host_id)
    except HostNotFoundError as exc:
        raise not_found(exc) from exc


@router.get(
    "/{host_id}/stats/history",
    response_model=List[TelemetrySnapshot],
    summary="Telemetry history",
)
async def host_stats_history(
    host_id: str,
    limit: int = Query(20, ge=1, le=1000),
    monitor: FleetMonitor = Depends(get_monitor),
) -> List[TelemetrySnapshot]:
    """Most recent snapshots of one host, oldest first."""
    try:
        return monitor.get_telemetry_history(host_id, limit)
    except HostNotFoundError as exc:
        raise not_found(exc) from exc


@router.get("/{host_id}/test", summary="SSH connection test")
async def host_connection_test(host_id: str, monitor: FleetMonitor = Depends(get_monitor)) -> dict:
    try:
        connected = await monitor.test_connection(host_id)
    except HostNotFoundError as exc:
        raise not_found(exc) from exc
    if not connected:
        raise HTTPException(status_code=503, detail=f"SSH connection to {host_id} failed")
    return {"host_id": host_id, "connected": True}
