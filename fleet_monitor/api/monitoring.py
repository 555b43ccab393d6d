from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from fleet_monitor.api.dependencies import get_monitor, not_found
from fleet_monitor.errors import (
    HostNotFoundError,
    InvalidCategoryError,
    InvalidThresholdTypeError,
    InvalidThresholdValueError,
)
from fleet_monitor.models.alerts import AlertThresholds, HostAlert, ThresholdUpdate
from fleet_monitor.models.host import OverviewRow
from fleet_monitor.models.probe import ProbeHistory
from fleet_monitor.services.fleet import FleetMonitor

router = APIRouter()


@router.get("/ping/{host_id}", response_model=ProbeHistory, summary="Probe history")
async def ping_history(
    host_id: str,
    limit: int = Query(20, ge=1, le=1000),
    monitor: FleetMonitor = Depends(get_monitor),
) -> ProbeHistory:
    try:
        return ProbeHistory(
            host_id=host_id,
            history=monitor.get_probe_history(host_id, limit),
            stats=monitor.get_probe_stats(host_id),
        )
    except HostNotFoundError as exc:
        raise not_found(exc) from exc


@router.get("/alerts", response_model=List[HostAlert], summary="Fleet alerts")
async def fleet_alerts(monitor: FleetMonitor = Depends(get_monitor)) -> List[HostAlert]:
    return monitor.get_alerts()


@router.get("/alerts/{host_id}", response_model=List[HostAlert], summary="Host alerts")
async def host_alerts(host_id: str, monitor: FleetMonitor = Depends(get_monitor)) -> List[HostAlert]:
    try:
        return monitor.get_alerts(host_id)
    except HostNotFoundError as exc:
        raise not_found(exc) from exc


@router.get("/thresholds", response_model=AlertThresholds, summary="Alert thresholds")
async def get_thresholds(monitor: FleetMonitor = Depends(get_monitor)) -> AlertThresholds:
    return monitor.get_thresholds()


@router.post("/thresholds", response_model=AlertThresholds, summary="Update an alert threshold")
async def set_threshold(
    update: ThresholdUpdate,
    monitor: FleetMonitor = Depends(get_monitor),
) -> AlertThresholds:
    """
    Change one warning/critical bound. The new value applies to the next
    health score and alert evaluation.

    Unknown categories or threshold types map to 404, invalid values to 400.
    """
    try:
        return monitor.set_threshold(update.category, update.type, update.value)
    except (InvalidCategoryError, InvalidThresholdTypeError) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidThresholdValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/overview", response_model=List[OverviewRow], summary="Fleet overview")
async def overview(monitor: FleetMonitor = Depends(get_monitor)) -> List[OverviewRow]:
    return monitor.get_overview()
