from fastapi import HTTPException, Request, WebSocket

from fleet_monitor.errors import HostNotFoundError
from fleet_monitor.services.fleet import FleetMonitor


def get_monitor(request: Request) -> FleetMonitor:
    return request.app.state.monitor


def get_ws_monitor(websocket: WebSocket) -> FleetMonitor:
    return websocket.app.state.monitor


def not_found(exc: HostNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))
