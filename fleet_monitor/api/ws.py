import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from fleet_monitor.api.dependencies import get_ws_monitor
from fleet_monitor.models.events import Event, EventType
from fleet_monitor.services.fleet import FleetMonitor

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketConnection:
    """
    Adapts a FastAPI WebSocket to the broadcast hub's Connection protocol.

    ASGI does not expose protocol-level ping frames, so the heartbeat is an
    application message; clients answer it with {"action": "pong"}.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send_json(self, message: dict) -> None:
        await self.websocket.send_json(message)

    async def ping(self) -> None:
        await self.websocket.send_json(Event.of(EventType.HEARTBEAT).to_message())

    async def close(self) -> None:
        await self.websocket.close()


@router.websocket("/ws")
async def subscribe(websocket: WebSocket, monitor: FleetMonitor = Depends(get_ws_monitor)) -> None:
    await websocket.accept()
    subscriber = await monitor.hub.connect(WebSocketConnection(websocket))
    try:
        while True:
            message = await websocket.receive_text()
            await monitor.hub.handle_message(subscriber, message)
    except WebSocketDisconnect:
        pass
    finally:
        await monitor.hub.disconnect(subscriber)
