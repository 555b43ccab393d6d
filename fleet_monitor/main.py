import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .api import commands, health, hosts, monitoring, ws
from .config import Settings, get_settings
from .services.fleet import FleetMonitor

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    monitor: Optional[FleetMonitor] = None,
) -> FastAPI:
    """
    Build the application around one FleetMonitor.

    The monitoring loops only run inside the lifespan, so creating the app
    (e.g. for tests) never touches the network.
    """
    settings = settings or get_settings()
    monitor = monitor or FleetMonitor(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.monitoring_enabled:
            await monitor.start()
        else:
            logger.info("Monitoring loops disabled, serving cached data only")
            await monitor.hub.start()
        try:
            yield
        finally:
            await monitor.stop()

    app = FastAPI(title="Fleet Monitor", lifespan=lifespan)
    app.state.monitor = monitor

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(hosts.router, prefix="/api/hosts", tags=["hosts"])
    app.include_router(commands.router, prefix="/api/commands", tags=["commands"])
    app.include_router(monitoring.router, prefix="/api/monitoring", tags=["monitoring"])
    app.include_router(ws.router, tags=["realtime"])

    return app


logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run("fleet_monitor.main:app", host=settings.bind_host, port=settings.port)
