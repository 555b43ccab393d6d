from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from fleet_monitor.api.dependencies import get_monitor, not_found
from fleet_monitor.errors import HostNotFoundError
from fleet_monitor.models.commands import (
    CommandExecution,
    CommandRequest,
    CommandResponse,
    ScriptRequest,
    ScriptResult,
    TemplateGroup,
)
from fleet_monitor.services.fleet import FleetMonitor

router = APIRouter()


@router.post("/execute", response_model=CommandResponse, summary="Run a command")
async def execute_command(
    request: CommandRequest,
    monitor: FleetMonitor = Depends(get_monitor),
) -> CommandResponse:
    """
    Run one command on a host over SSH.

    A command that could not be run at all (host unreachable, authentication
    failure) is reported with success=false and an error message rather than
    an HTTP error.
    """
    try:
        result = await monitor.execute_command(request.host_id, request.command)
    except HostNotFoundError as exc:
        raise not_found(exc) from exc
    if result.error:
        return CommandResponse(success=False, result=result, error=result.error)
    return CommandResponse(success=True, result=result)


@router.post("/script", response_model=ScriptResult, summary="Run a command sequence")
async def execute_script(
    request: ScriptRequest,
    monitor: FleetMonitor = Depends(get_monitor),
) -> ScriptResult:
    """Run the commands in order and stop after the first one that fails."""
    try:
        return await monitor.execute_script(request.host_id, request.commands)
    except HostNotFoundError as exc:
        raise not_found(exc) from exc


@router.get("/history", response_model=List[CommandExecution], summary="Command history")
async def command_history(
    limit: int = Query(20, ge=1, le=1000),
    host_id: Optional[str] = None,
    monitor: FleetMonitor = Depends(get_monitor),
) -> List[CommandExecution]:
    return monitor.get_command_history(limit, host_id)


@router.get("/templates", response_model=List[TemplateGroup], summary="Command templates")
async def command_templates(monitor: FleetMonitor = Depends(get_monitor)) -> List[TemplateGroup]:
    return monitor.get_templates()
