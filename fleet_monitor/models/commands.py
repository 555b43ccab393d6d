from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class CommandResult(BaseModel):
    """Outcome of one remote command."""

    success: bool = Field(..., description="True if the command exited with status 0")
    exit_code: Optional[int] = Field(
        None,
        description="Remote exit status; None if the command never ran",
    )
    stdout: str = ""
    stderr: str = ""
    timestamp: datetime = Field(..., description="Completion time")
    error: Optional[str] = Field(
        None,
        description="Transport failure description if the command never ran",
    )


class CommandExecution(BaseModel):
    """Audit log entry for an ad-hoc command."""

    id: str
    host_id: str
    host_name: str
    command: str
    result: CommandResult
    timestamp: datetime = Field(..., description="Time the command was issued")


class CommandRequest(BaseModel):
    host_id: str = Field(..., min_length=1)
    command: str = Field(..., min_length=1)


class ScriptRequest(BaseModel):
    host_id: str = Field(..., min_length=1)
    commands: List[str] = Field(..., min_length=1)


class CommandResponse(BaseModel):
    success: bool
    result: Optional[CommandResult] = None
    error: Optional[str] = None


class ScriptStep(BaseModel):
    command: str
    result: CommandResult


class ScriptResult(BaseModel):
    success: bool = Field(..., description="True if every command ran and exited with status 0")
    results: List[ScriptStep]


class CommandTemplate(BaseModel):
    name: str
    command: str


class TemplateGroup(BaseModel):
    category: str
    commands: List[CommandTemplate]
