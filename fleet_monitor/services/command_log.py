from collections import deque
from typing import Deque, List, Optional

from fleet_monitor.models.commands import CommandExecution


class CommandAuditLog:
    """Bounded log of ad-hoc command executions, newest first."""

    def __init__(self, capacity: int = 100):
        self._entries: Deque[CommandExecution] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, execution: CommandExecution) -> None:
        # appendleft on a full deque drops the oldest entry from the right
        self._entries.appendleft(execution)

    def query(self, limit: int = 20, host_id: Optional[str] = None) -> List[CommandExecution]:
        entries = [e for e in self._entries if host_id is None or e.host_id == host_id]
        return entries[: max(limit, 0)]
