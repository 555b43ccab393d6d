import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import asyncssh

from fleet_monitor.config import Settings, get_settings
from fleet_monitor.errors import TransportError
from fleet_monitor.models.commands import CommandResult
from fleet_monitor.models.host import Host

logger = logging.getLogger(__name__)


class RemoteExecutor:
    """
    Run single commands on remote hosts over SSH.

    Every call opens its own session and closes it before returning, no
    matter how the call ends. There is no connection reuse, so concurrent
    calls for the same host simply open several sessions.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def _connect_options(self, host: Host) -> dict:
        options = {
            "host": host.address,
            "port": self.settings.ssh_port,
            "username": self.settings.ssh_username,
            "known_hosts": None,
            "connect_timeout": self.settings.ssh_connect_timeout,
        }
        if self.settings.ssh_password:
            options["password"] = self.settings.ssh_password
        if self.settings.ssh_key_path:
            options["client_keys"] = [self.settings.ssh_key_path]
        return options

    async def execute(
        self,
        host: Host,
        command: str,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Execute `command` on `host` and return its exit status and output.

        Raises TransportError if the command never ran (connect, auth or
        network failure) or the session exceeded `timeout` seconds. A command
        that ran and exited non-zero is returned as an unsuccessful result.
        """
        if timeout is None:
            timeout = self.settings.command_timeout

        try:
            async with asyncssh.connect(**self._connect_options(host)) as conn:
                completed = await conn.run(command, check=False, timeout=timeout)
        except (OSError, asyncssh.Error, asyncio.TimeoutError) as exc:
            message = str(exc) or exc.__class__.__name__
            logger.warning("SSH command on %s failed: %s", host.id, message)
            raise TransportError(message) from exc

        # exit_status is None if the remote process was killed by a signal
        exit_code = completed.exit_status if completed.exit_status is not None else -1

        return CommandResult(
            success=exit_code == 0,
            exit_code=exit_code,
            stdout=_as_text(completed.stdout).strip(),
            stderr=_as_text(completed.stderr).strip(),
            timestamp=datetime.now(timezone.utc),
        )

    async def test_connection(self, host: Host) -> bool:
        try:
            result = await self.execute(host, 'echo "Connection successful"')
        except TransportError:
            return False
        return result.success


def _as_text(output) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output
