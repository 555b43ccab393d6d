from typing import List, Optional
from pydantic import BaseModel, Field, TypeAdapter
import os
from functools import lru_cache

from fleet_monitor.models.host import Host

# Demo fleet used when MONITOR_HOSTS is not set
_DEFAULT_HOSTS = [
    Host(
        id="server1",
        name="Web Server 01",
        address="server1",
        description="Production Web Server",
        tags=["web", "production"],
    ),
    Host(
        id="server2",
        name="Database Server",
        address="server2",
        description="MySQL Database Server",
        tags=["database", "production"],
    ),
    Host(
        id="server3",
        name="App Server",
        address="server3",
        description="Application Server",
        tags=["app", "staging"],
    ),
]

_HOST_LIST = TypeAdapter(List[Host])


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    # Monitored hosts
    hosts: List[Host] = Field(
        default_factory=lambda: list(_DEFAULT_HOSTS),
        description="Hosts to monitor; parsed from the JSON list in MONITOR_HOSTS",
    )

    # SSH transport, shared credentials for every host
    ssh_username: str = Field(
        default="monitor",
        description="Username for the SSH sessions",
    )
    ssh_password: Optional[str] = Field(
        default=None,
        description="Password for the SSH sessions; unset means key or agent authentication only",
    )
    ssh_key_path: Optional[str] = Field(
        default=None,
        description="Optional private key file used instead of / in addition to the password",
    )
    ssh_port: int = Field(default=22, ge=1, le=65535)
    ssh_connect_timeout: float = Field(
        default=20.0,
        gt=0,
        description="Seconds to wait for the SSH handshake and authentication",
    )
    command_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Default seconds a single remote command may run",
    )

    # Monitoring loops
    monitoring_enabled: bool = Field(
        default=True,
        description="Start the probe/telemetry loops together with the application",
    )
    stats_interval: float = Field(default=5.0, gt=0, description="Seconds between telemetry passes")
    ping_interval: float = Field(default=10.0, gt=0, description="Seconds between probe passes")
    ping_timeout: int = Field(default=10, ge=1, description="Seconds to wait for a ping reply")
    heartbeat_interval: float = Field(
        default=30.0,
        gt=0,
        description="Seconds between subscriber heartbeats",
    )
    send_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds a single send or ping to a subscriber may take before it is dropped",
    )

    # Bounded in-memory histories
    probe_history_size: int = Field(default=100, ge=1)
    telemetry_history_size: int = Field(default=60, ge=1)
    command_history_size: int = Field(default=100, ge=1)

    bind_host: str = Field(default="0.0.0.0", description="Interface the HTTP server binds to")
    port: int = Field(default=3000, ge=1, le=65535, description="HTTP and WebSocket port")
    log_level: str = Field(default="INFO", description="Root log level")

    @classmethod
    def from_env(cls) -> "Settings":
        values = {}

        raw_hosts = os.getenv("MONITOR_HOSTS", "").strip()
        if raw_hosts:
            values["hosts"] = _HOST_LIST.validate_json(raw_hosts)

        env_map = {
            "ssh_username": "SSH_USER",
            "ssh_password": "SSH_PASSWORD",
            "ssh_key_path": "SSH_KEY_PATH",
            "ssh_port": "SSH_PORT",
            "ssh_connect_timeout": "SSH_CONNECT_TIMEOUT",
            "command_timeout": "COMMAND_TIMEOUT",
            "stats_interval": "STATS_INTERVAL",
            "ping_interval": "PING_INTERVAL",
            "ping_timeout": "PING_TIMEOUT",
            "heartbeat_interval": "HEARTBEAT_INTERVAL",
            "send_timeout": "SEND_TIMEOUT",
            "bind_host": "BIND_HOST",
            "port": "PORT",
            "log_level": "LOG_LEVEL",
        }
        for field, env_name in env_map.items():
            raw = os.getenv(env_name)
            if raw is not None and raw.strip():
                values[field] = raw.strip()

        values["monitoring_enabled"] = _env_bool("MONITORING_ENABLED", True)

        return cls(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
