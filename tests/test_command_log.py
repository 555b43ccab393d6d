from datetime import timedelta

from conftest import T0
from fleet_monitor.models.commands import CommandExecution, CommandResult
from fleet_monitor.services.command_log import CommandAuditLog


def _execution(n, host_id="web"):
    return CommandExecution(
        id=f"cmd-{n}",
        host_id=host_id,
        host_name=host_id.title(),
        command=f"echo {n}",
        result=CommandResult(
            success=True,
            exit_code=0,
            stdout=str(n),
            timestamp=T0 + timedelta(seconds=n),
        ),
        timestamp=T0 + timedelta(seconds=n),
    )


def test_log_keeps_newest_100_entries():
    log = CommandAuditLog(capacity=100)
    for n in range(105):
        log.record(_execution(n))

    entries = log.query(1000)

    assert len(log) == 100
    assert len(entries) == 100
    assert entries[0].id == "cmd-104"
    assert entries[-1].id == "cmd-5"
    assert not {f"cmd-{n}" for n in range(5)} & {e.id for e in entries}


def test_query_filters_by_host_and_applies_limit():
    log = CommandAuditLog()
    for n in range(6):
        log.record(_execution(n, host_id="web" if n % 2 else "db"))

    assert [e.id for e in log.query(2, host_id="web")] == ["cmd-5", "cmd-3"]
    assert [e.id for e in log.query(10, host_id="db")] == ["cmd-4", "cmd-2", "cmd-0"]
    assert log.query(0) == []
    assert log.query(10, host_id="cache") == []
