import asyncio
import json

from conftest import FakeConnection
from fleet_monitor.models.events import Event, EventType
from fleet_monitor.services.broadcast_hub import BroadcastHub, ConnectionState


def test_connect_sends_welcome_event():
    async def scenario():
        hub = BroadcastHub()
        conn = FakeConnection()
        subscriber = await hub.connect(conn)
        return hub, conn, subscriber

    hub, conn, subscriber = asyncio.run(scenario())

    assert conn.types() == ["connected"]
    assert conn.messages[0]["data"]["subscriber_id"] == subscriber.id
    assert "timestamp" in conn.messages[0]
    assert subscriber.state is ConnectionState.OPEN
    assert subscriber.alive is True
    assert hub.subscriber_count == 1


def test_send_to_subscribers_honours_filters():
    async def scenario():
        hub = BroadcastHub()
        await hub.start()
        scoped = FakeConnection()
        everything = FakeConnection()
        scoped_sub = await hub.connect(scoped)
        await hub.connect(everything)
        await hub.handle_message(scoped_sub, json.dumps({"action": "subscribe", "host_id": "X"}))

        hub.send_to_subscribers("Y", Event.of(EventType.STATS_UPDATE, {"host_id": "Y"}))
        hub.send_to_subscribers("X", Event.of(EventType.STATS_UPDATE, {"host_id": "X"}))
        hub.broadcast(Event.of(EventType.ALERT, {"host_id": "Y"}))
        await hub.drain()
        await hub.stop()
        return scoped, everything

    scoped, everything = asyncio.run(scenario())

    scoped_updates = [m["data"]["host_id"] for m in scoped.messages if m["type"] == "stats_update"]
    everything_updates = [m["data"]["host_id"] for m in everything.messages if m["type"] == "stats_update"]
    assert scoped_updates == ["X"]
    assert everything_updates == ["Y", "X"]
    assert "alert" in scoped.types()
    assert "alert" in everything.types()


def test_unsubscribe_restores_receive_all():
    async def scenario():
        hub = BroadcastHub()
        conn = FakeConnection()
        subscriber = await hub.connect(conn)
        await hub.handle_message(subscriber, '{"action": "subscribe", "serverId": "X"}')
        await hub.deliver(Event.of(EventType.PING_UPDATE, {"host_id": "Y"}), "Y")
        await hub.handle_message(subscriber, '{"action": "unsubscribe", "hostId": "X"}')
        await hub.deliver(Event.of(EventType.PING_UPDATE, {"host_id": "Y"}), "Y")
        return subscriber, conn

    subscriber, conn = asyncio.run(scenario())

    assert subscriber.filters == set()
    assert conn.types() == ["connected", "ping_update"]


def test_ping_message_gets_immediate_pong():
    async def scenario():
        hub = BroadcastHub()
        conn = FakeConnection()
        subscriber = await hub.connect(conn)
        await hub.handle_message(subscriber, '{"action": "ping"}')
        return conn

    conn = asyncio.run(scenario())

    assert conn.types() == ["connected", "pong"]


def test_malformed_messages_are_ignored():
    async def scenario():
        hub = BroadcastHub()
        conn = FakeConnection()
        subscriber = await hub.connect(conn)
        await hub.handle_message(subscriber, "not json {")
        await hub.handle_message(subscriber, "[1, 2, 3]")
        await hub.handle_message(subscriber, '{"action": "dance"}')
        await hub.handle_message(subscriber, '{"action": "subscribe"}')
        return hub, subscriber, conn

    hub, subscriber, conn = asyncio.run(scenario())

    assert subscriber.state is ConnectionState.OPEN
    assert subscriber.filters == set()
    assert hub.subscriber_count == 1
    assert conn.closed is False


def test_heartbeat_evicts_unresponsive_subscriber():
    async def scenario():
        hub = BroadcastHub()
        silent = FakeConnection()
        responsive = FakeConnection()
        silent_sub = await hub.connect(silent)
        responsive_sub = await hub.connect(responsive)

        await hub.heartbeat()
        after_first = hub.subscriber_count
        await hub.handle_message(responsive_sub, '{"action": "pong"}')
        await hub.heartbeat()
        return hub, silent, silent_sub, responsive, after_first

    hub, silent, silent_sub, responsive, after_first = asyncio.run(scenario())

    assert after_first == 2
    assert silent.pings == 1
    assert responsive.pings == 2
    assert silent.closed is True
    assert silent_sub.state is ConnectionState.CLOSED
    assert hub.subscriber_count == 1


def test_failed_send_removes_subscriber():
    async def scenario():
        hub = BroadcastHub()
        healthy = FakeConnection()
        await hub.connect(healthy)
        broken = FakeConnection()
        broken_sub = await hub.connect(broken)
        broken.fail_send = True
        delivered = await hub.deliver(Event.of(EventType.STATS_UPDATE, {"host_id": "X"}))
        return hub, broken, broken_sub, delivered

    hub, broken, broken_sub, delivered = asyncio.run(scenario())

    assert delivered == 1
    assert hub.subscriber_count == 1
    assert broken.closed is True
    assert broken_sub.state is ConnectionState.CLOSED


def test_disconnect_removes_subscriber():
    async def scenario():
        hub = BroadcastHub()
        subscriber = await hub.connect(FakeConnection())
        await hub.disconnect(subscriber)
        return hub, subscriber

    hub, subscriber = asyncio.run(scenario())

    assert hub.subscriber_count == 0
    assert subscriber.state is ConnectionState.CLOSED


class StalledConnection(FakeConnection):
    """Accepts the welcome event, then never finishes another send or ping."""

    def __init__(self, stall_ping=False):
        super().__init__()
        self.stall_ping = stall_ping

    async def send_json(self, message):
        if self.messages:
            await asyncio.Event().wait()
        await super().send_json(message)

    async def ping(self):
        if self.stall_ping:
            await asyncio.Event().wait()
        await super().ping()


def test_stalled_subscriber_is_dropped_and_fan_out_continues():
    async def scenario():
        hub = BroadcastHub(heartbeat_interval=60, send_timeout=0.05)
        await hub.start()
        stalled = StalledConnection()
        stalled_sub = await hub.connect(stalled)
        healthy = FakeConnection()
        await hub.connect(healthy)

        hub.broadcast(Event.of(EventType.STATS_UPDATE, {"host_id": "X"}))
        hub.send_to_subscribers("X", Event.of(EventType.PING_UPDATE, {"host_id": "X"}))
        await asyncio.wait_for(hub.drain(), timeout=2)
        count = hub.subscriber_count
        await hub.stop()
        return stalled, stalled_sub, healthy, count

    stalled, stalled_sub, healthy, count = asyncio.run(scenario())

    assert healthy.types() == ["connected", "stats_update", "ping_update"]
    assert count == 1
    assert stalled.closed is True
    assert stalled_sub.state is ConnectionState.CLOSED


def test_heartbeat_drops_subscriber_whose_ping_stalls():
    async def scenario():
        hub = BroadcastHub(send_timeout=0.05)
        stalled = StalledConnection(stall_ping=True)
        await hub.connect(stalled)
        responsive = FakeConnection()
        await hub.connect(responsive)

        await asyncio.wait_for(hub.heartbeat(), timeout=2)
        return hub, stalled, responsive

    hub, stalled, responsive = asyncio.run(scenario())

    assert hub.subscriber_count == 1
    assert stalled.closed is True
    assert responsive.pings == 1
