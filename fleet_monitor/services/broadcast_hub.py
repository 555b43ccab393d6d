import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Protocol, Set

from fleet_monitor.models.events import Event, EventType
from fleet_monitor.services.scheduler import PeriodicTask

logger = logging.getLogger(__name__)

_HEARTBEAT = object()


class Connection(Protocol):
    """Transport behind a subscriber, e.g. a WebSocket."""

    async def send_json(self, message: dict) -> None: ...

    async def ping(self) -> None: ...

    async def close(self) -> None: ...


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Subscriber:
    connection: Connection
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: ConnectionState = ConnectionState.CONNECTING
    alive: bool = False
    # Empty means "all hosts"
    filters: Set[str] = field(default_factory=set)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def wants(self, host_id: str) -> bool:
        return not self.filters or host_id in self.filters

    async def send(self, message: dict, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self._locked(self.connection.send_json, message), timeout)

    async def ping(self, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self._locked(self.connection.ping), timeout)

    async def _locked(self, call, *args) -> None:
        async with self._lock:
            await call(*args)


class BroadcastHub:
    """
    Fan-out of monitoring events to real-time subscribers.

    broadcast() and send_to_subscribers() only enqueue. A single consumer
    task delivers queued events and runs the heartbeat step, so delivery and
    heartbeat eviction never interleave. Delivery iterates over a copy of
    the subscriber map, so connects and disconnects during a send are safe.

    Every send, ping and close is bounded by `send_timeout`; a subscriber
    that does not finish in time is terminated.
    """

    def __init__(self, heartbeat_interval: float = 30.0, send_timeout: float = 10.0):
        self.send_timeout = send_timeout
        self._subscribers: Dict[str, Subscriber] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._heartbeat_task = PeriodicTask(
            "subscriber heartbeat",
            heartbeat_interval,
            self._schedule_heartbeat,
        )

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def subscribers(self) -> List[Subscriber]:
        return list(self._subscribers.values())

    async def start(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._consume(), name="broadcast hub")
        self._heartbeat_task.start()

    async def stop(self) -> None:
        await self._heartbeat_task.stop()
        consumer, self._consumer = self._consumer, None
        if consumer is not None:
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass
        for subscriber in list(self._subscribers.values()):
            await self._terminate(subscriber)

    async def connect(self, connection: Connection) -> Subscriber:
        """Register an accepted connection and send it the welcome event."""
        subscriber = Subscriber(connection=connection)
        self._subscribers[subscriber.id] = subscriber
        subscriber.state = ConnectionState.OPEN
        subscriber.alive = True

        welcome = Event.of(
            EventType.CONNECTED,
            {
                "message": "Connected to fleet monitor",
                "subscriber_id": subscriber.id,
            },
        )
        try:
            await subscriber.send(welcome.to_message(), self.send_timeout)
        except Exception as exc:
            logger.warning("Could not greet subscriber %s: %s", subscriber.id, exc)
            await self._terminate(subscriber)
            return subscriber

        logger.info("Subscriber %s connected (%d total)", subscriber.id, self.subscriber_count)
        return subscriber

    async def disconnect(self, subscriber: Subscriber) -> None:
        """Forget a subscriber whose transport has already gone away."""
        if self._subscribers.pop(subscriber.id, None) is not None:
            logger.info(
                "Subscriber %s disconnected (%d total)",
                subscriber.id,
                self.subscriber_count,
            )
        subscriber.state = ConnectionState.CLOSED

    async def _terminate(self, subscriber: Subscriber) -> None:
        subscriber.state = ConnectionState.CLOSING
        self._subscribers.pop(subscriber.id, None)
        try:
            await asyncio.wait_for(subscriber.connection.close(), self.send_timeout)
        except Exception as exc:
            logger.debug("Closing subscriber %s failed: %s", subscriber.id, exc)
        subscriber.state = ConnectionState.CLOSED

    def broadcast(self, event: Event) -> None:
        """Queue `event` for every open subscriber."""
        self._queue.put_nowait((event, None))

    def send_to_subscribers(self, host_id: str, event: Event) -> None:
        """Queue `event` for subscribers whose filter is empty or contains `host_id`."""
        self._queue.put_nowait((event, host_id))

    async def drain(self) -> None:
        """Wait until everything queued so far has been delivered."""
        await self._queue.join()

    async def _schedule_heartbeat(self) -> None:
        await self._queue.put(_HEARTBEAT)

    async def _consume(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _HEARTBEAT:
                    await self.heartbeat()
                else:
                    event, host_id = item
                    await self.deliver(event, host_id)
            except Exception:
                logger.exception("Broadcast hub failed to process an item")
            finally:
                self._queue.task_done()

    async def deliver(self, event: Event, host_id: Optional[str] = None) -> int:
        """Send `event` now; returns the number of subscribers reached."""
        message = event.to_message()
        delivered = 0
        for subscriber in list(self._subscribers.values()):
            if subscriber.state is not ConnectionState.OPEN:
                continue
            if host_id is not None and not subscriber.wants(host_id):
                continue
            try:
                await subscriber.send(message, self.send_timeout)
            except Exception as exc:
                logger.warning("Dropping subscriber %s after failed send: %r", subscriber.id, exc)
                await self._terminate(subscriber)
                continue
            delivered += 1
        return delivered

    async def heartbeat(self) -> None:
        """
        Terminate subscribers that did not answer the previous ping, then
        ping everyone else.
        """
        for subscriber in list(self._subscribers.values()):
            if not subscriber.alive:
                logger.warning("Terminating unresponsive subscriber %s", subscriber.id)
                await self._terminate(subscriber)
                continue
            subscriber.alive = False
            try:
                await subscriber.ping(self.send_timeout)
            except Exception as exc:
                logger.warning("Heartbeat to subscriber %s failed: %r", subscriber.id, exc)
                await self._terminate(subscriber)

    async def handle_message(self, subscriber: Subscriber, raw) -> None:
        """Apply one inbound control message; malformed input is ignored."""
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed message from subscriber %s: %r", subscriber.id, raw)
            return
        if not isinstance(message, dict):
            logger.warning("Ignoring non-object message from subscriber %s", subscriber.id)
            return

        action = message.get("action")
        host_id = message.get("host_id") or message.get("hostId") or message.get("serverId")

        if action == "subscribe" and host_id:
            subscriber.filters.add(str(host_id))
        elif action == "unsubscribe" and host_id:
            subscriber.filters.discard(str(host_id))
        elif action == "ping":
            subscriber.alive = True
            try:
                await subscriber.send(Event.of(EventType.PONG).to_message(), self.send_timeout)
            except Exception as exc:
                logger.warning("Dropping subscriber %s after failed pong: %s", subscriber.id, exc)
                await self._terminate(subscriber)
        elif action == "pong":
            subscriber.alive = True
        else:
            logger.warning("Ignoring unknown message from subscriber %s: %r", subscriber.id, message)
