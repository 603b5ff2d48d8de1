"""
Live update broadcaster.

Holds the registry of subscriber connections (per identity, plus an admin
group) and pushes `{"type", "payload"}` messages to them. Delivery is best
effort: missing recipients are a no-op and failed sends drop the connection.
A periodic liveness check pings each transport and terminates connections
whose peer stopped answering. The ping is transport-level: clients are never
asked to echo an application message.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

import orjson

from pricefeed.config.constants import (
    DEFAULT_HEARTBEAT_INTERVAL,
    EVENT_PING,
    EVENT_PONG,
    EVENT_SUBSCRIBE,
)
from pricefeed.core.types import LiveMessage
from pricefeed.telemetry.metrics import LIVENESS_TERMINATED, MetricsCollector
from pricefeed.utils.time import Clock, SystemClock


logger = logging.getLogger(__name__)

SubscriberId = int | str


class SubscriberTransport(Protocol):
    """Minimal transport surface of a subscriber channel."""

    async def send_text(self, data: str) -> None: ...

    async def ping(self) -> bool:
        """Transport-level ping; True while the peer is answering."""
        ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


def encode_message(event: str, payload: dict[str, Any]) -> str:
    """Serialize an outbound message."""
    message: LiveMessage = {"type": event, "payload": payload}
    return orjson.dumps(message).decode()


@dataclass(eq=False)
class SubscriberConnection:
    """
    One live client channel.

    Compared and hashed by identity of the object, so the same user can hold
    several connections at once.
    """

    transport: SubscriberTransport
    identity: SubscriberId
    is_admin: bool = False
    email: str | None = None
    is_alive: bool = field(default=True)

    async def send(self, message: str) -> None:
        await self.transport.send_text(message)

    async def ping(self) -> None:
        if await self.transport.ping():
            self.mark_alive()

    def mark_alive(self) -> None:
        self.is_alive = True

    async def terminate(self, code: int = 1001, reason: str = "Heartbeat timeout") -> None:
        """Close the transport, ignoring errors from an already dead socket."""
        try:
            await self.transport.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Close failed for subscriber {self.identity}: {e}")


class LiveUpdateBroadcaster:
    """
    Fan-out of live events to subscriber connections.

    Features:
    - Registry keyed by identity plus a separate admin set
    - Messages serialized once per send with orjson
    - Failed sends unregister the connection
    - Heartbeat task that prunes unresponsive connections
    """

    def __init__(
        self,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        clock: Clock | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """
        Initialize an empty broadcaster.

        Args:
            heartbeat_interval: Seconds between liveness checks.
            clock: Time source for pong payloads.
            metrics: Collector for termination counters.
        """
        self._heartbeat_interval = heartbeat_interval
        self._clock = clock or SystemClock()
        self._metrics = metrics or MetricsCollector()

        self._connections: set[SubscriberConnection] = set()
        self._by_identity: dict[SubscriberId, set[SubscriberConnection]] = {}
        self._admins: set[SubscriberConnection] = set()

        self._task: asyncio.Task[None] | None = None

    # =========================================================================
    # Registry
    # =========================================================================

    def register(self, connection: SubscriberConnection) -> None:
        """Add a connection after a successful handshake."""
        connection.mark_alive()
        self._connections.add(connection)
        self._by_identity.setdefault(connection.identity, set()).add(connection)
        if connection.is_admin:
            self._admins.add(connection)

        logger.info(
            f"Subscriber connected: {connection.identity}"
            f"{' [ADMIN]' if connection.is_admin else ''}"
        )

    def unregister(self, connection: SubscriberConnection) -> bool:
        """
        Remove a connection from every registry.

        Returns:
            True if the connection was registered.
        """
        if connection not in self._connections:
            return False

        self._connections.discard(connection)
        self._admins.discard(connection)

        group = self._by_identity.get(connection.identity)
        if group is not None:
            group.discard(connection)
            if not group:
                del self._by_identity[connection.identity]

        logger.info(f"Subscriber disconnected: {connection.identity}")
        return True

    def connections_for(self, identity: SubscriberId) -> set[SubscriberConnection]:
        """Active connections of one identity."""
        return set(self._by_identity.get(identity, ()))

    def is_registered(self, connection: SubscriberConnection) -> bool:
        return connection in self._connections

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def admin_count(self) -> int:
        return len(self._admins)

    def stats(self) -> dict[str, int]:
        """Connection statistics."""
        return {
            "totalConnections": len(self._connections),
            "totalUsers": len(self._by_identity),
            "adminConnections": len(self._admins),
        }

    # =========================================================================
    # Delivery
    # =========================================================================

    async def _deliver(self, connections: Iterable[SubscriberConnection], message: str) -> int:
        """Send to each connection; unregister the ones that fail."""
        delivered = 0
        failed: list[SubscriberConnection] = []

        for connection in list(connections):
            try:
                await connection.send(message)
                delivered += 1
            except Exception as e:
                logger.debug(f"Send to subscriber {connection.identity} failed: {e}")
                failed.append(connection)

        for connection in failed:
            self.unregister(connection)

        return delivered

    async def send(
        self,
        connection: SubscriberConnection,
        event: str,
        payload: dict[str, Any],
    ) -> bool:
        """Send one event to one connection."""
        return await self._deliver([connection], encode_message(event, payload)) == 1

    async def send_to_subscriber(
        self,
        identity: SubscriberId,
        event: str,
        payload: dict[str, Any],
    ) -> int:
        """
        Send an event to every connection of one identity.

        Returns:
            Number of connections the message was delivered to.
        """
        targets = self._by_identity.get(identity)
        if not targets:
            logger.debug(f"No active connections for {identity}, dropping {event}")
            return 0

        delivered = await self._deliver(targets, encode_message(event, payload))
        logger.debug(f"Sent {event} to {identity} ({delivered} connection(s))")
        return delivered

    async def send_to_admins(self, event: str, payload: dict[str, Any]) -> int:
        """Send an event to every admin connection."""
        if not self._admins:
            logger.debug(f"No active admin connections, dropping {event}")
            return 0

        delivered = await self._deliver(self._admins, encode_message(event, payload))
        logger.debug(f"Sent {event} to admins ({delivered} connection(s))")
        return delivered

    async def broadcast_all(self, event: str, payload: dict[str, Any]) -> int:
        """Send an event to every registered connection."""
        if not self._connections:
            return 0
        return await self._deliver(self._connections, encode_message(event, payload))

    # =========================================================================
    # Inbound Messages
    # =========================================================================

    async def handle_message(self, connection: SubscriberConnection, raw: str | bytes) -> None:
        """
        Process a message received from a subscriber.

        Any inbound traffic counts as a liveness signal.
        """
        connection.mark_alive()

        try:
            message = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("Malformed message", extra={"subscriber": connection.identity})
            return

        if not isinstance(message, dict):
            logger.warning("Unexpected message shape", extra={"subscriber": connection.identity})
            return

        message_type = message.get("type")
        if message_type == EVENT_PING:
            await self.send(connection, EVENT_PONG, {"timestamp": self._clock.now_ms()})
        elif message_type in (EVENT_PONG, EVENT_SUBSCRIBE):
            pass
        else:
            logger.warning(
                f"Unknown message type: {message_type}",
                extra={"subscriber": connection.identity},
            )

    # =========================================================================
    # Liveness
    # =========================================================================

    async def check_liveness(self) -> int:
        """
        Terminate connections that missed the previous ping, ping the rest.

        Returns:
            Number of connections terminated.
        """
        terminated = 0

        for connection in list(self._connections):
            if not connection.is_alive:
                logger.info(
                    "Terminating inactive subscriber",
                    extra={"subscriber": connection.identity},
                )
                await connection.terminate()
                self.unregister(connection)
                self._metrics.increment_counter(LIVENESS_TERMINATED)
                terminated += 1
                continue

            connection.is_alive = False
            try:
                await connection.ping()
            except Exception as e:
                logger.debug(f"Ping to subscriber {connection.identity} failed: {e}")
                self.unregister(connection)

        return terminated

    async def start(self) -> None:
        """Start the heartbeat task."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._heartbeat_loop())
        logger.info(f"Heartbeat started ({self._heartbeat_interval:.0f}s interval)")

    async def stop(self) -> None:
        """Stop the heartbeat task and close every connection."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        for connection in list(self._connections):
            await connection.terminate(code=1001, reason="Server shutdown")
            self.unregister(connection)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await self.check_liveness()
            except Exception:
                logger.exception("Liveness check failed")

    @property
    def is_running(self) -> bool:
        return self._task is not None
