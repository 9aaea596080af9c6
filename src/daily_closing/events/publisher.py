"""Change publisher for open ledger views.

After every successful mutation the store publishes one ``ChangeEvent``.
The publisher delivers it to:
- in-process subscribers registered per collection (sync or async callables)
- event hooks that see every event
- connected WebSocket clients, when the broadcast server is running

Delivery is "something changed"; subscribers re-fetch the whole
collection rather than patching their state.
"""

import asyncio
import inspect
import json
from collections import deque
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from daily_closing.config import get_settings
from daily_closing.events.types import ChangeEvent

logger = structlog.get_logger(__name__)

Subscriber = Callable[[ChangeEvent], Awaitable[None] | None]


@dataclass(eq=False)
class ClientConnection:
    """A WebSocket client and the collections it listens to.

    An empty ``collections`` set means every collection.
    """

    websocket: ServerConnection
    collections: set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def client_id(self) -> str:
        peer = getattr(self.websocket, "remote_address", None)
        if isinstance(peer, tuple) and len(peer) >= 2:
            return f"{peer[0]}:{peer[1]}"
        return str(peer)

    def wants(self, event: ChangeEvent) -> bool:
        return not self.collections or event.collection in self.collections


class ChangePublisher:
    """Fan-out of change events to subscribers and WebSocket clients.

    Usage:
        publisher = ChangePublisher()
        publisher.subscribe("dailyClosings", refresh_view)
        await publisher.start()  # optional remote broadcast

        publisher.publish(record_inserted("dailyClosings", "CLOSE-1"))

        await publisher.stop()
    """

    PING_INTERVAL = 30
    PING_TIMEOUT = 10

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        buffer_size: int = 100,
    ):
        self._host = host
        self._port = port
        self._recent: deque[ChangeEvent] = deque(maxlen=buffer_size)

        self._server: Server | None = None
        self._clients: set[ClientConnection] = set()

        self._subscribers: dict[str, list[Subscriber]] = {}
        self._event_hooks: list[Callable[[ChangeEvent], None]] = []
        self._pending: set[asyncio.Task[Any]] = set()

        self._logger = logger.bind(component="change_publisher")

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def recent_events(self) -> list[ChangeEvent]:
        return list(self._recent)

    def subscribe(self, collection: str, callback: Subscriber) -> None:
        """Call ``callback`` whenever ``collection`` changes."""
        self._subscribers.setdefault(collection, []).append(callback)

    def unsubscribe(self, collection: str, callback: Subscriber) -> None:
        callbacks = self._subscribers.get(collection, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def add_event_hook(self, hook: Callable[[ChangeEvent], None]) -> None:
        """Register a synchronous observer of every event."""
        self._event_hooks.append(hook)

    def remove_event_hook(self, hook: Callable[[ChangeEvent], None]) -> None:
        if hook in self._event_hooks:
            self._event_hooks.remove(hook)

    async def start(self) -> None:
        """Start accepting WebSocket clients."""
        if self._server is not None:
            self._logger.warning("publisher_already_running")
            return

        settings = get_settings()
        host = self._host or settings.ws_host
        port = self._port or settings.ws_port

        self._server = await serve(
            self._serve_client,
            host,
            port,
            ping_interval=self.PING_INTERVAL,
            ping_timeout=self.PING_TIMEOUT,
        )
        self._logger.info("publisher_started", address=f"ws://{host}:{port}")

    async def stop(self) -> None:
        """Close the server; open connections are closed with it."""
        if self._server is None:
            return

        server, self._server = self._server, None
        self._logger.info("publisher_stopping", client_count=len(self._clients))
        server.close()
        await server.wait_closed()
        self._clients.clear()

    async def _serve_client(self, websocket: ServerConnection) -> None:
        client = ClientConnection(websocket=websocket)
        self._clients.add(client)
        self._logger.info("client_connected", client_id=client.client_id)
        try:
            async for message in websocket:
                await self._handle_message(client, message)
        except ConnectionClosed as e:
            self._logger.info("client_disconnected", client_id=client.client_id, code=e.code)
        finally:
            self._clients.discard(client)

    async def _handle_message(self, client: ClientConnection, message: str | bytes) -> None:
        """Handle ``subscribe``, ``unsubscribe`` and ``ping`` messages."""
        try:
            data = json.loads(message)
        except (UnicodeDecodeError, json.JSONDecodeError):
            self._logger.warning("invalid_client_message", client_id=client.client_id)
            return
        if not isinstance(data, dict):
            data = {}

        msg_type = data.get("type")
        requested = {str(c) for c in data.get("collections", [])}
        if msg_type == "subscribe":
            client.collections |= requested
            reply = {"type": "subscribed", "collections": sorted(client.collections)}
        elif msg_type == "unsubscribe":
            client.collections -= requested
            return
        elif msg_type == "ping":
            reply = {"type": "pong"}
        else:
            self._logger.warning(
                "unknown_message_type", client_id=client.client_id, msg_type=msg_type
            )
            return
        await client.websocket.send(json.dumps(reply))

    def publish(self, event: ChangeEvent) -> None:
        """Publish an event without waiting for delivery.

        Async subscribers and the WebSocket broadcast are scheduled on the
        running loop; sync subscribers and hooks run inline.
        """
        self._record(event)

        for callback in list(self._subscribers.get(event.collection, [])):
            try:
                result = callback(event)
            except Exception as e:
                self._logger.error("subscriber_error", collection=event.collection, error=str(e))
                continue
            if inspect.isawaitable(result):
                self._schedule(self._await_subscriber(result, event))

        if self._clients:
            self._schedule(self._broadcast(event))

    async def broadcast_all(self, event: ChangeEvent) -> None:
        """Deliver an event to every subscriber and client and wait for completion."""
        self._record(event)

        for callback in list(self._subscribers.get(event.collection, [])):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._logger.error("subscriber_error", collection=event.collection, error=str(e))

        await self._broadcast(event)

    async def drain(self) -> None:
        """Wait for scheduled deliveries to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _record(self, event: ChangeEvent) -> None:
        self._recent.append(event)
        for hook in self._event_hooks:
            try:
                hook(event)
            except Exception as e:
                self._logger.error("event_hook_error", error=str(e))

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop: nothing can await the delivery.
            coro.close()
            self._logger.warning("no_event_loop_for_delivery")
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _await_subscriber(self, result: Awaitable[None], event: ChangeEvent) -> None:
        try:
            await result
        except Exception as e:
            self._logger.error("subscriber_error", collection=event.collection, error=str(e))

    async def _broadcast(self, event: ChangeEvent) -> None:
        targets = [c for c in list(self._clients) if c.wants(event)]
        if not targets:
            return
        payload = json.dumps(event.to_dict())
        await asyncio.gather(*(self._send(c, payload) for c in targets))

    async def _send(self, client: ClientConnection, payload: str) -> None:
        try:
            await client.websocket.send(payload)
        except ConnectionClosed:
            self._clients.discard(client)
        except Exception as e:
            self._logger.error("send_error", client_id=client.client_id, error=str(e))

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "clients": len(self._clients),
            "buffered_events": len(self._recent),
            "subscriptions": {k: len(v) for k, v in self._subscribers.items() if v},
        }
