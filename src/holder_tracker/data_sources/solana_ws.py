"""Solana pubsub ``logsSubscribe`` client.

Pushes the signature of every transaction that mentions the tracked mint to
an async callback.  Reconnects with exponential backoff and re-subscribes on
each new connection; notifications missed while disconnected are not
replayed.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import websockets
from websockets.asyncio.client import ClientConnection

logger = logging.getLogger(__name__)

DEFAULT_PING_INTERVAL = 30  # seconds
DEFAULT_MAX_RECONNECT_DELAY = 30  # seconds
DEFAULT_INITIAL_RECONNECT_DELAY = 1  # seconds


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass
class SubscriptionStats:
    notifications_received: int = 0
    reconnect_count: int = 0
    subscription_id: Optional[int] = None
    last_message_time: float | None = None
    connected_since: float | None = None
    last_error: str | None = None


class SubscriptionConnectionError(Exception):
    """Raised when the websocket connection cannot be established."""


SignatureCallback = Callable[[str], Awaitable[None]]


class LogsSubscription:
    """Websocket subscription on logs mentioning a single mint."""

    def __init__(
        self,
        *,
        endpoint: str,
        mint: str,
        on_signature: SignatureCallback,
        commitment: str = "confirmed",
        ping_interval: int = DEFAULT_PING_INTERVAL,
        max_reconnect_delay: int = DEFAULT_MAX_RECONNECT_DELAY,
        initial_reconnect_delay: int = DEFAULT_INITIAL_RECONNECT_DELAY,
    ) -> None:
        self._endpoint = endpoint
        self._mint = mint
        self._on_signature = on_signature
        self._commitment = commitment
        self._ping_interval = ping_interval
        self._max_reconnect_delay = max_reconnect_delay
        self._initial_reconnect_delay = initial_reconnect_delay

        self._state = ConnectionState.DISCONNECTED
        self._stats = SubscriptionStats()
        self._ws: ClientConnection | None = None
        self._running = False
        self._stop_event: asyncio.Event | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def stats(self) -> SubscriptionStats:
        return self._stats

    def _set_state(self, new_state: ConnectionState) -> None:
        if self._state != new_state:
            logger.info("Logs subscription state: %s -> %s", self._state.value, new_state.value)
            self._state = new_state

    def subscribe_message(self) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "logsSubscribe",
            "params": [
                {"mentions": [self._mint]},
                {"commitment": self._commitment},
            ],
        }

    async def _connect(self) -> ClientConnection:
        self._set_state(ConnectionState.CONNECTING)
        try:
            ws = await websockets.connect(
                self._endpoint,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_interval * 2,
            )
        except Exception as e:
            self._stats.last_error = str(e)
            raise SubscriptionConnectionError(f"Failed to connect to {self._endpoint}: {e}") from e

        await ws.send(json.dumps(self.subscribe_message()))
        self._set_state(ConnectionState.CONNECTED)
        self._stats.connected_since = time.time()
        logger.info("Subscribed to logs mentioning %s", self._mint)
        return ws

    async def handle_message(self, message: str) -> None:
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON message on logs subscription")
            return

        if data.get("id") == 1 and "result" in data:
            self._stats.subscription_id = data["result"]
            return
        if "error" in data:
            logger.warning("logsSubscribe error: %s", data["error"])
            return
        if data.get("method") != "logsNotification":
            logger.debug("Ignoring pubsub message: %r", data.get("method"))
            return

        value = ((data.get("params") or {}).get("result") or {}).get("value") or {}
        signature = value.get("signature")
        if not signature:
            return
        self._stats.notifications_received += 1
        self._stats.last_message_time = time.time()
        await self._on_signature(signature)

    async def _listen(self, ws: ClientConnection) -> None:
        try:
            while self._running:
                try:
                    message = await asyncio.wait_for(ws.recv(), timeout=1.0)
                except TimeoutError:
                    continue
                if isinstance(message, str):
                    await self.handle_message(message)
        except websockets.ConnectionClosed as e:
            logger.warning("Logs subscription connection closed: %s", e)
            raise

    async def start(self) -> None:
        if self._running:
            raise RuntimeError("Logs subscription already running")
        self._running = True
        self._stop_event = asyncio.Event()

        delay = self._initial_reconnect_delay
        while self._running and not self._stop_event.is_set():
            try:
                self._ws = await self._connect()
                delay = self._initial_reconnect_delay
                await self._listen(self._ws)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats.reconnect_count += 1
                self._stats.last_error = str(e)
                self._set_state(ConnectionState.RECONNECTING)
                await asyncio.sleep(delay)
                delay = min(self._max_reconnect_delay, delay * 2)
            finally:
                with contextlib.suppress(Exception):
                    if self._ws:
                        await self._ws.close()
                self._ws = None

        self._set_state(ConnectionState.DISCONNECTED)

    async def stop(self) -> None:
        self._running = False
        if self._stop_event:
            self._stop_event.set()
        if self._ws:
            with contextlib.suppress(Exception):
                await self._ws.close()
