"""
EVSCallPro WebSocket client for live supervision events.

Connects to the backend WebSocket (<ws_url>?token=<token>), decodes each frame
into a typed event and hands it to the on_event callback, strictly in
delivery order.

Features:
- Persistent connection with exponential backoff + jitter reconnect
- Protocol-level ping so a stalled connection is detected and dropped
- Degraded polling mode: after N consecutive failures the on_resync callback
  (REST snapshot re-fetch) runs every poll_interval_s until the channel
  reconnects; every reconnect also triggers one resync to cover the gap
- Token rejection (HTTP 401 on handshake, or close reason "token invalid")
  stops reconnection and fires on_auth_failure
- close() cancels the pending reconnect wait and the polling task; no event is
  delivered after it returns

Two composed state machines:
  ConnectionState: DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED ...
                   CLOSED is terminal (close() or token invalid)
  SyncMode:        LIVE <-> POLLING
"""

from __future__ import annotations
import asyncio
import json
import logging
import random
from enum import Enum
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, InvalidStatus

from backend.auth import TokenAuth
from backend.decoder import EventRoutes, decode_frame
from backend.errors import FrameDecodeError, TokenInvalidError
from models.events import BackendEvent
from utils.circuit_breaker import CircuitBreaker

log = logging.getLogger(__name__)

OnEvent = Callable[[BackendEvent], Awaitable[None]]
OnResync = Callable[[], Awaitable[None]]
OnAuthFailure = Callable[[TokenInvalidError], Awaitable[None]]

TOKEN_INVALID_REASON = "token invalid"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class SyncMode(str, Enum):
    LIVE = "live"
    POLLING = "polling"


class CallCenterWSClient:
    """
    Persistent backend WebSocket client.

    Usage:
        client = CallCenterWSClient(ws_url, auth, routes, on_event=sync.handle_event,
                                    on_resync=sync.resync)
        task = asyncio.create_task(client.run())
        ...
        await client.close()
    """

    PING_INTERVAL_S = 20
    PING_TIMEOUT_S = 10
    OPEN_TIMEOUT_S = 10

    def __init__(
        self,
        ws_url: str,
        auth: TokenAuth,
        routes: EventRoutes,
        on_event: OnEvent,
        on_resync: OnResync | None = None,
        on_auth_failure: OnAuthFailure | None = None,
        base_backoff_s: float = 0.5,
        max_backoff_s: float = 30.0,
        jitter_s: float = 0.5,
        failures_before_polling: int = 5,
        poll_interval_s: float = 15.0,
        rng: random.Random | None = None,
    ) -> None:
        self._ws_url = ws_url
        self._auth = auth
        self._routes = routes
        self._on_event = on_event
        self._on_resync = on_resync
        self._on_auth_failure = on_auth_failure
        self._base_backoff_s = base_backoff_s
        self._max_backoff_s = max_backoff_s
        self._jitter_s = jitter_s
        self._poll_interval_s = poll_interval_s
        self._rng = rng or random.Random()

        self._state = ConnectionState.DISCONNECTED
        self._mode = SyncMode.LIVE
        self._breaker = CircuitBreaker(name="ws_live", failure_threshold=failures_before_polling)
        self._closed = asyncio.Event()
        # Live websocket reference, used by send() and close()
        self._live_ws = None
        self._poll_task: asyncio.Task | None = None
        self._connections = 0
        self.dropped_frames = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def mode(self) -> SyncMode:
        return self._mode

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._live_ws is not None

    def next_backoff(self, attempt: int) -> float:
        """Delay before reconnect attempt `attempt` (1-based): capped doubling plus jitter."""
        delay = min(self._base_backoff_s * (2 ** max(0, attempt - 1)), self._max_backoff_s)
        if self._jitter_s > 0:
            delay += self._rng.uniform(0, self._jitter_s)
        return delay

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Main loop — reconnects automatically until close() or token rejection."""
        attempt = 0
        while not self._closed.is_set():
            self._set_state(ConnectionState.CONNECTING)
            connections_before = self._connections
            try:
                await self._connect_and_consume()
                if self._closed.is_set():
                    break
                reason = "server closed the connection"
                log.warning("Backend WebSocket closed by server")
            except TokenInvalidError as exc:
                await self._handle_token_invalid(exc)
                return
            except ConnectionClosed as exc:
                reason = f"connection closed: {exc}"
                log.warning("Backend WebSocket closed: %s", exc)
            except InvalidStatus as exc:
                reason = f"handshake rejected: HTTP {exc.response.status_code}"
                log.error("Backend WebSocket handshake rejected: HTTP %d", exc.response.status_code)
            except Exception as exc:
                reason = f"{type(exc).__name__}: {exc}"
                log.error("Backend WebSocket error: %s", reason)

            if self._closed.is_set():
                break
            self._set_state(ConnectionState.DISCONNECTED)

            if self._connections > connections_before:
                attempt = 0  # reset backoff after a connection that actually opened
            attempt += 1
            if self._breaker.record_failure(reason):
                self._enter_polling()

            delay = self.next_backoff(attempt)
            log.info("Reconnecting to backend WebSocket in %.2fs (attempt %d)", delay, attempt)
            await self._wait_closed(delay)

        self._set_state(ConnectionState.CLOSED)

    async def close(self) -> None:
        """Deliberate teardown (logout/shutdown). Idempotent."""
        if self._closed.is_set() and self._state == ConnectionState.CLOSED:
            return
        self._closed.set()
        self._set_state(ConnectionState.CLOSED)
        await self._stop_polling()
        ws = self._live_ws
        if ws is not None:
            try:
                await ws.close()
            except Exception as exc:
                log.debug("Error closing backend WebSocket: %s", exc)
        log.info("Backend WebSocket client closed")

    async def send(self, msg_type: str, payload: dict[str, Any]) -> bool:
        """Send an outbound event (agentStatusChange, supervisorResponseToAgent, ...)."""
        ws = self._live_ws
        if ws is None or not self.is_connected:
            log.warning("Cannot send '%s': backend WebSocket not connected", msg_type)
            return False
        try:
            await ws.send(json.dumps({"type": msg_type, "payload": payload}))
        except ConnectionClosed as exc:
            log.warning("Send '%s' failed, connection closed: %s", msg_type, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def _connect_and_consume(self) -> None:
        if not self._auth.has_token():
            raise TokenInvalidError("no access token available", details={"reason": "missing"})

        try:
            async with websockets.connect(
                self._auth.ws_url(self._ws_url),
                ping_interval=self.PING_INTERVAL_S,
                ping_timeout=self.PING_TIMEOUT_S,
                open_timeout=self.OPEN_TIMEOUT_S,
            ) as ws:
                await self._on_connected(ws)
                async for raw in ws:
                    if self._closed.is_set():
                        break
                    await self._handle_message(raw)
        except InvalidStatus as exc:
            if exc.response.status_code == 401:
                raise TokenInvalidError(
                    "WebSocket handshake rejected the access token",
                    details={"status": 401},
                ) from exc
            raise
        except ConnectionClosed as exc:
            if exc.rcvd is not None and exc.rcvd.reason == TOKEN_INVALID_REASON:
                raise TokenInvalidError(
                    "backend closed the connection: token invalid",
                    details={"code": exc.rcvd.code},
                ) from exc
            raise
        finally:
            self._live_ws = None

    async def _on_connected(self, ws) -> None:
        self._live_ws = ws
        self._connections += 1
        self._set_state(ConnectionState.CONNECTED)
        log.info("Backend WebSocket connected (connection #%d)", self._connections)
        recovered = self._breaker.record_success()
        if recovered or self._mode == SyncMode.POLLING:
            await self._stop_polling()
        if self._connections > 1:
            # Events may have been missed while disconnected
            await self._resync("reconnected")

    async def _handle_message(self, raw: str | bytes) -> None:
        if self._closed.is_set():
            return
        try:
            event = decode_frame(raw, self._routes)
        except FrameDecodeError as exc:
            self.dropped_frames += 1
            log.warning("Dropping malformed WS frame: %s", exc)
            return
        except Exception as exc:
            # Decoder bugs drop the frame, not the connection
            self.dropped_frames += 1
            log.exception("Decoder failed, dropping WS frame: %s", exc)
            return
        if event is None:
            return
        try:
            await self._on_event(event)
        except Exception as exc:
            log.exception("WS event handler failed for %s: %s", type(event).__name__, exc)

    async def _handle_token_invalid(self, exc: TokenInvalidError) -> None:
        log.critical("Backend rejected the access token — live updates stopped: %s", exc)
        self._auth.invalidate()
        self._closed.set()
        self._set_state(ConnectionState.CLOSED)
        await self._stop_polling()
        if self._on_auth_failure is not None:
            await self._on_auth_failure(exc)

    # ------------------------------------------------------------------
    # Polling fallback
    # ------------------------------------------------------------------

    def _enter_polling(self) -> None:
        if self._mode == SyncMode.POLLING:
            return
        self._mode = SyncMode.POLLING
        log.warning(
            "Switching to polling mode: snapshot re-fetch every %.1fs until the WebSocket recovers",
            self._poll_interval_s,
        )
        if self._on_resync is not None:
            self._poll_task = asyncio.create_task(self._poll_loop(), name="ws-poll-fallback")

    async def _stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if self._mode == SyncMode.POLLING:
            self._mode = SyncMode.LIVE
            log.info("Back to live mode")

    async def _poll_loop(self) -> None:
        while not self._closed.is_set():
            await self._resync("polling")
            await self._wait_closed(self._poll_interval_s)

    async def _resync(self, why: str) -> None:
        if self._on_resync is None or self._closed.is_set():
            return
        try:
            await self._on_resync()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.error("Snapshot resync (%s) failed: %s", why, exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _wait_closed(self, timeout_s: float) -> None:
        """Sleep for timeout_s, waking early if close() is called."""
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=timeout_s)
        except asyncio.TimeoutError:
            pass

    def _set_state(self, state: ConnectionState) -> None:
        if self._state == ConnectionState.CLOSED and state != ConnectionState.CLOSED:
            return
        if state != self._state:
            log.debug("WS state %s -> %s", self._state.value, state.value)
            self._state = state
