"""Realtime socket adapter

One websocket connection to the realtime market-data server, owned by the
SystemManager. The adapter keeps what the server says and nothing more:
provider status, symbol status and tick payloads are stored exactly as they
arrive, keyed by symbol. Staleness and inference are left to consumers.

Connection states::

    disconnected -> connecting -> connected
    connected/connecting -> reconnecting -> connecting   (unexpected close)

Reconnects use exponential backoff (250 ms doubling to a 10 s ceiling, with
bounded jitter); the timer is a ``call_later`` handle owned by the adapter
and cancelled on ``disconnect()``.
"""
from __future__ import annotations

import asyncio
import contextlib
import json
import math
import random
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

import websockets

from traderpro.core.enums import ConnectionState
from traderpro.logger import logger


StateListener = Callable[[Dict[str, Any]], None]

MAX_JITTER_MS = 100


class ReconnectBackoff:
    """Exponential reconnect delays with bounded jitter.

    ``next_delay_ms()`` returns the delay for the upcoming attempt and
    doubles the base for the one after; ``reset()`` goes back to the
    initial delay after a successful open.
    """

    def __init__(
        self,
        initial_ms: int = 250,
        max_ms: int = 10_000,
        jitter_ratio: float = 0.1,
        rng: Callable[[], float] = random.random,
    ):
        self.initial_ms = initial_ms
        self.max_ms = max_ms
        self.jitter_ratio = jitter_ratio
        self._rng = rng
        self._base_ms = initial_ms
        self.attempt = 0

    @property
    def base_ms(self) -> int:
        return self._base_ms

    def next_delay_ms(self) -> int:
        base = min(self._base_ms, self.max_ms)
        jitter = min(MAX_JITTER_MS, math.floor(base * self.jitter_ratio))
        delay = min(self.max_ms, base + (math.floor(self._rng() * jitter) if jitter else 0))

        self.attempt += 1
        self._base_ms = min(self.max_ms, base * 2)
        return delay

    def reset(self) -> None:
        self._base_ms = self.initial_ms
        self.attempt = 0


def normalize_symbols(symbols: Iterable[Any]) -> List[str]:
    out: List[str] = []
    for s in symbols or ():
        sym = str(s or "").strip().upper()
        if sym and sym not in out:
            out.append(sym)
    return out


class RealtimeSocketAdapter:
    """Single-owner websocket client for the realtime market-data server."""

    def __init__(
        self,
        url: str,
        backoff: Optional[ReconnectBackoff] = None,
        connect: Optional[Callable[..., Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.url = url
        self.backoff = backoff or ReconnectBackoff()
        self._connect = connect or websockets.connect
        self._clock = clock

        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._intentionally_disconnected = False
        self._tracked: List[str] = []
        self._listeners: List[StateListener] = []
        self._emit_scheduled = False

        self._state: Dict[str, Any] = {
            "connectionState": ConnectionState.DISCONNECTED,
            "lastMessageAt": None,
            "providerStatus": None,
            "symbolStatus": {
                "staleAfterMs": None,
                "lastSeenAtBySymbol": {},
                "isStaleBySymbol": {},
            },
            "lastTickBySymbol": {},
            "lastError": None,
        }

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def connection_state(self) -> ConnectionState:
        return self._state["connectionState"]

    @property
    def tracked_symbols(self) -> List[str]:
        return list(self._tracked)

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the current state; mutating it does not touch the adapter."""
        status = self._state["symbolStatus"]
        return {
            "connectionState": self._state["connectionState"].value,
            "lastMessageAt": self._state["lastMessageAt"],
            "providerStatus": self._state["providerStatus"],
            "symbolStatus": {
                "staleAfterMs": status["staleAfterMs"],
                "lastSeenAtBySymbol": dict(status["lastSeenAtBySymbol"]),
                "isStaleBySymbol": dict(status["isStaleBySymbol"]),
            },
            "lastTickBySymbol": dict(self._state["lastTickBySymbol"]),
            "lastError": dict(self._state["lastError"]) if self._state["lastError"] else None,
            "trackedSymbols": list(self._tracked),
            "reconnectAttempt": self.backoff.attempt,
        }

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; it is called once immediately. Returns an unsubscribe callable."""
        self._listeners.append(listener)
        listener(self.snapshot())

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open the connection if it is not open or opening already (needs a running loop)."""
        if self._task is not None and not self._task.done():
            return

        self._intentionally_disconnected = False
        self._cancel_reconnect()
        if self.connection_state != ConnectionState.CONNECTED:
            self._set_connection_state(ConnectionState.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def disconnect(self) -> None:
        self._intentionally_disconnected = True
        self._cancel_reconnect()

        ws, self._ws = self._ws, None
        if ws is not None:
            with contextlib.suppress(websockets.exceptions.WebSocketException, OSError):
                await ws.close()

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._set_connection_state(ConnectionState.DISCONNECTED)
        logger.info("[RealtimeWS] Disconnected")

    async def _run(self) -> None:
        try:
            ws = await self._connect(self.url)
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            logger.warning(f"[RealtimeWS] Connect to {self.url} failed: {e}")
            self._on_closed()
            return

        self._ws = ws
        self.backoff.reset()
        self._set_connection_state(ConnectionState.CONNECTED)
        logger.info(f"[RealtimeWS] Connected to {self.url}")

        if self._tracked:
            await self._send({"type": "subscribe", "symbols": list(self._tracked)})

        try:
            async for raw in ws:
                self.handle_message(raw)
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning(f"[RealtimeWS] Connection closed: {e}")
        finally:
            if self._ws is ws:
                self._ws = None
            self._on_closed()

    def _on_closed(self) -> None:
        if self._intentionally_disconnected:
            self._set_connection_state(ConnectionState.DISCONNECTED)
            return
        self._set_connection_state(ConnectionState.RECONNECTING)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            return
        delay_ms = self.backoff.next_delay_ms()
        logger.info(f"[RealtimeWS] Reconnecting in {delay_ms} ms (attempt {self.backoff.attempt})")
        self._reconnect_handle = asyncio.get_running_loop().call_later(delay_ms / 1000, self._reconnect_due)

    def _reconnect_due(self) -> None:
        self._reconnect_handle = None
        if self._intentionally_disconnected:
            return
        self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def set_tracked_symbols(self, symbols: Iterable[Any]) -> Dict[str, List[str]]:
        """
        Replace the tracked set, sending only the difference upstream

        Returns:
            ``{"subscribe": [...], "unsubscribe": [...]}`` as computed (sent only when connected)
        """
        wanted = normalize_symbols(symbols)
        current = set(self._tracked)
        to_subscribe = [s for s in wanted if s not in current]
        to_unsubscribe = [s for s in self._tracked if s not in set(wanted)]

        self._tracked = wanted
        if to_unsubscribe:
            await self._send({"type": "unsubscribe", "symbols": to_unsubscribe})
        if to_subscribe:
            await self._send({"type": "subscribe", "symbols": to_subscribe})
        if to_subscribe or to_unsubscribe:
            self._emit()
        return {"subscribe": to_subscribe, "unsubscribe": to_unsubscribe}

    async def _send(self, message: Dict[str, Any]) -> bool:
        ws = self._ws
        if ws is None:
            return False
        try:
            await ws.send(json.dumps(message))
        except websockets.exceptions.ConnectionClosed as e:
            logger.debug(f"[RealtimeWS] Dropped {message.get('type')} on closed socket: {e}")
            return False
        return True

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def handle_message(self, raw: Any) -> None:
        """Route one inbound frame by its ``type``; malformed frames are ignored."""
        try:
            msg = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("[RealtimeWS] Ignoring non-JSON frame")
            return
        if not isinstance(msg, dict) or not isinstance(msg.get("type"), str):
            return

        state = self._state
        state["lastMessageAt"] = int(self._clock() * 1000)
        kind = msg["type"]

        if kind == "provider_status":
            state["providerStatus"] = msg.get("provider_status")

        elif kind == "symbol_status":
            state["symbolStatus"] = {
                "staleAfterMs": msg.get("staleAfterMs"),
                "lastSeenAtBySymbol": msg.get("lastSeenAtBySymbol") or {},
                "isStaleBySymbol": msg.get("isStaleBySymbol") or {},
            }
            if msg.get("provider_status") is not None:
                state["providerStatus"] = msg["provider_status"]

        elif kind == "ticks_1s":
            ticks = msg.get("ticks")
            if isinstance(ticks, dict):
                for key, tick in ticks.items():
                    symbol = str(key or "").strip().upper()
                    if symbol and tick:
                        state["lastTickBySymbol"][symbol] = tick
            if msg.get("provider_status") is not None:
                state["providerStatus"] = msg["provider_status"]

        elif kind == "md":
            event = msg.get("event") if isinstance(msg.get("event"), dict) else None
            symbol = str((event or {}).get("symbol") or "").strip().upper()
            if symbol:
                state["lastTickBySymbol"][symbol] = {**event, "provider_status": msg.get("provider_status")}
            if msg.get("provider_status") is not None:
                state["providerStatus"] = msg["provider_status"]

        elif kind == "latest":
            latest = msg.get("latest")
            if isinstance(latest, dict):
                for key, payload in latest.items():
                    symbol = str(key or "").strip().upper()
                    if symbol:
                        state["lastTickBySymbol"][symbol] = payload

        elif kind == "error":
            state["lastError"] = {
                "code": msg.get("code") or "ERROR",
                "message": msg.get("message") or msg.get("error") or "",
                "at": state["lastMessageAt"],
            }
            logger.warning(f"[RealtimeWS] Server error {state['lastError']['code']}: {state['lastError']['message']}")

        elif kind not in ("hello", "subscribed"):
            logger.debug(f"[RealtimeWS] Unknown message type: {kind}")

        self._emit()

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _set_connection_state(self, next_state: ConnectionState) -> None:
        if self._state["connectionState"] == next_state:
            return
        logger.info(f"[RealtimeWS] {self._state['connectionState'].value} -> {next_state.value}")
        self._state["connectionState"] = next_state
        self._emit()

    def _emit(self) -> None:
        """Schedule one listener notification for everything changed in this loop iteration."""
        if self._emit_scheduled or not self._listeners:
            return
        self._emit_scheduled = True
        asyncio.get_running_loop().call_soon(self._flush)

    def _flush(self) -> None:
        self._emit_scheduled = False
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
