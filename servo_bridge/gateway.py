from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Any

import websockets
from websockets.asyncio.server import Server, ServerConnection
from websockets.datastructures import Headers
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from . import __version__
from .config import BridgeConfig
from .processor import CommandProcessor
from .protocol import PROTOCOL_VERSION, Event, ProtocolError, Ready, Shutdown, decode_command, encode_event
from .registry import SessionRegistry
from .resolver import PageResolver

logger = logging.getLogger("servo.bridge.gateway")

BRIDGE_WELL_KNOWN_PATH = "/.well-known/servo-bridge"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(eq=False)
class _Connection:
    conn_id: str
    ws: ServerConnection
    # Existing tabs this connection has issued commands for; crash reports follow them.
    tabs: set[str] = field(default_factory=set)
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class BridgeGateway:
    """WebSocket front door for the tab session bridge.

    - Sync lifecycle (start / stop / wait) for the process entry point and tests.
    - Async server internally, running in a dedicated daemon thread.
    - One handler task per connection; its commands run strictly in arrival order.
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        registry: SessionRegistry | None = None,
        resolver: PageResolver | None = None,
        processor: CommandProcessor | None = None,
    ) -> None:
        self.config = config if config is not None else BridgeConfig.from_env()
        self.host = self.config.host
        self.port = int(self.config.port)

        if processor is None:
            processor = CommandProcessor(
                registry if registry is not None else SessionRegistry(),
                resolver,
                resolve_timeout=self.config.resolve_timeout,
            )
        self.processor = processor
        self.registry = processor.registry

        self._lock = threading.Lock()
        self._bound = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._server: Server | None = None
        self._stop_async: asyncio.Event | None = None
        self._bind_error: str | None = None
        self._started_at_ms = 0

        self._conn_ids = itertools.count(1)
        self._connections: dict[str, _Connection] = {}

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0) -> None:
        """Bind the listener in a background thread.

        Raises:
            RuntimeError: the listener could not be bound (address in use, bad host, ...).
        """
        if self._thread is not None and self._thread.is_alive():
            return

        self._bound.clear()
        with self._lock:
            self._bind_error = None

        t = threading.Thread(target=self._run_thread, name="servo-bridge-gateway", daemon=True)
        self._thread = t
        t.start()

        self._bound.wait(timeout=max(0.05, float(wait_timeout)))
        with self._lock:
            server = self._server
            bind_error = self._bind_error

        if server is not None:
            return
        if bind_error:
            raise RuntimeError(f"Bridge bind failed on {self.host}:{self.port}: {bind_error}")
        raise RuntimeError(f"Bridge failed to start on {self.host}:{self.port}")

    def stop(self, *, timeout: float = 2.0) -> None:
        loop = self._loop
        stop_async = self._stop_async
        if loop is not None and stop_async is not None:
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(stop_async.set)

        t = self._thread
        if t is not None:
            t.join(timeout=timeout)

    def wait(self) -> None:
        """Block until the server thread exits."""
        t = self._thread
        while t is not None and t.is_alive():
            t.join(timeout=0.5)

    def is_listening(self) -> bool:
        with self._lock:
            return self._server is not None

    def status(self) -> dict[str, Any]:
        with self._lock:
            listening = self._server is not None
            bind_error = self._bind_error
            connections = len(self._connections)
            started_at = self._started_at_ms
        return {
            "type": "servoBridge",
            "protocolVersion": PROTOCOL_VERSION,
            "serverVersion": __version__,
            "pid": int(os.getpid()),
            "listening": listening,
            "host": self.host,
            "port": self.port,
            "tabs": len(self.registry),
            "connections": connections,
            **({"serverStartedAtMs": started_at} if started_at else {}),
            **({"bindError": bind_error} if bind_error else {}),
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Crash forwarding
    # ─────────────────────────────────────────────────────────────────────────

    def report_crash(self, tab_id: str, process_id: str, *, timeout: float = 2.0) -> int:
        """Thread-safe entry point for the rendering collaborator.

        Must be called from outside the gateway's event loop; code already running
        on the loop awaits ``forward_crash`` instead. Returns the number of
        connections the crash event reached.
        """
        loop = self._loop
        if loop is None or not self.is_listening():
            return 0
        fut = asyncio.run_coroutine_threadsafe(self.forward_crash(tab_id, process_id), loop)
        return int(fut.result(timeout=timeout))

    async def forward_crash(self, tab_id: str, process_id: str) -> int:
        events = self.processor.crash(tab_id, process_id)
        # A connection may still list a tab that another connection shut down.
        if tab_id not in self.registry:
            return 0
        with self._lock:
            targets = [c for c in self._connections.values() if tab_id in c.tabs]
        delivered = 0
        for conn in targets:
            if await self._deliver(conn, events):
                delivered += 1
        return delivered

    # ─────────────────────────────────────────────────────────────────────────
    # Internals (async)
    # ─────────────────────────────────────────────────────────────────────────

    def _run_thread(self) -> None:
        try:
            asyncio.run(self._run_async())
        finally:
            self._loop = None
            self._bound.set()

    async def _run_async(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop_async = asyncio.Event()

        try:
            server = await websockets.serve(
                self._handle_connection,
                self.host,
                self.port,
                process_request=self._process_request,
                max_size=self.config.max_message_bytes,
            )
        except OSError as exc:
            with self._lock:
                self._bind_error = str(exc) or exc.__class__.__name__
            logger.error("bridge_bind_failed host=%s port=%s error=%s", self.host, self.port, exc)
            return

        bound_port = self.port
        for sock in server.sockets:
            with contextlib.suppress(Exception):
                bound_port = int(sock.getsockname()[1])
                break

        with self._lock:
            self._server = server
            self.port = bound_port
            self._started_at_ms = _now_ms()
        logger.info("bridge_listening url=ws://%s:%s", self.host, self.port)
        self._bound.set()

        try:
            await self._stop_async.wait()
        finally:
            await self._shutdown_async()

    async def _shutdown_async(self) -> None:
        with self._lock:
            srv = self._server
            self._server = None
        if srv is not None:
            srv.close()
            with contextlib.suppress(Exception):
                await srv.wait_closed()
        logger.info("bridge_stopped")

    async def _handle_connection(self, ws: ServerConnection) -> None:
        conn = _Connection(conn_id=f"conn-{next(self._conn_ids)}", ws=ws)
        with self._lock:
            self._connections[conn.conn_id] = conn
        logger.info("connection_open conn=%s peer=%s", conn.conn_id, ws.remote_address)

        try:
            if not await self._deliver(conn, [Ready()]):
                return
            await self._command_loop(conn)
        except ConnectionClosed as exc:
            logger.info("connection_lost conn=%s reason=%s", conn.conn_id, exc)
        finally:
            with self._lock:
                self._connections.pop(conn.conn_id, None)
            logger.info("connection_closed conn=%s", conn.conn_id)

    async def _command_loop(self, conn: _Connection) -> None:
        async for raw in conn.ws:
            if not isinstance(raw, str):
                logger.debug("binary_frame_ignored conn=%s bytes=%d", conn.conn_id, len(raw))
                continue

            try:
                command = decode_command(raw)
            except ProtocolError as exc:
                logger.warning("malformed_message conn=%s error=%s", conn.conn_id, exc)
                continue

            if self.config.trace:
                logger.info("recv conn=%s type=%s tab=%s", conn.conn_id, command.TYPE, command.tab_id)

            try:
                events = await self.processor.handle(command)
            except Exception:
                logger.exception("command_failed conn=%s type=%s tab=%s", conn.conn_id, command.TYPE, command.tab_id)
                continue

            if isinstance(command, Shutdown) or command.tab_id not in self.registry:
                conn.tabs.discard(command.tab_id)
            else:
                conn.tabs.add(command.tab_id)

            if not await self._deliver(conn, events):
                return

    async def _deliver(self, conn: _Connection, events: list[Event]) -> bool:
        """Send ``events`` in order; on the first failure drop the rest and report False."""
        if not events:
            return True
        async with conn.send_lock:
            for i, event in enumerate(events):
                try:
                    await conn.ws.send(encode_event(event))
                except ConnectionClosed as exc:
                    logger.warning(
                        "send_failed conn=%s type=%s dropped=%d reason=%s",
                        conn.conn_id,
                        event.TYPE,
                        len(events) - i,
                        exc,
                    )
                    return False
                if self.config.trace:
                    logger.info("send conn=%s type=%s", conn.conn_id, event.TYPE)
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Plain HTTP on the WebSocket port
    # ─────────────────────────────────────────────────────────────────────────

    def _process_request(self, _conn: ServerConnection, request: Request) -> Response | None:
        """Let WebSocket upgrades through; answer the status probe; 404 anything else."""
        upgrade = str(request.headers.get("Upgrade") or "").lower()
        if upgrade == "websocket":
            return None
        if request.path == BRIDGE_WELL_KNOWN_PATH:
            body = json.dumps(self.status(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
            return self._http_response(200, "OK", "application/json", body)
        return self._http_response(404, "Not Found", "text/plain", b"not found")

    @staticmethod
    def _http_response(status: int, reason: str, content_type: str, body: bytes) -> Response:
        headers = Headers()
        headers["Content-Type"] = content_type
        headers["Content-Length"] = str(len(body))
        headers["Cache-Control"] = "no-store"
        headers["Access-Control-Allow-Origin"] = "*"
        return Response(status, reason, headers, body)
