"""Bidirectional transport seam and its websocket implementation.

The connection manager talks to a Transport through three callbacks (open,
message, close) plus `send`/`close`. Tests inject an in-memory fake; the
production transport runs the websocket client as an asyncio task on the
same loop as the rest of the client, so callbacks never run concurrently.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

from loguru import logger
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from panesync.constants import CLOSE_ABNORMAL, CLOSE_NORMAL

OnOpen = Callable[[], None]
OnMessage = Callable[[str], None]
OnClose = Callable[[int, str], None]


class Transport(Protocol):
    """One connection attempt. A transport is started at most once."""

    @property
    def is_open(self) -> bool: ...

    def start(self, on_open: OnOpen, on_message: OnMessage, on_close: OnClose) -> None: ...

    def send(self, raw: str) -> bool: ...

    def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None: ...


TransportFactory = Callable[[], Transport]


class WebSocketTransport:
    """Transport over `websockets`' asyncio client.

    Outbound frames go through a queue drained by a single writer task, so
    frames leave in the order `send` was called.
    """

    def __init__(self, url: str, *, open_timeout: float = 10.0) -> None:
        self.url = url
        self.open_timeout = open_timeout
        self._ws: ClientConnection | None = None
        self._task: asyncio.Task[None] | None = None
        self._writer: asyncio.Task[None] | None = None
        self._closer: asyncio.Task[None] | None = None
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._requested_close: int | None = None
        self._on_open: OnOpen | None = None
        self._on_message: OnMessage | None = None
        self._on_close: OnClose | None = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._requested_close is None

    def start(self, on_open: OnOpen, on_message: OnMessage, on_close: OnClose) -> None:
        if self._task is not None:
            raise RuntimeError("Transport already started")
        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._task = asyncio.get_running_loop().create_task(self._run(), name="ws-client")
        self._task.add_done_callback(self._log_task_exception)

    def send(self, raw: str) -> bool:
        if not self.is_open:
            return False
        self._outbox.put_nowait(raw)
        return True

    def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        if self._requested_close is not None:
            return
        self._requested_close = code
        if self._ws is not None:
            self._closer = asyncio.get_running_loop().create_task(self._ws.close(code, reason))
        elif self._task is not None:
            # Still opening: abandon the handshake.
            self._task.cancel()

    def _log_task_exception(self, task: asyncio.Task[None]) -> None:
        """Report errors raised by the open/message/close callbacks."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.opt(exception=exc).error("WebSocket task {} failed: {}", task.get_name(), exc)

    async def _write_loop(self, ws: ClientConnection) -> None:
        while True:
            raw = await self._outbox.get()
            try:
                await ws.send(raw)
            except ConnectionClosed:
                return

    async def _run(self) -> None:
        code, reason = CLOSE_ABNORMAL, ""
        try:
            logger.debug("Connecting to WebSocket at {}", self.url)
            async with connect(self.url, open_timeout=self.open_timeout) as ws:
                self._ws = ws
                self._writer = asyncio.create_task(self._write_loop(ws), name="ws-writer")
                logger.info("WebSocket connected to {}", self.url)
                if self._on_open:
                    self._on_open()
                async for message in ws:
                    text = message if isinstance(message, str) else message.decode("utf-8", errors="replace")
                    if self._on_message:
                        self._on_message(text)
            # Leaving the context waits for the closing handshake, so the codes are final.
            code = ws.close_code if ws.close_code is not None else CLOSE_ABNORMAL
            reason = ws.close_reason or ""
        except ConnectionClosed as e:
            if e.rcvd is not None:
                code, reason = e.rcvd.code, e.rcvd.reason
            logger.info("WebSocket connection closed: {}", e)
        except asyncio.CancelledError:
            code = self._requested_close if self._requested_close is not None else CLOSE_NORMAL
            raise
        except (WebSocketException, OSError, TimeoutError) as e:
            logger.warning("WebSocket error: {}", e)
        finally:
            self._ws = None
            if self._writer is not None:
                self._writer.cancel()
                self._writer = None
            logger.debug("WebSocket closed with code {}", code)
            if self._on_close:
                self._on_close(code, reason)
