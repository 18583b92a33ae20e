#!/usr/bin/env python3
"""
WebSocket transport to the usb2snes server.

Owns exactly one connection handle at a time:
- open/send/close with a generation tag per open
- a single writer task, so frames leave in send() order
- inbound frames dispatched to callbacks on the loop thread
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from typing import Any, Callable

import aiohttp
from aiohttp import WSMsgType

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Connection could not be opened or failed while open."""


class WebSocketTransport:
    """One persistent WebSocket connection with callback dispatch."""

    def __init__(
        self,
        url: str,
        *,
        on_open: Callable[[], None],
        on_text: Callable[[str], None],
        on_binary: Callable[[bytes], None],
        on_error: Callable[[TransportError], None],
        on_close: Callable[[int | None], None],
        connect_timeout_s: float = 5.0,
    ) -> None:
        self.url = url
        self.connect_timeout_s = connect_timeout_s
        self._on_open = on_open
        self._on_text = on_text
        self._on_binary = on_binary
        self._on_error = on_error
        self._on_close = on_close

        self._generation = 0
        self._task: asyncio.Task[Any] | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._outbox: deque[str] = deque()
        self._outbox_ready = asyncio.Event()
        self.frames_sent = 0
        self.frames_received = 0

    @property
    def generation(self) -> int:
        return self._generation

    def has_handle(self) -> bool:
        return self._task is not None

    def is_open(self) -> bool:
        ws = self._ws
        return ws is not None and not ws.closed

    def open(self) -> bool:
        """Start connecting. No-op (returns False) if a handle exists."""
        if self._task is not None:
            return False
        self._generation += 1
        logger.info(f"🔌 Connecting to {self.url}")
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._generation)
        )
        return True

    def send(self, message: dict[str, Any]) -> bool:
        if not self.is_open():
            return False
        self._outbox.append(json.dumps(message))
        self._outbox_ready.set()
        self.frames_sent += 1
        return True

    def close(self) -> None:
        """Invalidate the handle now; socket shutdown finishes in background."""
        if self._task is None:
            return
        self._generation += 1
        task = self._task
        self._release()
        task.cancel()

    def _release(self) -> None:
        self._task = None
        self._ws = None
        self._outbox.clear()

    def _dispatch(self, generation: int, callback: Callable[..., None], *args: Any) -> None:
        if generation != self._generation:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Transport callback {callback!r} failed")

    async def _run(self, generation: int) -> None:
        session = aiohttp.ClientSession()
        ws: aiohttp.ClientWebSocketResponse | None = None
        writer: asyncio.Task[Any] | None = None
        try:
            try:
                ws = await asyncio.wait_for(
                    session.ws_connect(self.url, autoping=True),
                    timeout=self.connect_timeout_s,
                )
            except (aiohttp.InvalidURL, ValueError) as e:
                # Bad endpoint: report only, nothing was ever opened
                if generation == self._generation:
                    self._release()
                    self._dispatch(generation, self._on_error,
                                   TransportError(f"Invalid endpoint {self.url}: {e}"))
                return
            except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                if generation == self._generation:
                    self._dispatch(generation, self._on_error,
                                   TransportError(f"Connect to {self.url} failed: {e!r}"))
                if generation == self._generation:
                    self._release()
                    self._dispatch(generation, self._on_close, None)
                return

            if generation != self._generation:
                return
            self._ws = ws
            writer = asyncio.create_task(self._write_loop(ws, generation))
            logger.info(f"🔌 Connected to {self.url}")
            self._dispatch(generation, self._on_open)

            async for msg in ws:
                if generation != self._generation:
                    break
                self.frames_received += 1
                if msg.type == WSMsgType.TEXT:
                    self._dispatch(generation, self._on_text, msg.data)
                elif msg.type == WSMsgType.BINARY:
                    self._dispatch(generation, self._on_binary, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    self._dispatch(generation, self._on_error,
                                   TransportError(f"WebSocket error: {ws.exception()!r}"))

            if generation == self._generation:
                code = ws.close_code
                logger.info(f"🔌 Connection to {self.url} closed (code={code})")
                self._release()
                self._dispatch(generation, self._on_close, code)
        finally:
            if writer is not None:
                writer.cancel()
            await asyncio.shield(self._dispose(session, ws))

    async def _write_loop(self, ws: aiohttp.ClientWebSocketResponse, generation: int) -> None:
        while generation == self._generation:
            await self._outbox_ready.wait()
            self._outbox_ready.clear()
            while self._outbox and generation == self._generation:
                data = self._outbox.popleft()
                try:
                    await ws.send_str(data)
                except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
                    self._dispatch(generation, self._on_error,
                                   TransportError(f"Send failed: {e!r}"))
                    return
                logger.debug(f"→ {data}")

    @staticmethod
    async def _dispose(
        session: aiohttp.ClientSession,
        ws: aiohttp.ClientWebSocketResponse | None,
    ) -> None:
        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except (aiohttp.ClientError, ConnectionError) as e:
                logger.debug(f"WebSocket close failed: {e}")
        await session.close()
