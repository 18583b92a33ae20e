"""
Mock usb2snes server for tests.

Answers DeviceList with a fixed device list, remembers Attach, and answers
each GetAddress with the requested bytes from an in-memory map, in order.
"""

import json
import logging
from contextlib import asynccontextmanager

from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

logger = logging.getLogger(__name__)


class MockUsb2Snes:
    """In-process usb2snes WebSocket server."""

    def __init__(self, devices=None, memory=None, reply_to_reads=True):
        self.devices = list(devices if devices is not None else ["SD2SNES"])
        self.memory = dict(memory or {})
        self.reply_to_reads = reply_to_reads
        self.connection_count = 0
        self.requests = []
        self.attached = None
        self._sockets = set()

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.handle_connection)
        return app

    async def handle_connection(self, request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.connection_count += 1
        self._sockets.add(ws)
        try:
            async for msg in ws:
                if msg.type != WSMsgType.TEXT:
                    continue
                req = json.loads(msg.data)
                self.requests.append(req)
                await self._answer(ws, req)
        finally:
            self._sockets.discard(ws)
        return ws

    async def _answer(self, ws, req):
        opcode = req.get("Opcode")
        if opcode == "DeviceList":
            await ws.send_str(json.dumps({"Results": self.devices}))
        elif opcode == "Attach":
            self.attached = req["Operands"][0]
        elif opcode == "GetAddress" and self.reply_to_reads:
            address = int(req["Operands"][0], 16)
            length = int(req["Operands"][1], 16)
            data = bytes(
                self.memory.get(address + i, 0) & 0xFF for i in range(length)
            )
            await ws.send_bytes(data)

    async def drop_clients(self):
        for ws in list(self._sockets):
            await ws.close()

    def opcodes(self):
        return [r.get("Opcode") for r in self.requests]

    @asynccontextmanager
    async def serve(self):
        """Yields the ws:// URL of the running server."""
        server = TestServer(self.make_app(), host="127.0.0.1")
        await server.start_server()
        try:
            yield f"ws://127.0.0.1:{server.port}/"
        finally:
            await server.close()
