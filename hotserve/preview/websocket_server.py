import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Iterable, Optional
from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from ..core.errors import HubClosed, HubLagged
from .reload_hub import RELOAD_SIGNAL, HotPatch, ReloadHub, encode_message
from .template_index import TemplateRecord

logger = logging.getLogger(__name__)

SEND_ERRORS = (WebSocketDisconnect, RuntimeError, OSError)

class SessionGateway:
    """Forwards hub messages to one connected client"""

    def __init__(self,
                 hub: ReloadHub,
                 send: Callable[[str], Awaitable[None]],
                 initial: Optional[Callable[[], Iterable[TemplateRecord]]] = None):
        self.session_id = uuid.uuid4().hex
        self.hub = hub
        self._send = send
        self._initial = initial
        self.subscription = None
        self.sent = 0

    async def run(self):
        """Forward messages until the client goes away or the hub closes"""
        self.subscription = self.hub.subscribe()
        logger.info(f"Session {self.session_id} connected")
        try:
            # patches applied since the page's build was served
            if self._initial:
                for record in self._initial():
                    if not await self._forward(encode_message(HotPatch(record))):
                        return
            while True:
                try:
                    message = await self.subscription.recv()
                except HubLagged as e:
                    logger.warning(f"Session {self.session_id} missed {e.missed} messages; forcing reload")
                    if not await self._forward(RELOAD_SIGNAL):
                        return
                    self.subscription.close()
                    self.subscription = self.hub.subscribe()
                    continue
                except HubClosed:
                    return
                if not await self._forward(encode_message(message)):
                    return
        finally:
            self.subscription.close()
            logger.info(f"Session {self.session_id} closed")

    async def _forward(self, text: str) -> bool:
        try:
            await self._send(text)
        except SEND_ERRORS as e:
            logger.debug(f"Session {self.session_id} send failed: {e!r}")
            return False
        self.sent += 1
        return True

async def wait_disconnect(websocket: WebSocket):
    """Drain client frames until the connection closes"""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return

async def serve_session(websocket: WebSocket,
                        hub: ReloadHub,
                        initial: Optional[Callable[[], Iterable[TemplateRecord]]] = None):
    """Accept a client and run its gateway until either side closes"""
    await websocket.accept()
    gateway = SessionGateway(hub, websocket.send_text, initial)
    forward = asyncio.create_task(gateway.run())
    closed = asyncio.create_task(wait_disconnect(websocket))
    try:
        done, _ = await asyncio.wait({forward, closed}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (forward, closed):
            task.cancel()
        await asyncio.gather(forward, closed, return_exceptions=True)
    for task in done:
        task.result()
    if forward in done and websocket.client_state == WebSocketState.CONNECTED:
        await websocket.close()
