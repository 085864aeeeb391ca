"""
WebSocket transport to the relay gateway.

Handles:
- WebSocket connection with Bearer token auth
- One text frame per command record
- Detection of server-side closure (reported as link loss)

Reconnection is left to the operator, like any other connect failure.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import (
    ConnectionClosed,
    InvalidStatus,
    WebSocketException,
)

from .transport import ConnectError, SendError, Session

logger = logging.getLogger(__name__)


class WebSocketSession(Session):
    """Session that forwards packets to the relay gateway."""

    name = "ws"

    def __init__(
        self,
        server_url: str,
        token: str,
        open_timeout: float = 10.0,
        on_disconnected: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        """
        Args:
            server_url: Relay URL (e.g., ws://127.0.0.1:8080/control)
            token: Bearer token for authentication
            open_timeout: Seconds allowed for the opening handshake
            on_disconnected: Callback when the server drops the connection
        """
        super().__init__(on_disconnected=on_disconnected)
        self.server_url = server_url
        self.token = token
        self.open_timeout = open_timeout
        self._ws: Optional[ClientConnection] = None
        self._reader_task: Optional[asyncio.Task] = None

    @property
    def description(self) -> str:
        return f"relay {self.server_url}"

    async def _open(self) -> None:
        headers = {"Authorization": f"Bearer {self.token}"}
        logger.info(f"Connecting to {self.server_url}...")
        try:
            self._ws = await connect(
                self.server_url,
                additional_headers=headers,
                open_timeout=self.open_timeout,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            )
        except InvalidStatus as e:
            raise ConnectError(f"Relay rejected connection: HTTP {e.response.status_code}") from e
        except ConnectionRefusedError as e:
            raise ConnectError("Connection refused - is the relay running?") from e

        self._reader_task = asyncio.get_running_loop().create_task(self._read_loop(self._ws))

    async def _read_loop(self, ws: ClientConnection) -> None:
        """Drain server messages until the connection closes."""
        try:
            async for message in ws:
                logger.debug(f"Received from relay: {message}")
        except ConnectionClosed:
            pass
        if self._ws is ws:
            self._ws = None
            self._reader_task = None
        await self._link_lost()

    async def _close(self) -> None:
        ws, self._ws = self._ws, None
        task, self._reader_task = self._reader_task, None
        if ws is not None:
            await ws.close()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _write(self, data: bytes) -> None:
        if self._ws is None:
            raise SendError("not connected")
        try:
            await self._ws.send(data.decode("ascii"))
        except (ConnectionClosed, WebSocketException) as e:
            raise SendError(str(e)) from e
