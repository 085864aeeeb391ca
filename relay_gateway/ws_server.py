"""
WebSocket Server for command record reception.

Handles:
- FastAPI WebSocket endpoint at /control
- Bearer token authentication
- Single-controller lock (first authenticated client drives the arm)
- Record validation and forwarding to the relay callback
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status

from arm_teleop.packet import ArmCommand, PacketError

logger = logging.getLogger(__name__)


@dataclass
class ControllerState:
    """State of the active controller."""
    client_id: str
    connected_at: float
    last_message_at: float
    message_count: int = 0


class WebSocketServer:
    """
    WebSocket server for receiving command records.

    Features:
    - Bearer token authentication
    - Single-controller lock, released when the controller disconnects
    - Message forwarding callback
    """

    def __init__(
        self,
        token: str,
        on_command: Optional[Callable[[ArmCommand, str], Awaitable[None]]] = None,
        on_controller_connected: Optional[Callable[[str], Awaitable[None]]] = None,
        on_controller_disconnected: Optional[Callable[[str], Awaitable[None]]] = None,
    ):
        """
        Initialize WebSocket server.

        Args:
            token: Required bearer token for authentication
            on_command: Callback for validated records (command, raw text)
            on_controller_connected: Callback when a client takes control
            on_controller_disconnected: Callback when the controller leaves
        """
        self.token = token
        self.on_command = on_command
        self.on_controller_connected = on_controller_connected
        self.on_controller_disconnected = on_controller_disconnected

        # Controller state
        self._active_controller: Optional[ControllerState] = None
        self._controller_lock = asyncio.Lock()

        # Connected clients (for monitoring)
        self._connected_clients: Dict[str, WebSocket] = {}
        self._client_counter = 0

        # Statistics
        self._total_messages = 0
        self._invalid_messages = 0
        self._ignored_messages = 0
        self._last_command: Optional[ArmCommand] = None

        self.app = FastAPI(title="Arm Teleop Relay")
        self._setup_routes()

    def _setup_routes(self):
        """Set up FastAPI routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            return {
                "status": "ok",
                "active_controller": self.get_active_controller(),
                "connected_clients": len(self._connected_clients),
                "total_messages": self._total_messages,
                "last_command": str(self._last_command) if self._last_command else None,
            }

        @self.app.websocket("/control")
        async def websocket_control(websocket: WebSocket):
            """WebSocket endpoint for command records."""
            await self._handle_websocket(websocket)

    async def _handle_websocket(self, websocket: WebSocket) -> None:
        """Handle incoming WebSocket connection."""
        auth_header = websocket.headers.get("authorization", "")
        if not self._verify_token(auth_header):
            logger.warning(f"Authentication failed from {websocket.client}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        self._client_counter += 1
        client_id = f"client_{self._client_counter}"

        # Lock is settled before the handshake completes
        async with self._controller_lock:
            if self._active_controller is None:
                now = time.time()
                self._active_controller = ControllerState(client_id, now, now)
                logger.info(f"Controller lock granted to {client_id}")
                if self.on_controller_connected:
                    await self.on_controller_connected(client_id)

        try:
            await websocket.accept()
            self._connected_clients[client_id] = websocket
            logger.info(f"Client connected: {client_id} from {websocket.client}")
            await self._receive_messages(websocket, client_id)
        except WebSocketDisconnect:
            logger.info(f"Client disconnected: {client_id}")
        except Exception as e:
            logger.error(f"Error handling client {client_id}: {e}")
        finally:
            self._connected_clients.pop(client_id, None)

            async with self._controller_lock:
                if self._active_controller and self._active_controller.client_id == client_id:
                    logger.info(f"Controller {client_id} disconnected, releasing lock")
                    self._active_controller = None
                    if self.on_controller_disconnected:
                        await self.on_controller_disconnected(client_id)

    def _verify_token(self, auth_header: str) -> bool:
        """Verify Bearer token."""
        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return False
        return parts[1] == self.token

    async def _receive_messages(self, websocket: WebSocket, client_id: str) -> None:
        """Receive and forward records from a client."""
        while True:
            data = await websocket.receive_text()
            self._total_messages += 1

            try:
                command = ArmCommand.from_wire(data)
            except PacketError as e:
                self._invalid_messages += 1
                logger.warning(f"Invalid record from {client_id}: {e}")
                continue

            async with self._controller_lock:
                if self._active_controller is None:
                    # Previous controller left; first client to send takes over
                    now = time.time()
                    self._active_controller = ControllerState(client_id, now, now)
                    logger.info(f"Controller lock granted to {client_id}")
                    if self.on_controller_connected:
                        await self.on_controller_connected(client_id)
                controller = self._active_controller
                if controller.client_id != client_id:
                    self._ignored_messages += 1
                    logger.debug(f"Ignoring record from {client_id}, not the controller")
                    continue
                controller.last_message_at = time.time()
                controller.message_count += 1

            self._last_command = command
            if self.on_command:
                try:
                    await self.on_command(command, data)
                except Exception as e:
                    logger.error(f"Error in command callback: {e}")

    def get_active_controller(self) -> Optional[str]:
        """Get the ID of the active controller."""
        return self._active_controller.client_id if self._active_controller else None

    def get_stats(self) -> dict:
        """Get server statistics."""
        return {
            "connected_clients": len(self._connected_clients),
            "active_controller": self.get_active_controller(),
            "total_messages": self._total_messages,
            "invalid_messages": self._invalid_messages,
            "ignored_messages": self._ignored_messages,
        }
