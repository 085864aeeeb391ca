#!/usr/bin/env python3
"""
Relay Gateway - Main Entry Point

Receives command records from teleop clients over WebSocket and
publishes them to MQTT for the arm's controller board bridge.

Environment Variables:
    CONTROL_TOKEN: Required authentication token
    HOST: Bind address (default: 0.0.0.0)
    PORT: Listen port (default: 8080)
    MQTT_HOST: MQTT broker host (default: localhost)
    MQTT_PORT: MQTT broker port (default: 1883)
    MQTT_TOPIC: Command topic (default: arm/cmd)

Usage:
    export CONTROL_TOKEN=mysecrettoken
    python -m relay_gateway.main
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

import uvicorn

from arm_teleop.packet import ArmCommand

from .mqtt_bridge import AsyncMQTTBridge
from .ws_server import WebSocketServer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class RelayGateway:
    """
    Relay integrating the WebSocket server and the MQTT bridge.

    Architecture:
        Client -> WebSocket -> RelayGateway -> MQTT (arm/cmd)
    """

    def __init__(
        self,
        token: str,
        host: str = "0.0.0.0",
        port: int = 8080,
        mqtt_host: str = "localhost",
        mqtt_port: int = 1883,
        mqtt_topic: str = "arm/cmd",
        enable_mqtt: bool = True,
    ):
        """
        Initialize relay gateway.

        Args:
            token: Authentication token for clients
            host: Server bind address
            port: Server port
            mqtt_host: MQTT broker host
            mqtt_port: MQTT broker port
            mqtt_topic: Topic command records are published to
            enable_mqtt: Whether to enable the MQTT bridge
        """
        self.token = token
        self.host = host
        self.port = port
        self.mqtt_host = mqtt_host
        self.mqtt_port = mqtt_port
        self.mqtt_topic = mqtt_topic
        self.enable_mqtt = enable_mqtt

        self.mqtt_bridge: Optional[AsyncMQTTBridge] = None
        self.ws_server = WebSocketServer(
            token=self.token,
            on_command=self._on_command,
            on_controller_connected=self._on_controller_connected,
            on_controller_disconnected=self._on_controller_disconnected,
        )
        self.relayed = 0

    async def start(self) -> None:
        """Start all gateway components."""
        logger.info("Starting Relay Gateway...")

        if self.enable_mqtt:
            self.mqtt_bridge = AsyncMQTTBridge(
                host=self.mqtt_host,
                port=self.mqtt_port,
                cmd_topic=self.mqtt_topic,
            )
            if await self.mqtt_bridge.start():
                logger.info("MQTT bridge started")
            else:
                logger.warning("MQTT bridge failed to connect")

        logger.info(f"Relay Gateway listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop all gateway components."""
        logger.info("Stopping Relay Gateway...")
        if self.mqtt_bridge:
            await self.mqtt_bridge.stop()
        logger.info("Relay Gateway stopped")

    async def _on_command(self, command: ArmCommand, record: str) -> None:
        """Forward a validated record to the board."""
        logger.debug(f"Received {command}")
        if self.mqtt_bridge and self.mqtt_bridge.connected:
            if await self.mqtt_bridge.publish_record(record):
                self.relayed += 1

    async def _on_controller_connected(self, client_id: str) -> None:
        logger.info(f"Controller connected: {client_id}")

    async def _on_controller_disconnected(self, client_id: str) -> None:
        # The arm holds its last commanded pose; nothing to publish
        logger.info(f"Controller disconnected: {client_id}")

    def get_app(self):
        """Get the FastAPI application for uvicorn."""
        return self.ws_server.app

    def get_stats(self) -> dict:
        """Get gateway statistics."""
        return {
            "relayed": self.relayed,
            "ws_server": self.ws_server.get_stats(),
            "mqtt_bridge": self.mqtt_bridge.get_stats() if self.mqtt_bridge else {},
        }


async def run_server(gateway: RelayGateway) -> None:
    """Run the server with uvicorn."""
    config = uvicorn.Config(
        gateway.get_app(),
        host=gateway.host,
        port=gateway.port,
        log_level="info",
        access_log=True,
    )
    server = uvicorn.Server(config)
    await server.serve()


async def main_async() -> None:
    """Async main entry point."""
    token = os.environ.get("CONTROL_TOKEN")
    if not token:
        logger.error("CONTROL_TOKEN environment variable is required")
        sys.exit(1)

    gateway = RelayGateway(
        token=token,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8080")),
        mqtt_host=os.environ.get("MQTT_HOST", "localhost"),
        mqtt_port=int(os.environ.get("MQTT_PORT", "1883")),
        mqtt_topic=os.environ.get("MQTT_TOPIC", "arm/cmd"),
    )

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await gateway.start()

        server_task = asyncio.create_task(run_server(gateway))
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        done, pending = await asyncio.wait(
            [server_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        for task in pending:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    except Exception as e:
        logger.error(f"Server error: {e}")
    finally:
        await gateway.stop()


def main() -> None:
    """Main entry point."""
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
