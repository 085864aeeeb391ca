"""
MQTT Bridge for the arm controller board.

Handles:
- Publishing raw command records to arm/cmd
- Subscribing to arm/status for logging
"""

import asyncio
import logging
import time
from typing import Callable, Optional

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)


class MQTTBridge:
    """
    MQTT bridge for the controller board.

    Records are published unchanged (``B090S090E090G000\\r\\n``) so the board
    side parses exactly the bytes it would receive over BLE UART.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 1883,
        cmd_topic: str = "arm/cmd",
        status_topic: str = "arm/status",
        on_status: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize MQTT bridge.

        Args:
            host: MQTT broker host
            port: MQTT broker port
            cmd_topic: Topic for command records
            status_topic: Topic the board reports status on
            on_status: Callback for status messages
        """
        self.host = host
        self.port = port
        self.cmd_topic = cmd_topic
        self.status_topic = status_topic
        self.on_status = on_status

        self._client: Optional[mqtt.Client] = None
        self._connected = False
        self._running = False

        # Statistics
        self._messages_sent = 0
        self._messages_received = 0
        self._last_send_time: Optional[float] = None

    def start(self) -> bool:
        """
        Start the MQTT bridge.

        Returns:
            True if connection successful, False otherwise
        """
        if self._running:
            return True

        try:
            client_id = f"arm_teleop_relay_{int(time.time())}"
            self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)

            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message

            logger.info(f"Connecting to MQTT broker at {self.host}:{self.port}")
            self._client.connect(self.host, self.port, keepalive=60)

            self._running = True
            self._client.loop_start()

            for _ in range(50):  # 5 second timeout
                if self._connected:
                    break
                time.sleep(0.1)

            if not self._connected:
                logger.warning("MQTT connection timeout - continuing without MQTT")
                return False

            return True

        except Exception as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            return False

    def stop(self) -> None:
        """Stop the MQTT bridge."""
        if not self._running:
            return

        self._running = False
        if self._client:
            self._client.loop_stop()
            self._client.disconnect()
            self._client = None

        self._connected = False
        logger.info("MQTT bridge stopped")

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """MQTT connection callback."""
        if reason_code.is_failure:
            logger.error(f"MQTT connection failed: {reason_code}")
            return
        self._connected = True
        logger.info("Connected to MQTT broker")
        client.subscribe(self.status_topic)
        logger.info(f"Subscribed to {self.status_topic}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        """MQTT disconnection callback."""
        self._connected = False
        if reason_code.is_failure:
            logger.warning(f"Unexpected MQTT disconnection: {reason_code}")
        else:
            logger.info("Disconnected from MQTT broker")

    def _on_message(self, client, userdata, msg):
        """MQTT message callback."""
        self._messages_received += 1
        try:
            text = msg.payload.decode("utf-8", errors="replace").strip()
            logger.debug(f"Board status: {text}")
            if self.on_status:
                self.on_status(text)
        except Exception as e:
            logger.error(f"Error processing status message: {e}")

    def publish_record(self, record: str) -> bool:
        """
        Publish one command record.

        Args:
            record: Validated record text (CRLF terminator added if missing)

        Returns:
            True if handed to the MQTT client successfully
        """
        if not self._connected or not self._client:
            return False

        if not record.endswith("\r\n"):
            record += "\r\n"

        info = self._client.publish(self.cmd_topic, record.encode("ascii"), qos=0)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Failed to publish record: {mqtt.error_string(info.rc)}")
            return False

        self._messages_sent += 1
        self._last_send_time = time.time()
        logger.debug(f"Published record {record.rstrip()}")
        return True

    @property
    def connected(self) -> bool:
        """Check if connected to MQTT broker."""
        return self._connected

    def get_stats(self) -> dict:
        """Get bridge statistics."""
        return {
            "connected": self._connected,
            "messages_sent": self._messages_sent,
            "messages_received": self._messages_received,
            "last_send_time": self._last_send_time,
        }


class AsyncMQTTBridge:
    """
    Async wrapper for MQTTBridge.

    Provides async-compatible methods for use with asyncio.
    """

    def __init__(self, **kwargs):
        """Initialize with same arguments as MQTTBridge."""
        self._bridge = MQTTBridge(**kwargs)

    async def start(self) -> bool:
        """Start the MQTT bridge."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._bridge.start)

    async def stop(self) -> None:
        """Stop the MQTT bridge."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._bridge.stop)

    async def publish_record(self, record: str) -> bool:
        """Publish one command record."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._bridge.publish_record, record)

    @property
    def connected(self) -> bool:
        """Check if connected."""
        return self._bridge.connected

    def get_stats(self) -> dict:
        """Get statistics."""
        return self._bridge.get_stats()
