"""
BLE UART transport.

Writes command records to the RX characteristic of a Nordic UART service
(the micro:bit UART service) using bleak.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from .config import TransportConfig
from .transport import ConnectError, SendError, Session

logger = logging.getLogger(__name__)


class BleUartSession(Session):
    """
    Session over a BLE UART link.

    The device is found either by explicit address or by the first
    advertisement whose name starts with the configured prefix.
    """

    name = "ble"

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        on_disconnected: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        super().__init__(on_disconnected=on_disconnected)
        self.config = config or TransportConfig()
        self._client: Optional[BleakClient] = None
        self._device_name: Optional[str] = None
        self._lost_task: Optional[asyncio.Task] = None

    @property
    def description(self) -> str:
        if self._device_name:
            return f"BLE device '{self._device_name}'"
        return f"BLE device '{self.config.address or self.config.device_prefix + '*'}'"

    async def _find_device(self):
        cfg = self.config
        if cfg.address:
            logger.info(f"Looking for BLE device at {cfg.address}...")
            return await BleakScanner.find_device_by_address(cfg.address, timeout=cfg.scan_timeout)

        logger.info(f"Scanning for BLE devices named '{cfg.device_prefix}*'...")

        def _matches(device, adv) -> bool:
            name = (adv.local_name if adv is not None else None) or device.name or ""
            return name.startswith(cfg.device_prefix)

        return await BleakScanner.find_device_by_filter(_matches, timeout=cfg.scan_timeout)

    async def _open(self) -> None:
        cfg = self.config
        try:
            device = await self._find_device()
        except BleakError as e:
            raise ConnectError(f"BLE scan failed: {e}") from e
        if device is None:
            raise ConnectError(
                f"No BLE device matching '{cfg.address or cfg.device_prefix}' found "
                f"within {cfg.scan_timeout:.0f}s"
            )

        self._device_name = device.name or device.address
        self._client = BleakClient(
            device,
            disconnected_callback=self._on_ble_disconnect,
            timeout=cfg.connect_timeout,
        )
        try:
            await self._client.connect()
            if self._client.services.get_characteristic(cfg.rx_char_uuid) is None:
                raise ConnectError(
                    f"UART characteristic {cfg.rx_char_uuid} not found on {self._device_name}"
                )
        except BaseException:
            client, self._client = self._client, None
            try:
                await client.disconnect()
            except BleakError:
                pass
            raise

    async def _close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.disconnect()

    async def _write(self, data: bytes) -> None:
        if self._client is None:
            raise SendError("not connected")
        try:
            await self._client.write_gatt_char(self.config.rx_char_uuid, data, response=True)
        except BleakError as e:
            raise SendError(str(e)) from e

    def _on_ble_disconnect(self, _client: BleakClient) -> None:
        # bleak invokes this from the event loop thread
        self._client = None
        self._lost_task = asyncio.get_running_loop().create_task(self._link_lost())
