"""
Transport session base.

Handles:
- Disconnected -> Connecting -> Connected state tracking
- Single in-flight write (busy latch); extra sends are dropped, not queued
- Logging and counting of write failures without propagating them
- Involuntary disconnect notification
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectError(Exception):
    """Connection attempt failed; the operator has to retry."""


class SendError(Exception):
    """A single write failed."""


@dataclass
class SessionStats:
    """Statistics about the transport session."""
    connect_time: Optional[float] = None
    disconnect_time: Optional[float] = None
    packets_sent: int = 0
    packets_failed: int = 0
    packets_dropped: int = 0
    last_send_time: Optional[float] = None


class Session(ABC):
    """
    Base class for packet transports.

    Subclasses implement ``_open``, ``_close`` and ``_write``; this class
    owns the state machine and the busy latch.
    """

    name = "session"

    def __init__(
        self,
        on_disconnected: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        """
        Args:
            on_disconnected: Coroutine called when the link drops without
                an explicit disconnect()
        """
        self.on_disconnected = on_disconnected
        self.state = SessionState.DISCONNECTED
        self.stats = SessionStats()
        self._in_flight = False
        self._closing = False
        self._pending: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    @property
    def busy(self) -> bool:
        """True while a write is outstanding."""
        return self._in_flight

    @property
    def description(self) -> str:
        return self.name

    async def connect(self) -> None:
        """
        Open the link.

        Raises:
            ConnectError: if the link could not be established
        """
        if self.state is not SessionState.DISCONNECTED:
            logger.debug(f"connect() ignored in state {self.state.value}")
            return

        self.state = SessionState.CONNECTING
        self._closing = False
        try:
            await self._open()
        except ConnectError:
            self.state = SessionState.DISCONNECTED
            raise
        except Exception as e:
            self.state = SessionState.DISCONNECTED
            raise ConnectError(f"{self.description}: {e}") from e

        self.state = SessionState.CONNECTED
        self.stats.connect_time = time.time()
        logger.info(f"Connected to {self.description}")

    async def disconnect(self) -> None:
        """Close the link. In-flight writes are not cancelled."""
        if self.state is SessionState.DISCONNECTED:
            return
        self._closing = True
        self.state = SessionState.DISCONNECTED
        self.stats.disconnect_time = time.time()
        try:
            await self._close()
        except Exception as e:
            logger.warning(f"Error while closing {self.description}: {e}")
        logger.info(f"Disconnected from {self.description}")

    def send(self, data: bytes) -> Optional["asyncio.Task[bool]"]:
        """
        Start writing ``data`` without waiting for it.

        Returns:
            A task resolving to True on success and False on failure, or
            None if the session is not connected or a write is in flight.
        """
        if not self.connected:
            return None
        if self._in_flight:
            self.stats.packets_dropped += 1
            logger.debug("Write in flight, dropping packet")
            return None

        self._in_flight = True
        self._pending = asyncio.get_running_loop().create_task(self._write_once(data))
        return self._pending

    async def _write_once(self, data: bytes) -> bool:
        try:
            await self._write(data)
        except Exception as e:
            self.stats.packets_failed += 1
            logger.warning(f"Send failed: {e}")
            return False
        finally:
            self._in_flight = False

        self.stats.packets_sent += 1
        self.stats.last_send_time = time.time()
        return True

    async def _link_lost(self) -> None:
        """Called by subclasses when the peer goes away."""
        if self._closing or self.state is not SessionState.CONNECTED:
            return
        self.state = SessionState.DISCONNECTED
        self.stats.disconnect_time = time.time()
        logger.warning(f"Link to {self.description} lost")
        if self.on_disconnected:
            await self.on_disconnected()

    def get_stats(self) -> dict:
        """Get session statistics."""
        return {
            "state": self.state.value,
            "busy": self._in_flight,
            "connect_time": self.stats.connect_time,
            "disconnect_time": self.stats.disconnect_time,
            "packets_sent": self.stats.packets_sent,
            "packets_failed": self.stats.packets_failed,
            "packets_dropped": self.stats.packets_dropped,
            "last_send_time": self.stats.last_send_time,
        }

    @abstractmethod
    async def _open(self) -> None:
        ...

    @abstractmethod
    async def _close(self) -> None:
        ...

    @abstractmethod
    async def _write(self, data: bytes) -> None:
        ...


class NullSession(Session):
    """Offline transport: never connects, so the pipeline never sends."""

    name = "offline"

    async def connect(self) -> None:
        raise ConnectError("no transport configured (offline mode)")

    async def _open(self) -> None:
        raise ConnectError("no transport configured (offline mode)")

    async def _close(self) -> None:
        pass

    async def _write(self, data: bytes) -> None:
        raise SendError("offline")
