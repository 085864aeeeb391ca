#!/usr/bin/env python3
"""
Arm Teleop Client - Main Entry Point

Reads camera frames, detects one hand with MediaPipe, runs the teleop
pipeline once per frame and writes command packets to the arm over BLE
UART or through the relay gateway.

Usage:
    python -m arm_teleop.main --transport ble --preview
    python -m arm_teleop.main --transport ble --address AA:BB:CC:DD:EE:FF
    python -m arm_teleop.main --transport ws --server ws://127.0.0.1:8080/control --token SECRET
    python -m arm_teleop.main --transport none --preview --config arm.json

Without --preview, `kill -USR1 <pid>` retries the connection and
`kill -USR2 <pid>` drops it.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
import time
from typing import Optional

import cv2
import numpy as np

from .config import (
    DEFAULT_DEVICE_PREFIX,
    FileConfigSource,
    StaticConfigSource,
    TransportConfig,
)
from .frame_gate import FrameGate
from .landmarks import INDEX_TIP, REFERENCE_POINTS, THUMB_TIP
from .pipeline import TeleopPipeline, TickResult
from .transport import ConnectError, NullSession, Session

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# BGR colours used by the preview
GREEN = (118, 230, 0)
RED = (68, 23, 255)
WHITE = (255, 255, 255)
AMBER = (0, 165, 255)


class TeleopClient:
    """
    Main client that integrates all components:
    - Camera capture
    - Frame quality gate
    - MediaPipe hand detection
    - Teleop pipeline
    - Transport session
    """

    def __init__(
        self,
        session: Session,
        config_source=None,
        camera_index: int = 0,
        rate: float = 60.0,
        show_preview: bool = False,
        connect_on_start: bool = True,
    ):
        """
        Initialize the teleop client.

        Args:
            session: Transport used to reach the arm
            config_source: Pipeline config source (hot-reloaded every frame)
            camera_index: Camera device index
            rate: Pipeline tick rate (Hz)
            show_preview: Whether to show the OpenCV preview window
            connect_on_start: Try to connect the session during start()
        """
        self.session = session
        self.camera_index = camera_index
        self.rate = rate
        self.show_preview = show_preview
        self.connect_on_start = connect_on_start

        # Components
        self.frame_gate = FrameGate()
        self.pipeline = TeleopPipeline(config_source or StaticConfigSource())
        self.pose_source = None

        # Camera
        self.cap: Optional[cv2.VideoCapture] = None

        # State
        self._running = False
        self._connect_task: Optional[asyncio.Task] = None
        self._status = "Disconnected"
        self._last_result: Optional[TickResult] = None
        self._last_landmarks = None

        self.session.on_disconnected = self._on_disconnected

        # UI font
        self.font = cv2.FONT_HERSHEY_SIMPLEX

    async def start(self) -> None:
        """Start the client."""
        logger.info("Starting Arm Teleop Client...")

        if not self._init_camera():
            raise RuntimeError("Failed to initialize camera")

        # Imported here so the pipeline can be used without MediaPipe installed
        from .pose_source import MediaPipePoseSource
        self.pose_source = MediaPipePoseSource()

        self._running = True
        if self.connect_on_start:
            self.request_connect()
        logger.info("Arm Teleop Client started")

    async def stop(self) -> None:
        """Stop the client and clean up resources."""
        logger.info("Stopping Arm Teleop Client...")
        self._running = False

        if self._connect_task and not self._connect_task.done():
            self._connect_task.cancel()
            try:
                await self._connect_task
            except asyncio.CancelledError:
                pass

        await self.session.disconnect()

        if self.cap:
            self.cap.release()
            self.cap = None

        if self.pose_source:
            self.pose_source.close()
            self.pose_source = None

        if self.show_preview:
            cv2.destroyAllWindows()

        logger.info("Arm Teleop Client stopped")

    @property
    def retry_hint(self) -> str:
        """How the operator asks for another connection attempt."""
        if self.show_preview:
            return "press 'c'"
        return f"send SIGUSR1 (kill -USR1 {os.getpid()})"

    @property
    def status(self) -> str:
        return self._status

    def install_signal_handlers(self) -> None:
        """
        SIGINT/SIGTERM stop the client; SIGUSR1 requests a connection
        attempt and SIGUSR2 a disconnect, for runs without a preview window.
        """
        loop = asyncio.get_running_loop()

        def shutdown_handler():
            logger.info("Shutdown signal received")
            self._running = False

        def connect_handler():
            logger.info("Connect requested (SIGUSR1)")
            self.request_connect()

        def disconnect_handler():
            logger.info("Disconnect requested (SIGUSR2)")
            loop.create_task(self.request_disconnect())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown_handler)
        if hasattr(signal, "SIGUSR1"):
            loop.add_signal_handler(signal.SIGUSR1, connect_handler)
            loop.add_signal_handler(signal.SIGUSR2, disconnect_handler)

    def request_connect(self) -> None:
        """Start a connection attempt in the background (operator action)."""
        if self.session.connected or (self._connect_task and not self._connect_task.done()):
            return
        self._connect_task = asyncio.get_running_loop().create_task(self._connect())

    async def request_disconnect(self) -> None:
        await self.session.disconnect()
        self._status = "Disconnected"

    async def _connect(self) -> None:
        self._status = "Connecting..."
        try:
            await self.session.connect()
        except ConnectError as e:
            self._status = f"Connect failed - {self.retry_hint} to retry"
            logger.error(f"Connection failed: {e} ({self.retry_hint} to retry)")
            return
        self._status = f"Connected: {self.session.description}"

    async def run(self) -> None:
        """Main control loop."""
        target_dt = 1.0 / self.rate

        while self._running:
            loop_start = time.time()

            try:
                self._process_frame()
            except Exception as e:
                logger.error(f"Error in control loop: {e}")

            if self.show_preview:
                await self._handle_keys()

            # Rate limiting; always yield so send tasks can run
            elapsed = time.time() - loop_start
            await asyncio.sleep(max(0.0, target_dt - elapsed))

    def _process_frame(self) -> None:
        """Process a single frame through the pipeline."""
        ok, frame = self.cap.read()

        check = self.frame_gate.validate(ok, frame)
        landmarks = None
        if check.valid:
            landmarks = self.pose_source.detect(check.frame)
        else:
            logger.debug(f"Frame invalid: {check.reason}")

        self._last_landmarks = landmarks
        self._last_result = self.pipeline.tick(landmarks, self.session)

        if self.show_preview and check.valid:
            view = cv2.flip(check.frame, 1)
            self._draw_preview(view)
            cv2.imshow("Arm Teleop", view)

    async def _handle_keys(self) -> None:
        key = cv2.waitKey(1) & 0xFF
        if key in (27, ord('q')):
            logger.info("Quit requested")
            self._running = False
        elif key in (ord('c'), ord('C')):
            logger.info("Connect requested")
            self.request_connect()
        elif key in (ord('d'), ord('D')):
            logger.info("Disconnect requested")
            await self.request_disconnect()

    def _init_camera(self) -> bool:
        """Initialize video capture."""
        logger.info(f"Opening camera index: {self.camera_index}")
        self.cap = cv2.VideoCapture(self.camera_index)
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, 1280)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, 720)

        if not self.cap.isOpened():
            logger.error("Failed to open camera source")
            return False

        width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        fps = self.cap.get(cv2.CAP_PROP_FPS)
        logger.info(f"Camera opened: {width}x{height} @ {fps:.1f} fps")
        return True

    async def _on_disconnected(self) -> None:
        """Callback when the link drops on its own."""
        self._status = f"Link lost - {self.retry_hint} to reconnect"
        logger.info(f"Link lost: {self.retry_hint} to reconnect")

    def _draw_preview(self, frame: np.ndarray) -> None:
        """Draw preview overlay on the mirrored frame."""
        h, w = frame.shape[:2]
        st = self.pipeline.state
        gripper_closed = st.target.gripper == 0

        lm = self._last_landmarks
        if lm is not None:
            # Landmarks are in camera coordinates; the view is mirrored
            def pt(i):
                return int((1 - lm[i].x) * w), int(lm[i].y * h)

            for i in REFERENCE_POINTS:
                cv2.circle(frame, pt(i), 6, GREEN, -1)
                cv2.circle(frame, pt(i), 6, WHITE, 2)
            cv2.line(frame, pt(THUMB_TIP), pt(INDEX_TIP), RED if gripper_closed else GREEN, 4)

        conn_color = GREEN if self.session.connected else RED
        cv2.putText(frame, self._status, (20, 40), self.font, 0.7, conn_color, 2)

        cmd = self.pipeline.command()
        lines = [
            f"Base: {cmd.base} deg",
            f"Shoulder: {cmd.shoulder} deg",
            f"Elbow: {cmd.elbow} deg",
            f"Gripper: {'CLOSE' if gripper_closed else 'OPEN'}",
        ]
        for i, text in enumerate(lines):
            cv2.putText(frame, text, (20, h - 130 + 28 * i), self.font, 0.7, WHITE, 2)

        if self.pipeline.last_packet:
            packet = self.pipeline.last_packet.decode("ascii").rstrip()
            cv2.putText(frame, packet, (w - 320, h - 30), self.font, 0.7, AMBER, 2)

        if not st.hand_visible:
            cv2.putText(frame, "No hand - returning to neutral", (20, 75), self.font, 0.6, AMBER, 2)


def build_session(args: argparse.Namespace) -> Session:
    """Create the transport session selected on the command line."""
    if args.transport == "ble":
        from .ble_transport import BleUartSession
        return BleUartSession(
            TransportConfig(
                device_prefix=args.device_prefix,
                address=args.address,
                scan_timeout=args.scan_timeout,
            )
        )
    if args.transport == "ws":
        if not args.token:
            raise SystemExit("--token is required with --transport ws")
        from .ws_transport import WebSocketSession
        return WebSocketSession(server_url=args.server, token=args.token)
    return NullSession()


async def main_async(args: argparse.Namespace) -> None:
    """Async main entry point."""
    config_source = FileConfigSource(args.config) if args.config else StaticConfigSource()
    client = TeleopClient(
        session=build_session(args),
        config_source=config_source,
        camera_index=args.camera,
        rate=args.rate,
        show_preview=args.preview,
        connect_on_start=args.transport != "none",
    )

    client.install_signal_handlers()

    try:
        await client.start()
        await client.run()
    except Exception as e:
        logger.error(f"Client error: {e}")
    finally:
        await client.stop()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Hand-pose arm teleoperation client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--transport",
        choices=("ble", "ws", "none"),
        default="ble",
        help="Link to the arm controller",
    )
    parser.add_argument(
        "--device-prefix",
        type=str,
        default=DEFAULT_DEVICE_PREFIX,
        help="BLE device name prefix to connect to",
    )
    parser.add_argument(
        "--address",
        type=str,
        default=None,
        help="BLE device address (overrides --device-prefix)",
    )
    parser.add_argument(
        "--scan-timeout",
        type=float,
        default=10.0,
        help="BLE scan timeout (s)",
    )
    parser.add_argument(
        "--server",
        type=str,
        default="ws://127.0.0.1:8080/control",
        help="Relay gateway WebSocket URL",
    )
    parser.add_argument(
        "--token",
        type=str,
        default=None,
        help="Relay authentication token",
    )
    parser.add_argument(
        "--camera",
        type=int,
        default=0,
        help="Camera device index",
    )
    parser.add_argument(
        "--rate",
        type=float,
        default=60.0,
        help="Pipeline tick rate (Hz)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON pipeline config file (reloaded on change)",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Show preview window (c=connect, d=disconnect, q=quit)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
