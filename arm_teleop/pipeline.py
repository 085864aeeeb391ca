"""
Teleop Pipeline - one evaluation per frame.

    landmarks -> AngleMapper -> NoiseFilter -> MotionSmoother
              -> DeadbandGate -> PacketEncoder -> Session.send

Configuration is re-read at the start of every tick so edits to the
config source take effect on the next frame.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .angle_mapper import AngleMapper
from .config import PipelineConfig, StaticConfigSource
from .deadband import DeadbandGate
from .filters import MotionSmoother
from .landmarks import Landmark, validate_hand
from .packet import PacketError, encode_packet
from .state import PipelineState, Pose
from .transport import Session

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Outcome of one pipeline tick."""
    hand_visible: bool
    command: Pose
    packet: Optional[bytes] = None
    send_task: Optional[asyncio.Task] = None


class TeleopPipeline:
    """
    Owns the pipeline state and runs the per-frame stages.

    The pipeline never blocks on the transport: a write is started and its
    completion updates ``last_sent`` later, from a task callback.
    """

    def __init__(self, config_source=None, state: Optional[PipelineState] = None):
        """
        Args:
            config_source: Object with a ``current() -> PipelineConfig``
                method (defaults to built-in settings)
            state: Initial state (fresh neutral state if omitted)
        """
        self.config_source = config_source or StaticConfigSource()
        self.state = state or PipelineState()
        self.config: PipelineConfig = self.config_source.current()
        self.smoother = MotionSmoother(self.config.smoothing_coefficient)
        self.gate = DeadbandGate()
        self.last_packet: Optional[bytes] = None

    def _refresh_config(self) -> PipelineConfig:
        cfg = self.config_source.current()
        if cfg is not self.config:
            logger.debug(f"Pipeline config updated: {cfg}")
        self.config = cfg
        self.smoother.alpha = cfg.smoothing_coefficient
        self.state.noise_filter.resize(cfg.filter_window_size)
        return cfg

    def update_target(self, landmarks: Optional[Sequence[Landmark]], cfg: PipelineConfig) -> bool:
        """
        Set ``state.target`` from the hand sample, or reset to neutral.

        Returns:
            True if a hand was present this frame.
        """
        st = self.state
        lm = validate_hand(landmarks)

        if lm is None:
            if st.hand_visible:
                logger.info("Hand lost, easing back to neutral")
            st.hand_visible = False
            st.signal_lost_frames += 1
            st.noise_filter.clear()
            st.target = Pose.neutral()
            return False

        if not st.hand_visible:
            logger.info("Hand detected")
        st.hand_visible = True
        st.signal_lost_frames = 0

        mapper = AngleMapper(cfg)
        # Trim and clamp apply to the averaged angle, not to each sample
        angles = mapper.finish(st.noise_filter.update(mapper.map(lm)))
        st.target = Pose(
            base=angles["base"],
            shoulder=angles["shoulder"],
            elbow=angles["elbow"],
            gripper=mapper.gripper(lm),
        )
        return True

    def command(self) -> Pose:
        """Rounded current pose with the gripper taken straight from the target."""
        cmd = self.state.current.rounded()
        cmd.gripper = self.state.target.gripper
        return cmd

    def tick(
        self,
        landmarks: Optional[Sequence[Landmark]],
        session: Optional[Session] = None,
    ) -> TickResult:
        """
        Run one frame.

        Args:
            landmarks: The hand sample for this frame, or None if no hand
            session: Transport to write to; skipped when None,
                disconnected or busy

        Returns:
            TickResult with the command and, if one was started, the
            packet and its send task.
        """
        st = self.state
        cfg = self._refresh_config()

        visible = self.update_target(landmarks, cfg)

        # Runs on signal-loss frames too, so the arm eases home
        self.smoother.apply(st.current, st.target)
        st.current.gripper = st.target.gripper
        st.frames += 1

        command = self.command()
        result = TickResult(hand_visible=visible, command=command)

        if session is None or not session.connected or session.busy:
            return result

        if not self.gate.check(command, st.last_sent, cfg.deadband_threshold):
            return result

        try:
            packet = encode_packet(*command.as_tuple())
        except PacketError as e:
            logger.error(f"Refusing to send command {command}: {e}")
            return result

        task = session.send(packet)
        if task is not None:
            result.packet = packet
            result.send_task = task
            self.last_packet = packet
            task.add_done_callback(functools.partial(self._on_send_done, command))
            logger.debug(f"Sending {packet!r}")
        return result

    def _on_send_done(self, command: Pose, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        if task.result():
            self.state.last_sent = command
