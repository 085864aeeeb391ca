"""
Pipeline state: the three poses and the per-joint filter windows.

All mutable pipeline data lives in one PipelineState owned by the loop
driver; nothing is kept in module globals.
"""

import math
from dataclasses import dataclass, field
from typing import Tuple

from .filters import NoiseFilter

NEUTRAL_ANGLE = 90.0
SENTINEL_ANGLE = -999
SENTINEL_GRIPPER = -1


def round_half_up(x: float) -> int:
    """Round to the nearest integer with .5 going up (0.5 -> 1, -0.5 -> 0)."""
    return int(math.floor(x + 0.5))


@dataclass
class Pose:
    """
    Actuator pose.

    Attributes:
        base: Base rotation (degrees)
        shoulder: Shoulder angle (degrees)
        elbow: Elbow angle (degrees)
        gripper: 0=closed, 1=open
    """
    base: float = NEUTRAL_ANGLE
    shoulder: float = NEUTRAL_ANGLE
    elbow: float = NEUTRAL_ANGLE
    gripper: int = 0

    @classmethod
    def neutral(cls) -> 'Pose':
        """Home position (90, 90, 90) with the gripper closed."""
        return cls()

    @classmethod
    def sentinel(cls) -> 'Pose':
        """Out-of-range pose that differs from anything the arm can be sent."""
        return cls(SENTINEL_ANGLE, SENTINEL_ANGLE, SENTINEL_ANGLE, SENTINEL_GRIPPER)

    def angles(self) -> Tuple[float, float, float]:
        return self.base, self.shoulder, self.elbow

    def rounded(self) -> 'Pose':
        """Integer copy of this pose, as it goes on the wire."""
        return Pose(
            round_half_up(self.base),
            round_half_up(self.shoulder),
            round_half_up(self.elbow),
            int(self.gripper),
        )

    def as_tuple(self) -> Tuple[float, float, float, int]:
        return self.base, self.shoulder, self.elbow, self.gripper


@dataclass
class PipelineState:
    """
    Mutable state carried from frame to frame.

    - target: filtered hand pose (or neutral while the hand is lost)
    - current: eased pose actually commanded
    - last_sent: last pose confirmed written to the transport
    """
    target: Pose = field(default_factory=Pose.neutral)
    current: Pose = field(default_factory=Pose.neutral)
    last_sent: Pose = field(default_factory=Pose.sentinel)
    noise_filter: NoiseFilter = field(default_factory=NoiseFilter)
    hand_visible: bool = False
    frames: int = 0
    signal_lost_frames: int = 0
