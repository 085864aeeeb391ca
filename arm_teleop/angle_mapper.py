"""
Angle Mapper - hand geometry to joint angles.

Three geometric features drive the arm:
- base: horizontal wrist position, mirrored so the arm follows the hand
  as seen on screen
- shoulder: wrist to middle-knuckle distance, a proxy for how close the
  hand is to the camera
- elbow: vertical wrist position

The gripper is a plain pinch threshold and never goes through mapping,
filtering or smoothing.
"""

from typing import Dict, Sequence

from .config import GLOBAL_MAX_ANGLE, GLOBAL_MIN_ANGLE, JointConfig, PipelineConfig
from .landmarks import Landmark, MIDDLE_MCP, INDEX_TIP, THUMB_TIP, WRIST, planar_distance

# Feature domains
BASE_DOMAIN = (0.0, 1.0)
SHOULDER_DOMAIN = (0.05, 0.25)
ELBOW_DOMAIN = (0.0, 1.0)

GRIPPER_CLOSED = 0
GRIPPER_OPEN = 1


# ============================================================================
# Utility Functions
# ============================================================================

def clamp(v: float, lo: float, hi: float) -> float:
    """Clamp value between lo and hi."""
    return max(lo, min(hi, v))


def map_range(v: float, in_min: float, in_max: float, out_min: float, out_max: float) -> float:
    """Linearly map v from [in_min, in_max] onto [out_min, out_max] (unclamped)."""
    if in_max == in_min:
        raise ValueError("input domain must not be empty")
    return (v - in_min) * (out_max - out_min) / (in_max - in_min) + out_min


def map_joint(v: float, domain: Sequence[float], joint: JointConfig) -> float:
    """Map a feature value onto the joint's output range (no trim, unclamped)."""
    out_min, out_max = joint.output_range
    return map_range(v, domain[0], domain[1], out_min, out_max)


def trim_joint(angle: float, joint: JointConfig) -> float:
    """
    Add the joint's trim to a filtered angle and clamp to servo travel.

    The clamp is the full 0..180 travel, not the joint's own limits, so
    trim can reach past a configured limit.
    """
    return clamp(angle + joint.trim, GLOBAL_MIN_ANGLE, GLOBAL_MAX_ANGLE)


# ============================================================================
# Features
# ============================================================================

def base_feature(lm: Sequence[Landmark]) -> float:
    return 1.0 - lm[WRIST].x


def shoulder_feature(lm: Sequence[Landmark]) -> float:
    return planar_distance(lm[WRIST], lm[MIDDLE_MCP])


def elbow_feature(lm: Sequence[Landmark]) -> float:
    return lm[WRIST].y


def pinch_distance(lm: Sequence[Landmark]) -> float:
    return planar_distance(lm[THUMB_TIP], lm[INDEX_TIP])


def gripper_state(lm: Sequence[Landmark], pinch_threshold: float) -> int:
    """Closed (0) while thumb and index tips pinch, open (1) otherwise."""
    return GRIPPER_CLOSED if pinch_distance(lm) < pinch_threshold else GRIPPER_OPEN


class AngleMapper:
    """
    Maps one hand sample to raw (pre-filter) joint angles, and filtered
    angles to final targets.
    """

    def __init__(self, config: PipelineConfig):
        self.config = config

    def map(self, lm: Sequence[Landmark]) -> Dict[str, float]:
        """Return raw angles keyed by joint name (untrimmed, unclamped)."""
        cfg = self.config
        return {
            "base": map_joint(base_feature(lm), BASE_DOMAIN, cfg.base),
            "shoulder": map_joint(shoulder_feature(lm), SHOULDER_DOMAIN, cfg.shoulder),
            "elbow": map_joint(elbow_feature(lm), ELBOW_DOMAIN, cfg.elbow),
        }

    def finish(self, filtered: Dict[str, float]) -> Dict[str, float]:
        """Apply trim and the servo-travel clamp to filtered angles."""
        return {name: trim_joint(angle, self.config.joint(name)) for name, angle in filtered.items()}

    def gripper(self, lm: Sequence[Landmark]) -> int:
        return gripper_state(lm, self.config.pinch_threshold)
