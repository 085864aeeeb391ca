"""
Deadband Gate - decides whether a command is worth sending.

Sub-threshold jitter that survives filtering and smoothing would otherwise
turn into a steady stream of near-identical packets.
"""

from typing import Tuple

from .state import Pose


def pose_deltas(command: Pose, last_sent: Pose) -> Tuple[float, float, float, int]:
    """Absolute per-field differences (base, shoulder, elbow, gripper)."""
    return (
        abs(command.base - last_sent.base),
        abs(command.shoulder - last_sent.shoulder),
        abs(command.elbow - last_sent.elbow),
        abs(command.gripper - last_sent.gripper),
    )


def should_emit(command: Pose, last_sent: Pose, threshold: float) -> bool:
    """
    Return True when ``command`` differs enough from ``last_sent``.

    Args:
        command: Rounded pose about to be sent (gripper taken from the target)
        last_sent: Last pose confirmed on the wire
        threshold: Minimum angular change in degrees

    Returns:
        True if any joint moved by at least ``threshold`` degrees or the
        gripper state changed.
    """
    d_base, d_shoulder, d_elbow, d_gripper = pose_deltas(command, last_sent)
    if d_gripper != 0:
        return True
    return d_base >= threshold or d_shoulder >= threshold or d_elbow >= threshold


class DeadbandGate:
    """should_emit() with counters for the preview/status line."""

    def __init__(self):
        self.passed = 0
        self.suppressed = 0

    def check(self, command: Pose, last_sent: Pose, threshold: float) -> bool:
        emit = should_emit(command, last_sent, threshold)
        if emit:
            self.passed += 1
        else:
            self.suppressed += 1
        return emit

    def get_stats(self) -> dict:
        total = self.passed + self.suppressed
        return {
            "passed": self.passed,
            "suppressed": self.suppressed,
            "suppress_rate": self.suppressed / total if total > 0 else 0.0,
        }
