"""
Frame Gate - rejects unusable camera frames before pose detection.

A rejected frame is handled exactly like a frame without a hand: the
pipeline eases back to neutral instead of acting on garbage.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class FrameCheck:
    """Result of frame validation."""
    valid: bool
    reason: str
    frame: Optional[np.ndarray] = None


class FrameGate:
    """
    Validates frames returned by cv2.VideoCapture.read().

    Rejects failed reads, empty or non-BGR frames and sudden resolution
    changes, and counts consecutive rejections so the client can warn
    about a dead camera.
    """

    def __init__(self, stall_frames: int = 30):
        """
        Args:
            stall_frames: Consecutive rejected frames before the camera is
                reported as stalled
        """
        self.stall_frames = stall_frames
        self._shape: Optional[Tuple[int, ...]] = None
        self._consecutive_invalid = 0
        self._stall_reported = False
        self.valid_count = 0
        self.invalid_count = 0

    def validate(self, ok: bool, frame: Optional[np.ndarray]) -> FrameCheck:
        if not ok or frame is None:
            return self._reject("read_failed")
        if frame.size == 0:
            return self._reject("empty_frame")
        if frame.ndim != 3 or frame.shape[2] != 3:
            return self._reject("not_bgr")
        if self._shape is not None and frame.shape != self._shape:
            logger.warning(f"Frame shape changed from {self._shape} to {frame.shape}")
            return self._reject("shape_changed")

        self._shape = frame.shape
        self._consecutive_invalid = 0
        self._stall_reported = False
        self.valid_count += 1
        return FrameCheck(True, "ok", frame)

    def _reject(self, reason: str) -> FrameCheck:
        self.invalid_count += 1
        self._consecutive_invalid += 1
        if self._consecutive_invalid >= self.stall_frames and not self._stall_reported:
            self._stall_reported = True
            logger.warning(f"Camera stalled: {self._consecutive_invalid} bad frames in a row ({reason})")
        return FrameCheck(False, reason)

    @property
    def stalled(self) -> bool:
        return self._consecutive_invalid >= self.stall_frames

    def reset(self) -> None:
        """Forget the expected frame shape (e.g. after reopening the camera)."""
        self._shape = None
        self._consecutive_invalid = 0
        self._stall_reported = False

    def get_stats(self) -> dict:
        total = self.valid_count + self.invalid_count
        return {
            "total_frames": total,
            "valid_frames": self.valid_count,
            "invalid_frames": self.invalid_count,
            "valid_rate": self.valid_count / total if total > 0 else 0.0,
            "consecutive_invalid": self._consecutive_invalid,
        }
