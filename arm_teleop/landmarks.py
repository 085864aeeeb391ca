"""
Hand landmark model and geometry helpers.

MediaPipe reports 21 landmarks per hand with x/y normalized to the image
(0..1, origin top-left). Only a handful of them drive the arm.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, List

import numpy as np

# ============================================================================
# MediaPipe Landmark Indices
# ============================================================================

NUM_LANDMARKS = 21

WRIST = 0
THUMB_TIP = 4
INDEX_TIP = 8
MIDDLE_MCP = 9

# Landmarks highlighted in the preview overlay
REFERENCE_POINTS = (WRIST, THUMB_TIP, INDEX_TIP, MIDDLE_MCP)


@dataclass(frozen=True)
class Landmark:
    """A single normalized hand landmark."""
    x: float
    y: float
    z: float = 0.0


def planar_distance(a: Landmark, b: Landmark) -> float:
    """Euclidean distance in the image plane (z is ignored)."""
    return float(np.hypot(a.x - b.x, a.y - b.y))


def from_mediapipe(hand_landmarks) -> List[Landmark]:
    """Convert a MediaPipe NormalizedLandmarkList into plain landmarks."""
    return [Landmark(p.x, p.y, p.z) for p in hand_landmarks.landmark]


def validate_hand(landmarks: Optional[Sequence[Landmark]]) -> Optional[Sequence[Landmark]]:
    """
    Return the landmarks if they form a complete hand, else None.

    A partial sample is treated the same as no hand at all.
    """
    if landmarks is None or len(landmarks) < NUM_LANDMARKS:
        return None
    return landmarks
