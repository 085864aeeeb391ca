"""
Pose sources - where hand samples come from.

The pipeline only needs ``detect(frame) -> Optional[List[Landmark]]``.
MediaPipePoseSource runs MediaPipe Hands in video mode limited to one hand.
"""

import logging
from typing import List, Optional

import cv2
import mediapipe as mp
import numpy as np

from .landmarks import Landmark, from_mediapipe

logger = logging.getLogger(__name__)

mp_hands = mp.solutions.hands


class MediaPipePoseSource:
    """
    MediaPipe Hands wrapper.

    Processing errors are logged and counted; a failed frame is reported
    as "no hand" so the pipeline treats it as signal loss.
    """

    def __init__(
        self,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        model_complexity: int = 1,
    ):
        self._hands = mp_hands.Hands(
            static_image_mode=False,
            max_num_hands=1,
            model_complexity=model_complexity,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )
        self.last_result = None
        self._consecutive_failures = 0
        self.failures = 0
        self.detections = 0

    def detect(self, bgr_frame: np.ndarray) -> Optional[List[Landmark]]:
        """Return the landmarks of the first detected hand, or None."""
        rgb = cv2.cvtColor(bgr_frame, cv2.COLOR_BGR2RGB)
        try:
            result = self._hands.process(rgb)
        except Exception as e:
            self._consecutive_failures += 1
            self.failures += 1
            logger.warning(f"MediaPipe processing error: {e}")
            self.last_result = None
            return None

        self._consecutive_failures = 0
        self.last_result = result
        if not result.multi_hand_landmarks:
            return None
        self.detections += 1
        return from_mediapipe(result.multi_hand_landmarks[0])

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def close(self) -> None:
        self._hands.close()
