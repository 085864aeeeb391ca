"""Shared builders for the test suite."""

from typing import List, Optional, Tuple

from arm_teleop.landmarks import (
    INDEX_TIP,
    MIDDLE_MCP,
    NUM_LANDMARKS,
    THUMB_TIP,
    WRIST,
    Landmark,
)
from arm_teleop.transport import SendError, Session


def make_hand(
    wrist: Tuple[float, float] = (0.5, 0.5),
    palm: float = 0.15,
    pinch: float = 0.2,
) -> List[Landmark]:
    """
    Build a 21-point hand.

    Args:
        wrist: (x, y) of the wrist
        palm: wrist to middle-knuckle distance (straight up from the wrist)
        pinch: thumb tip to index tip distance (horizontal)
    """
    wx, wy = wrist
    points = [Landmark(wx, wy - 0.05) for _ in range(NUM_LANDMARKS)]
    points[WRIST] = Landmark(wx, wy)
    points[MIDDLE_MCP] = Landmark(wx, wy - palm)
    points[THUMB_TIP] = Landmark(0.3, 0.2)
    points[INDEX_TIP] = Landmark(0.3 + pinch, 0.2)
    return points


class FakeSession(Session):
    """In-memory session that records writes and can be told to fail."""

    name = "fake"

    def __init__(self, fail: bool = False, connect_error: Optional[Exception] = None):
        super().__init__()
        self.fail = fail
        self.connect_error = connect_error
        self.writes: List[bytes] = []
        self.closed = 0

    async def _open(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error

    async def _close(self) -> None:
        self.closed += 1

    async def _write(self, data: bytes) -> None:
        self.writes.append(data)
        if self.fail:
            raise SendError("write rejected")
